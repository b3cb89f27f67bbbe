"""
Document-level embedding fusion.
"""
from typing import List, Sequence

import numpy as np

from .errors import DimensionMismatch


def fuse_embeddings(vectors: Sequence[Sequence[float]]) -> List[float]:
    """
    Average chunk embeddings into one document embedding.

    The centroid is a coarse "what is this document about" vector; the
    chunk embeddings keep the local detail.

    Raises:
        ValueError: If ``vectors`` is empty.
        DimensionMismatch: If the vectors do not all share one length.
    """
    if len(vectors) == 0:
        raise ValueError("cannot fuse an empty set of embeddings")

    lengths = sorted({len(v) for v in vectors})
    if len(lengths) > 1:
        raise DimensionMismatch(
            "Chunk embeddings differ in length",
            context={"lengths": lengths},
        )

    if len(vectors) == 1:
        return [float(x) for x in vectors[0]]

    matrix = np.asarray(vectors, dtype=np.float64)
    return matrix.mean(axis=0).tolist()
