"""Unit tests for document-level embedding fusion."""
import pytest

from docsearch.errors import DimensionMismatch
from docsearch.fusion import fuse_embeddings

pytestmark = pytest.mark.unit


def test_single_vector_is_identity():
    v = [0.1, -2.5, 3.0, 1e-9]
    assert fuse_embeddings([v]) == v


def test_equal_vectors_fuse_to_themselves():
    v = [0.3, 0.7, -1.25]
    assert fuse_embeddings([v, v]) == v


def test_component_wise_mean():
    fused = fuse_embeddings([[1.0, 2.0, 3.0], [3.0, 4.0, 5.0], [2.0, 0.0, 1.0]])
    assert fused == pytest.approx([2.0, 2.0, 3.0])


def test_accepts_tuples_and_ints():
    assert fuse_embeddings([(1, 2), (3, 4)]) == [2.0, 3.0]


def test_mismatched_lengths_fail():
    with pytest.raises(DimensionMismatch) as exc:
        fuse_embeddings([[1.0, 2.0], [1.0, 2.0, 3.0]])
    assert exc.value.context["lengths"] == [2, 3]


def test_empty_input_fails():
    with pytest.raises(ValueError):
        fuse_embeddings([])
