"""
Embedding providers.

Both the ingestion pipeline and the retrieval ranker receive one
EmbeddingClient built at startup; tests pass their own implementation.
"""
from abc import ABC, abstractmethod
from threading import Lock
from typing import List, Sequence

import numpy as np
from openai import OpenAI, OpenAIError

from .config import Settings
from .errors import DimensionMismatch, ProviderError
from .logging_config import logger


class EmbeddingClient(ABC):
    """Maps a text to a vector of a fixed, configured dimension."""

    def __init__(self, dimension: int):
        self.dimension = dimension

    @abstractmethod
    def _embed(self, text: str) -> Sequence[float]:
        ...

    def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            ProviderError: The provider call failed.
            DimensionMismatch: The provider returned a vector of the wrong length.
        """
        vec = [float(x) for x in self._embed(text)]
        if len(vec) != self.dimension:
            raise DimensionMismatch(
                "Embedding provider returned a vector of unexpected length",
                context={"expected": self.dimension, "actual": len(vec)},
            )
        return vec

    def close(self) -> None:
        pass


class OpenAIEmbeddingClient(EmbeddingClient):
    def __init__(self, api_key: str, model: str, dimension: int):
        super().__init__(dimension)
        self.model = model
        self._client = OpenAI(api_key=api_key)

    def _embed(self, text: str) -> Sequence[float]:
        try:
            response = self._client.embeddings.create(
                model=self.model,
                input=text,
                encoding_format="float",
            )
        except OpenAIError as e:
            raise ProviderError(
                f"OpenAI embedding request failed: {e}",
                cause=e,
                context={"model": self.model},
            )
        return response.data[0].embedding

    def close(self) -> None:
        self._client.close()


class SentenceTransformerClient(EmbeddingClient):
    """Local sentence-transformers model; avoids extra API usage."""

    def __init__(self, model: str, dimension: int):
        super().__init__(dimension)
        self.model_name = model
        self._model = None
        self._lock = Lock()

    def preload(self):
        """Load the model up front to avoid a first-request delay."""
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model", model=self.model_name)
                # explicit tokenizer settings avoid a FutureWarning
                self._model = SentenceTransformer(
                    self.model_name,
                    tokenizer_kwargs={"clean_up_tokenization_spaces": False},
                )
                # Warm up with a test embedding
                self._model.encode(["test"], normalize_embeddings=True, show_progress_bar=False)
                logger.info("Embedding model loaded", model=self.model_name)
        return self._model

    def _embed(self, text: str) -> Sequence[float]:
        try:
            model = self.preload()
            vecs = model.encode([text], normalize_embeddings=True, show_progress_bar=False)
        except Exception as e:
            raise ProviderError(
                f"Local embedding failed: {e}",
                cause=e,
                context={"model": self.model_name},
            )
        if isinstance(vecs, np.ndarray):
            return vecs[0].tolist()
        return list(vecs[0])


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    if settings.embed_provider == "openai":
        if not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is not set. Put it in env or .env (server-side only).")
        return OpenAIEmbeddingClient(
            api_key=settings.openai_api_key,
            model=settings.embed_model,
            dimension=settings.embed_dim,
        )
    client = SentenceTransformerClient(settings.embed_model, settings.embed_dim)
    client.preload()
    return client
