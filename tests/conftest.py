"""
Pytest configuration and shared fixtures.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from docsearch.config import Settings
from docsearch.container import assemble
from docsearch.main import create_app
from docsearch.store import MemoryVectorStore

from .fakes import DIM, FakeEmbedder


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "api: HTTP tests against the FastAPI app with in-process doubles")


@pytest.fixture
def settings():
    return Settings(
        vector_store="memory",
        embed_provider="sentence-transformers",
        embed_model="fake",
        embed_dim=DIM,
        embed_workers=2,
        chunk_max_chars=150,
        openai_api_key=None,
        max_file_size_bytes=1024 * 1024,
    )


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return MemoryVectorStore(DIM)


@pytest.fixture
def chat_client():
    client = MagicMock()
    client.chat.completions.create.return_value.choices[0].message.content = "  grounded answer  "
    return client


@pytest.fixture
def services(settings, embedder, store, chat_client):
    return assemble(settings, embedder, store, chat_client=chat_client)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as c:
        yield c
