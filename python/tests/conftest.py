"""Shared fixtures and in-process fakes for the OpenAI-backed services."""
import re
from typing import Dict, List

import numpy as np
import pytest
from fastapi.testclient import TestClient
from journal_search_server import dependencies
from journal_search_server.errors import EmbeddingGenerationError
from journal_search_server.main import app
from journal_search_server.services.database import Database
from journal_search_server.services.embedding_processor import \
    EmbeddingProcessor
from journal_search_server.services.embeddings import cosine_similarity

FAKE_DIM = 128
USER_A = "user-a"
USER_B = "user-b"


def auth(user_id: str = USER_A) -> Dict[str, str]:
    return {"X-User-Id": user_id}


class FakeEmbeddingService:
    """Bag-of-words embeddings: one dimension per distinct lower-cased word."""

    model_name = "fake-bag-of-words"

    def __init__(self, dimension: int = FAKE_DIM):
        self.dimension = dimension
        self.vocabulary: Dict[str, int] = {}
        self.calls: List[str] = []

    def _index(self, word: str) -> int:
        if word not in self.vocabulary:
            self.vocabulary[word] = len(self.vocabulary)
        return self.vocabulary[word]

    async def generate_embedding(self, text: str) -> np.ndarray:
        self.calls.append(text)
        words = re.findall(r"\w+", text.lower())
        if not words:
            raise EmbeddingGenerationError("Text content is required")
        vector = np.zeros(self.dimension, dtype=np.float32)
        for word in words:
            vector[self._index(word)] += 1.0
        return vector

    async def generate_embeddings(self, texts: List[str]) -> List[np.ndarray]:
        return [await self.generate_embedding(text) for text in texts]

    def similarity(self, emb1: np.ndarray, emb2: np.ndarray) -> float:
        return cosine_similarity(emb1, emb2)


class FailingEmbeddingService(FakeEmbeddingService):
    """Fails for texts containing a marker word, or for everything."""

    def __init__(self, marker: str = "broken", fail_all: bool = False):
        super().__init__()
        self.marker = marker
        self.fail_all = fail_all

    async def generate_embedding(self, text: str) -> np.ndarray:
        if self.fail_all or self.marker in text.lower():
            self.calls.append(text)
            raise EmbeddingGenerationError("embedding API unavailable")
        return await super().generate_embedding(text)


class FakeChatService:
    model_name = "fake-chat"

    def __init__(self, reply: str = "You spent a sunny day at the beach with your family."):
        self.reply = reply
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        return self.reply


class RecordingProcessor(EmbeddingProcessor):
    """Processor that records queued ids instead of starting a worker task."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.queued: List[str] = []

    async def queue_entry_for_processing(self, entry_id: str):
        self.queued.append(entry_id)


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db = Database(tmp_path / "journal-search.db", embedding_dim=FAKE_DIM)
    yield db
    db.close()


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()


@pytest.fixture
def chat_service():
    return FakeChatService()


@pytest.fixture
def processor(temp_db, embedding_service):
    return RecordingProcessor(temp_db, embedding_service)


@pytest.fixture
def client(temp_db, embedding_service, chat_service, processor):
    """Create test client with the fakes injected."""
    app.dependency_overrides[dependencies.get_database] = lambda: temp_db
    app.dependency_overrides[dependencies.get_embedding_service] = \
        lambda: embedding_service
    app.dependency_overrides[dependencies.get_chat_service] = \
        lambda: chat_service
    app.dependency_overrides[dependencies.get_embedding_processor] = \
        lambda: processor

    yield TestClient(app)

    app.dependency_overrides.clear()
