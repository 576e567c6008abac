"""Embedding service backed by the OpenAI embeddings API."""
import logging
import time
from typing import List, Optional

import numpy as np
from journal_search_server.config import settings
from journal_search_server.errors import (EmbeddingDimensionError,
                                          EmbeddingGenerationError)
from openai import AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)


def cosine_similarity(emb1: np.ndarray, emb2: np.ndarray) -> float:
    """Calculate cosine similarity between two embeddings.

    Raises ValueError when the vectors differ in length. Returns 0.0 when
    either vector has zero norm.
    """
    if emb1.shape != emb2.shape:
        raise ValueError(
            f"Vectors must have the same length: {emb1.shape} vs {emb2.shape}")
    norm = np.linalg.norm(emb1) * np.linalg.norm(emb2)
    if norm == 0:
        return 0.0
    return float(np.dot(emb1, emb2) / norm)


class EmbeddingService:
    """Service for generating text embeddings through OpenAI."""

    def __init__(self,
                 model_name: str = settings.embedding_model,
                 dimensions: int = settings.embedding_dimensions,
                 client: Optional[AsyncOpenAI] = None):
        """Initialize with an embedding model and its output dimension."""
        self.model_name = model_name
        self.dimension = dimensions
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key,
                                            base_url=settings.openai_base_url,
                                            timeout=settings.request_timeout)

    def _validate(self, vector: np.ndarray) -> np.ndarray:
        if vector.shape != (self.dimension, ):
            raise EmbeddingDimensionError(self.dimension, int(vector.size))
        return vector

    async def generate_embeddings(self, texts: List[str]) -> List[np.ndarray]:
        """Generate embeddings for multiple texts, one vector per text."""
        cleaned = [text.strip() for text in texts]
        if not cleaned or any(not text for text in cleaned):
            raise EmbeddingGenerationError(
                "Text content is required for embedding generation")

        t1 = time.perf_counter()
        try:
            response = await self.client.embeddings.create(
                model=self.model_name,
                input=cleaned,
                encoding_format="float",
                dimensions=self.dimension)
        except OpenAIError as e:
            raise EmbeddingGenerationError(
                f"Failed to generate embeddings: {e}") from e

        if len(response.data) != len(cleaned):
            raise EmbeddingGenerationError(
                f"Expected {len(cleaned)} embeddings, got {len(response.data)}")

        vectors = [
            self._validate(np.asarray(item.embedding, dtype=np.float32))
            for item in sorted(response.data, key=lambda item: item.index)
        ]
        logger.debug(
            f"Generated {len(vectors)} embeddings in {(time.perf_counter()-t1)*1000:.1f}ms"
        )
        return vectors

    async def generate_embedding(self, text: str) -> np.ndarray:
        """Generate an embedding for a single text."""
        vectors = await self.generate_embeddings([text])
        return vectors[0]

    def similarity(self, emb1: np.ndarray, emb2: np.ndarray) -> float:
        """Calculate cosine similarity between two embeddings."""
        return cosine_similarity(emb1, emb2)
