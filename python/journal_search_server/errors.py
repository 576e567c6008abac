"""Exceptions raised by the journal-search services."""


class JournalSearchError(Exception):
    """Base class for journal-search errors."""


class EntryNotFoundError(JournalSearchError):
    """Raised when a journal entry does not exist (or is not visible to the user)."""

    def __init__(self, entry_id: str):
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


class EmbeddingGenerationError(JournalSearchError):
    """Raised when the embedding API fails to produce a vector."""


class EmbeddingDimensionError(JournalSearchError):
    """Raised when a vector does not have the configured embedding dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
