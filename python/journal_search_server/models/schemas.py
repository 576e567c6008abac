"""Pydantic models for API requests/responses."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web client."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def require_text(value: str) -> str:
    """Strip surrounding whitespace, rejecting text that is blank."""
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class ConversationTurn(BaseModel):
    """Prior message in a conversation."""
    role: Literal["user", "assistant"]
    content: str


class EnhancedSearchRequest(CamelModel):
    """Request for enhanced search."""
    query: str = Field(..., min_length=1, description="Search query text")
    mode: Literal["vector", "conversational", "hybrid"] = Field(default="hybrid")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum number of results")
    threshold: float = Field(default=0.3, ge=0, le=1, description="Minimum vector similarity")
    strategy: Literal["balanced", "semantic", "keyword"] = Field(
        default="balanced", description="Blending strategy for hybrid mode")
    previous_messages: List[ConversationTurn] = Field(
        default_factory=list, description="Prior turns for conversational mode")

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        return require_text(v)


class ConversationRequest(CamelModel):
    """Request for conversational search."""
    query: str = Field(..., min_length=1, description="Question about the journal")
    previous_messages: List[ConversationTurn] = Field(default_factory=list)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        return require_text(v)


class SearchResult(CamelModel):
    """Single search result."""
    entry_id: str
    similarity: float
    snippet: str
    title: Optional[str] = None
    match_reason: str


class EnhancedSearchResponse(CamelModel):
    """Response from vector or hybrid search."""
    query: str
    mode: str
    results: List[SearchResult]
    total_results: int
    execution_time: int


class ConversationResponse(CamelModel):
    """Response from conversational search."""
    answer: str
    relevant_entries: List[SearchResult]
    confidence: float
    total_results: int
    execution_time: int


class EnhancedConversationResponse(ConversationResponse):
    """Conversational answer returned by the enhanced search endpoint."""
    query: str
    mode: str


class ProcessEmbeddingsResponse(CamelModel):
    message: str
    attempted: int
    succeeded: int
    failed: int


class QueueEntryResponse(CamelModel):
    message: str
    entry_id: str


class EmbeddingStatusResponse(CamelModel):
    total_entries: int
    with_embeddings: int
    needs_processing: int
    embedding_coverage: str


class ProcessAllResponse(CamelModel):
    message: str
    user_id: str
    total_entries: int
    processed_entries: int
    skipped_entries: int
    error_entries: int
    execution_time: int


class CreateEntryRequest(CamelModel):
    """Request to create a journal entry."""
    title: Optional[str] = Field(default=None, max_length=255)
    content: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        return require_text(v)


class UpdateEntryRequest(CamelModel):
    """Partial update of a journal entry."""
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else require_text(v)


class JournalEntryResponse(CamelModel):
    """Journal entry as returned to the owner."""
    id: str
    user_id: str
    title: Optional[str] = None
    content: str
    tags: List[str]
    has_embedding: bool
    last_embedding_update: Optional[str] = None
    created_at: str
    updated_at: str
