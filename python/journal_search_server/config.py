"""Configuration management for journal-search server."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Server
    host: str = "127.0.0.1"
    port: int = 8765

    # Journal database: entries plus their embedding vectors
    db_path: Path = Path.home() / "journal-search" / "journal-search.db"

    # OpenAI (embeddings and chat completions)
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    request_timeout: float = 30.0  # Seconds per external API call

    # Embedding model - stored vectors must share this dimension
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1536

    # Conversational answers
    chat_model: str = "gpt-4o"
    chat_max_tokens: int = 500

    # Embedding processing
    embedding_batch_limit: int = 20  # Entries per /api/embeddings/process call
    embedding_concurrency: int = 1  # 1 = sequential, as the batch contract is written

    # Identity resolved by the upstream authenticating proxy
    user_id_header: str = "X-User-Id"

    # Logging
    log_level: str = "INFO"
    log_buffer_size: int = 1000  # Lines kept in memory for /api/logs

    class Config:
        env_prefix = "JOURNAL_SEARCH_"


settings = Settings()

# Ensure database directory exists
settings.db_path.parent.mkdir(parents=True, exist_ok=True)
