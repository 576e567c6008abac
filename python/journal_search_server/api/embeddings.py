"""Embedding processing API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from journal_search_server.config import settings
from journal_search_server.dependencies import (get_current_user_id,
                                                get_database,
                                                get_embedding_processor)
from journal_search_server.models.schemas import (EmbeddingStatusResponse,
                                                  ProcessAllResponse,
                                                  ProcessEmbeddingsResponse,
                                                  QueueEntryResponse)
from journal_search_server.services.database import Database
from journal_search_server.services.embedding_processor import \
    EmbeddingProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/embeddings", tags=["embeddings"])


def format_coverage(with_embeddings: int, total_entries: int) -> str:
    """Percentage of entries with embeddings, e.g. "66.7%"; "0%" when empty."""
    if total_entries == 0:
        return "0%"
    return f"{with_embeddings / total_entries * 100:.1f}%"


@router.post("/process", response_model=ProcessEmbeddingsResponse)
async def process_embeddings(
    user_id: str = Depends(get_current_user_id),
    processor: EmbeddingProcessor = Depends(get_embedding_processor)):
    """Generate embeddings for a batch of the user's entries lacking one."""
    try:
        logger.info(f"Starting embedding processing for user: {user_id}")
        result = await processor.process_missing_embeddings(
            user_id, batch_limit=settings.embedding_batch_limit)
        return ProcessEmbeddingsResponse(
            message="Embedding processing completed",
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed)
    except Exception as e:
        logger.error(f"Embedding processing error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Embedding processing failed")


@router.post("/queue/{entry_id}", response_model=QueueEntryResponse)
async def queue_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    processor: EmbeddingProcessor = Depends(get_embedding_processor)):
    """Queue one of the user's entries for background embedding."""
    try:
        if db.get_entry(entry_id, user_id) is None:
            raise HTTPException(status_code=404, detail="Entry not found")
        await processor.queue_entry_for_processing(entry_id)
        return QueueEntryResponse(
            message="Entry queued for embedding processing",
            entry_id=entry_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Embedding queue error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to queue entry for processing")


@router.get("/status", response_model=EmbeddingStatusResponse)
async def embedding_status(user_id: str = Depends(get_current_user_id),
                           db: Database = Depends(get_database)):
    """Report how many of the user's entries have embeddings."""
    try:
        counts = db.embedding_status(user_id)
        return EmbeddingStatusResponse(
            total_entries=counts["total_entries"],
            with_embeddings=counts["with_embeddings"],
            needs_processing=counts["needs_processing"],
            embedding_coverage=format_coverage(counts["with_embeddings"],
                                               counts["total_entries"]))
    except Exception as e:
        logger.error(f"Embedding status error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to get embedding status")


@router.post("/process-all", response_model=ProcessAllResponse)
async def process_all_entries(
    user_id: str = Depends(get_current_user_id),
    processor: EmbeddingProcessor = Depends(get_embedding_processor)):
    """Embed every historical entry of the user that still lacks one."""
    try:
        result = await processor.process_all_historical_entries(user_id)
        return ProcessAllResponse(
            message="Historical entry processing completed",
            user_id=user_id,
            total_entries=result.total_entries,
            processed_entries=result.processed_entries,
            skipped_entries=result.skipped_entries,
            error_entries=result.error_entries,
            execution_time=result.execution_time_ms)
    except Exception as e:
        logger.error(f"Historical processing error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Historical entry processing failed")
