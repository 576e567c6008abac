"""Journal entry API endpoints."""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from journal_search_server.dependencies import (get_current_user_id,
                                                get_database,
                                                get_embedding_processor)
from journal_search_server.models.schemas import (CreateEntryRequest,
                                                  JournalEntryResponse,
                                                  UpdateEntryRequest)
from journal_search_server.services.database import Database
from journal_search_server.services.embedding_processor import (
    EmbeddingProcessor, has_embedding)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/journal", tags=["entries"])


def to_entry_response(entry: Dict[str, Any]) -> JournalEntryResponse:
    return JournalEntryResponse(id=entry["id"],
                                user_id=entry["user_id"],
                                title=entry["title"],
                                content=entry["content"],
                                tags=entry["tags"],
                                has_embedding=has_embedding(entry),
                                last_embedding_update=entry["last_embedding_update"],
                                created_at=entry["created_at"],
                                updated_at=entry["updated_at"])


@router.post("/entries", response_model=JournalEntryResponse)
async def create_entry(
    request: CreateEntryRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    processor: EmbeddingProcessor = Depends(get_embedding_processor)):
    """Create a journal entry and queue it for embedding."""
    try:
        entry = db.create_entry(user_id,
                                request.content,
                                title=request.title,
                                tags=request.tags)
        logger.info(f"Created entry {entry['id']} for user {user_id}")
        await processor.queue_entry_for_processing(entry["id"])
        return to_entry_response(entry)
    except Exception as e:
        logger.error(f"Create entry error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to create journal entry")


@router.get("/entries", response_model=List[JournalEntryResponse])
async def list_entries(limit: int = Query(default=20, ge=1, le=200),
                       user_id: str = Depends(get_current_user_id),
                       db: Database = Depends(get_database)):
    """List the user's entries, most recent first."""
    try:
        return [to_entry_response(e) for e in db.list_entries(user_id, limit)]
    except Exception as e:
        logger.error(f"List entries error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to fetch journal entries")


@router.get("/entries/{entry_id}", response_model=JournalEntryResponse)
async def get_entry(entry_id: str,
                    user_id: str = Depends(get_current_user_id),
                    db: Database = Depends(get_database)):
    """Get one of the user's entries."""
    entry = db.get_entry(entry_id, user_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return to_entry_response(entry)


@router.put("/entries/{entry_id}", response_model=JournalEntryResponse)
async def update_entry(
    entry_id: str,
    request: UpdateEntryRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    processor: EmbeddingProcessor = Depends(get_embedding_processor)):
    """Update an entry; a text change re-queues it for embedding."""
    try:
        entry = db.update_entry(entry_id,
                                user_id,
                                content=request.content,
                                title=request.title,
                                tags=request.tags)
        if entry is None:
            raise HTTPException(status_code=404, detail="Entry not found")
        if not has_embedding(entry):
            await processor.queue_entry_for_processing(entry_id)
        return to_entry_response(entry)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update entry error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to update journal entry")


@router.delete("/entries/{entry_id}", status_code=204)
async def delete_entry(entry_id: str,
                       user_id: str = Depends(get_current_user_id),
                       db: Database = Depends(get_database)):
    """Delete one of the user's entries."""
    try:
        if not db.delete_entry(entry_id, user_id):
            raise HTTPException(status_code=404, detail="Entry not found")
        return Response(status_code=204)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete entry error: {e}", exc_info=True)
        raise HTTPException(status_code=500,
                            detail="Failed to delete journal entry")
