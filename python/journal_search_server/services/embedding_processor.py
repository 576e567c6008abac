"""Background and batch generation of journal entry embeddings.

The processor only fills in *missing* embeddings. Editing an entry through the
API clears its embedding, which is what makes it eligible again.
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from journal_search_server.errors import EntryNotFoundError
from journal_search_server.services.database import Database
from journal_search_server.services.embeddings import EmbeddingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchResult:
    attempted: int
    succeeded: int
    failed: int


@dataclass(frozen=True)
class HistoricalResult:
    total_entries: int
    processed_entries: int
    skipped_entries: int
    error_entries: int
    execution_time_ms: int


def build_searchable_text(entry: Dict[str, Any]) -> str:
    """Combine title, content and tags into the text that gets embedded."""
    text = entry["content"]
    if entry.get("title"):
        text = f"Title: {entry['title']}\n\n{text}"
    if entry.get("tags"):
        text = f"{text}\n\nTags: {', '.join(entry['tags'])}"
    return text


def has_embedding(entry: Dict[str, Any]) -> bool:
    return (entry.get("embedding") is not None
            and entry.get("last_embedding_update") is not None)


class EmbeddingProcessor:
    """Generates and stores embeddings for journal entries."""

    def __init__(self,
                 db: Database,
                 embedding_service: EmbeddingService,
                 concurrency: int = 1):
        self.db = db
        self.embedding_service = embedding_service
        self.concurrency = max(1, concurrency)
        self._queue = deque()
        self._worker: Optional[asyncio.Task] = None

    async def process_entry(self, entry_id: str) -> bool:
        """Generate and persist the embedding for one entry.

        Returns False without writing when the entry was edited while its
        embedding was being generated; it stays missing an embedding.
        Raises EntryNotFoundError for unknown ids; embedding failures
        propagate to the caller.
        """
        entry = self.db.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)

        searchable_text = build_searchable_text(entry)
        embedding = await self.embedding_service.generate_embedding(
            searchable_text)
        stored = self.db.store_embedding(
            entry_id,
            embedding,
            self.embedding_service.model_name,
            searchable_text,
            expected_updated_at=entry["updated_at"])
        if stored:
            logger.debug(f"Stored embedding for entry {entry_id}")
        else:
            logger.info(
                f"Entry {entry_id} changed during embedding, discarding result")
        return stored

    async def _process_isolated(self, entry_id: str,
                                semaphore: asyncio.Semaphore) -> bool:
        """Process one entry of a batch; a failure is logged, not raised."""
        async with semaphore:
            try:
                return await self.process_entry(entry_id)
            except Exception as e:
                logger.warning(
                    f"Failed to process embedding for entry {entry_id}: {e}")
                return False

    async def _process_many(self, entry_ids: List[str]) -> List[bool]:
        semaphore = asyncio.Semaphore(self.concurrency)
        return await asyncio.gather(
            *(self._process_isolated(entry_id, semaphore)
              for entry_id in entry_ids))

    async def process_missing_embeddings(self, user_id: str,
                                         batch_limit: int = 20) -> BatchResult:
        """Process up to batch_limit of a user's entries lacking an embedding."""
        if batch_limit <= 0:
            return BatchResult(attempted=0, succeeded=0, failed=0)

        entries = self.db.get_entries_missing_embeddings(user_id,
                                                         limit=batch_limit)
        logger.info(
            f"Found {len(entries)} entries needing embeddings for user {user_id}")

        outcomes = await self._process_many([entry["id"] for entry in entries])
        succeeded = sum(1 for ok in outcomes if ok)
        result = BatchResult(attempted=len(outcomes),
                             succeeded=succeeded,
                             failed=len(outcomes) - succeeded)
        logger.info(f"Batch embedding processing completed: {result}")
        return result

    async def process_all_historical_entries(
            self, user_id: str) -> HistoricalResult:
        """Embed every entry of a user that does not have an embedding yet.

        Safe to re-run: entries that already hold an embedding are skipped.
        """
        start_time = time.perf_counter()
        entries = self.db.list_entries(user_id)
        pending = [entry["id"] for entry in entries if not has_embedding(entry)]
        skipped = len(entries) - len(pending)
        logger.info(
            f"Historical processing for user {user_id}: {len(entries)} entries, "
            f"{len(pending)} pending, {skipped} already embedded")

        outcomes = await self._process_many(pending)
        processed = sum(1 for ok in outcomes if ok)
        result = HistoricalResult(
            total_entries=len(entries),
            processed_entries=processed,
            skipped_entries=skipped,
            error_entries=len(outcomes) - processed,
            execution_time_ms=int((time.perf_counter() - start_time) * 1000))
        logger.info(f"Historical processing completed: {result}")
        return result

    # -------------------------------------------------------------------------
    # Fire-and-forget queue
    # -------------------------------------------------------------------------

    @property
    def queued_entry_ids(self) -> List[str]:
        return list(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def queue_entry_for_processing(self, entry_id: str):
        """Schedule an entry for embedding generation and return immediately."""
        if entry_id not in self._queue:
            self._queue.append(entry_id)
            logger.info(f"Queued entry for embedding processing: {entry_id}")

        if not self.is_processing:
            self._worker = asyncio.create_task(self._drain_queue())

    async def _drain_queue(self):
        logger.info(f"Starting embedding queue, items: {len(self._queue)}")
        while self._queue:
            entry_id = self._queue.popleft()
            try:
                if await self.process_entry(entry_id):
                    logger.info(f"Processed embedding for entry: {entry_id}")
            except Exception as e:
                logger.error(
                    f"Failed to process embedding for entry {entry_id}: {e}")
        logger.info("Embedding queue completed")

    async def wait_until_idle(self):
        """Wait for the queue worker to finish the entries queued so far."""
        while self.is_processing:
            await asyncio.shield(self._worker)

    async def close(self):
        """Cancel the queue worker; pending queued entries are dropped."""
        if self.is_processing:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        if self._queue:
            logger.info(f"Dropping {len(self._queue)} queued entries on shutdown")
            self._queue.clear()
