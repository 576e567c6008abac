"""Tests for batch, historical and queued embedding processing."""
import asyncio
import random

import pytest
from conftest import (FailingEmbeddingService, FakeEmbeddingService, USER_A,
                      USER_B)
from journal_search_server.errors import EntryNotFoundError
from journal_search_server.services.embedding_processor import (
    EmbeddingProcessor, build_searchable_text)


def test_build_searchable_text():
    entry = {"title": "Beach", "content": "Sunny day", "tags": ["family", "summer"]}

    assert build_searchable_text(entry) == \
        "Title: Beach\n\nSunny day\n\nTags: family, summer"
    assert build_searchable_text({"title": None, "content": "Plain", "tags": []}) == "Plain"


def test_process_entry_stores_embedding(temp_db, embedding_service):
    processor = EmbeddingProcessor(temp_db, embedding_service)
    entry = temp_db.create_entry(USER_A, "beach trip with family", title="Holiday")

    asyncio.run(processor.process_entry(entry["id"]))

    stored = temp_db.get_entry(entry["id"])
    assert stored["embedding"] is not None
    assert stored["embedding_model"] == embedding_service.model_name
    assert stored["searchable_text"] == "Title: Holiday\n\nbeach trip with family"


def test_process_entry_unknown_id(temp_db, embedding_service):
    processor = EmbeddingProcessor(temp_db, embedding_service)

    with pytest.raises(EntryNotFoundError):
        asyncio.run(processor.process_entry("missing"))


@pytest.mark.parametrize("concurrency", [1, 4])
def test_process_missing_respects_batch_limit(temp_db, embedding_service,
                                              concurrency):
    processor = EmbeddingProcessor(temp_db, embedding_service, concurrency)
    for i in range(7):
        temp_db.create_entry(USER_A, f"entry number {i}")

    result = asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit=5))

    assert result.attempted == 5
    assert result.succeeded == 5
    assert result.failed == 0
    assert temp_db.embedding_status(USER_A)["needs_processing"] == 2


def test_process_missing_only_touches_requesting_user(temp_db, embedding_service):
    processor = EmbeddingProcessor(temp_db, embedding_service)
    temp_db.create_entry(USER_A, "mine")
    temp_db.create_entry(USER_B, "theirs")

    asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit=10))

    assert temp_db.embedding_status(USER_A)["needs_processing"] == 0
    assert temp_db.embedding_status(USER_B)["needs_processing"] == 1


def test_process_missing_isolates_failures(temp_db):
    processor = EmbeddingProcessor(temp_db, FailingEmbeddingService("broken"))
    temp_db.create_entry(USER_A, "good one")
    temp_db.create_entry(USER_A, "broken one")
    temp_db.create_entry(USER_A, "another good one")

    result = asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit=10))

    assert (result.attempted, result.succeeded, result.failed) == (3, 2, 1)
    assert temp_db.embedding_status(USER_A)["with_embeddings"] == 2


def test_process_missing_batch_invariants_hold_for_random_batches(temp_db):
    rng = random.Random(7)
    processor = EmbeddingProcessor(temp_db, FailingEmbeddingService("broken"), 3)
    for i in range(30):
        marker = "broken" if rng.random() < 0.3 else "fine"
        temp_db.create_entry(USER_A, f"{marker} entry {i}")

    for _ in range(10):
        batch_limit = rng.randint(0, 6)
        result = asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit))
        assert result.attempted <= batch_limit
        assert result.succeeded + result.failed == result.attempted


def test_total_outage_counts_every_entry_as_error(temp_db):
    processor = EmbeddingProcessor(temp_db, FailingEmbeddingService(fail_all=True))
    for i in range(4):
        temp_db.create_entry(USER_A, f"entry {i}")

    result = asyncio.run(processor.process_all_historical_entries(USER_A))

    assert result.total_entries == 4
    assert result.processed_entries == 0
    assert result.error_entries == 4
    assert result.skipped_entries == 0


def test_process_all_is_idempotent(temp_db, embedding_service):
    processor = EmbeddingProcessor(temp_db, embedding_service)
    for i in range(3):
        temp_db.create_entry(USER_A, f"memory {i}")

    first = asyncio.run(processor.process_all_historical_entries(USER_A))
    second = asyncio.run(processor.process_all_historical_entries(USER_A))

    assert (first.total_entries, first.processed_entries, first.skipped_entries) == (3, 3, 0)
    assert second.processed_entries == 0
    assert second.skipped_entries == 3
    assert second.error_entries == 0
    assert second.execution_time_ms >= 0


def test_process_all_retries_previous_errors(temp_db):
    processor = EmbeddingProcessor(temp_db, FailingEmbeddingService(fail_all=True))
    temp_db.create_entry(USER_A, "first try fails")

    failed = asyncio.run(processor.process_all_historical_entries(USER_A))
    processor.embedding_service = FakeEmbeddingService()
    recovered = asyncio.run(processor.process_all_historical_entries(USER_A))

    assert failed.error_entries == 1
    assert recovered.processed_entries == 1
    assert recovered.skipped_entries == 0


def test_queue_processes_entries_in_background(temp_db, embedding_service):
    processor = EmbeddingProcessor(temp_db, embedding_service)
    first = temp_db.create_entry(USER_A, "queued first")
    second = temp_db.create_entry(USER_A, "queued second")

    async def scenario():
        await processor.queue_entry_for_processing(first["id"])
        await processor.queue_entry_for_processing(second["id"])
        await processor.queue_entry_for_processing(second["id"])
        await processor.wait_until_idle()

    asyncio.run(scenario())

    assert temp_db.embedding_status(USER_A)["with_embeddings"] == 2
    assert len(embedding_service.calls) == 2
    assert processor.queued_entry_ids == []


def test_queue_survives_failing_entries(temp_db):
    processor = EmbeddingProcessor(temp_db, FailingEmbeddingService("broken"))
    bad = temp_db.create_entry(USER_A, "broken entry")
    good = temp_db.create_entry(USER_A, "good entry")

    async def scenario():
        await processor.queue_entry_for_processing(bad["id"])
        await processor.queue_entry_for_processing("does-not-exist")
        await processor.queue_entry_for_processing(good["id"])
        await processor.wait_until_idle()

    asyncio.run(scenario())

    assert temp_db.get_entry(good["id"])["embedding"] is not None
    assert temp_db.get_entry(bad["id"])["embedding"] is None


def test_close_cancels_pending_queue(temp_db):
    processor = EmbeddingProcessor(temp_db, FakeEmbeddingService())
    entry = temp_db.create_entry(USER_A, "never processed")

    async def scenario():
        await processor.queue_entry_for_processing(entry["id"])
        await processor.close()

    asyncio.run(scenario())

    assert not processor.is_processing
    assert processor.queued_entry_ids == []


class EditingEmbeddingService(FakeEmbeddingService):
    """Edits the entry while its embedding is being generated."""

    def __init__(self, db, entry_id, new_content):
        super().__init__()
        self.db = db
        self.entry_id = entry_id
        self.new_content = new_content

    async def generate_embedding(self, text):
        if self.new_content is not None:
            self.db.update_entry(self.entry_id, USER_A, content=self.new_content)
            self.new_content = None
        return await super().generate_embedding(text)


def test_edit_during_embedding_discards_stale_vector(temp_db):
    entry = temp_db.create_entry(USER_A, "first draft about taxes",
                                 created_at="2024-01-01T00:00:00+00:00")
    service = EditingEmbeddingService(temp_db, entry["id"], "beach day with family")
    processor = EmbeddingProcessor(temp_db, service)

    result = asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit=5))

    stored = temp_db.get_entry(entry["id"])
    assert stored["content"] == "beach day with family"
    assert stored["embedding"] is None
    assert stored["searchable_text"] is None
    assert (result.attempted, result.succeeded, result.failed) == (1, 0, 1)
    assert [e["id"] for e in temp_db.get_entries_missing_embeddings(USER_A)] == [entry["id"]]

    asyncio.run(processor.process_missing_embeddings(USER_A, batch_limit=5))

    stored = temp_db.get_entry(entry["id"])
    assert stored["searchable_text"] == "beach day with family"
    assert stored["embedding"] is not None


def test_queue_picks_up_entry_edited_mid_flight(temp_db):
    entry = temp_db.create_entry(USER_A, "old words",
                                 created_at="2024-01-01T00:00:00+00:00")
    service = EditingEmbeddingService(temp_db, entry["id"], "new words")
    processor = EmbeddingProcessor(temp_db, service)

    async def scenario():
        await processor.queue_entry_for_processing(entry["id"])
        await processor.wait_until_idle()
        # an edit through the API queues the entry again
        await processor.queue_entry_for_processing(entry["id"])
        await processor.wait_until_idle()

    asyncio.run(scenario())

    assert temp_db.get_entry(entry["id"])["searchable_text"] == "new words"
