"""
Tests for the in-process Processing Worker

Run with: pytest backend/tests/test_processing_worker.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from models.enums import SessionStatus
from processing.errors import SessionNotFoundError
from processing.models import BatchRunResult
from processing.workers.processing_worker import ProcessingWorker, get_worker, set_worker


def completed(session_id, **kwargs):
    return BatchRunResult(session_id=session_id, status=SessionStatus.completed, **kwargs)


class TestEnqueue:

    def test_duplicate_session_refused(self):
        worker = ProcessingWorker(AsyncMock())

        assert worker.enqueue(7) is True
        assert worker.enqueue(7) is False
        assert worker.enqueue(8) is True
        assert worker.stats()["queued"] == 2
        assert worker.stats()["active_sessions"] == [7, 8]

    @pytest.mark.asyncio
    async def test_session_can_be_queued_again_after_finishing(self):
        processor = AsyncMock()
        processor.run.return_value = completed(7)
        worker = ProcessingWorker(processor)

        worker.enqueue(7)
        await worker.process_one(7)

        assert worker.is_active(7) is False
        assert worker.enqueue(7) is True


class TestProcessOne:

    @pytest.mark.asyncio
    async def test_records_run_statistics(self):
        processor = AsyncMock()
        processor.run.return_value = completed(7, pages=2, processed_rows=9, failed_rows=1, propagated_rows=3)
        worker = ProcessingWorker(processor)

        stats = await worker.process_one(7)

        assert stats["status"] == "completed"
        assert stats["processed_rows"] == 9
        assert stats["failed_rows"] == 1
        assert stats["propagated_rows"] == 3
        assert "timestamp" in stats
        assert worker.last_results[7] is stats

    @pytest.mark.asyncio
    async def test_unknown_session(self):
        processor = AsyncMock()
        processor.run.side_effect = SessionNotFoundError(99)
        worker = ProcessingWorker(processor)

        stats = await worker.process_one(99)

        assert stats["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_error_does_not_escape(self):
        processor = AsyncMock()
        processor.run.side_effect = RuntimeError("database went away")
        worker = ProcessingWorker(processor)
        worker.enqueue(5)

        stats = await worker.process_one(5)

        assert stats["status"] == "error"
        assert "database went away" in stats["error"]
        assert worker.is_active(5) is False

    @pytest.mark.asyncio
    async def test_kept_results_are_capped(self):
        processor = AsyncMock()
        processor.run.side_effect = lambda session_id: completed(session_id)
        worker = ProcessingWorker(processor, max_results=2)

        for session_id in (1, 2, 3):
            await worker.process_one(session_id)
        await worker.process_one(2)

        assert list(worker.last_results) == [3, 2]


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_consumers_drain_queue(self):
        processor = AsyncMock()
        processor.run.side_effect = lambda session_id: completed(session_id)
        worker = ProcessingWorker(processor, concurrency=2)

        for session_id in (1, 2, 3):
            worker.enqueue(session_id)
        worker.start()
        assert worker.running is True

        await asyncio.wait_for(worker.join(), timeout=5)
        await worker.stop()

        assert worker.running is False
        assert set(worker.last_results) == {1, 2, 3}
        assert worker.stats()["active_sessions"] == []

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        worker = ProcessingWorker(AsyncMock(), concurrency=3)

        worker.start()
        worker.start()

        assert worker.stats()["concurrency"] == 3
        assert len(worker._consumers) == 3
        await worker.stop()

    def test_shared_worker_registry(self):
        worker = ProcessingWorker(AsyncMock())
        set_worker(worker)
        try:
            assert get_worker() is worker
        finally:
            set_worker(None)
        assert get_worker() is None
