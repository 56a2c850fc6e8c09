"""
Processing Worker

Background worker that runs the batch processor for queued sessions.
Can be run inside the API process or as a one-shot standalone process.

Usage:
- API trigger: POST /api/processing/sessions/{session_id}/process
- Standalone: python -m processing.workers.processing_worker <session_id> [...]

Features:
- In-process asyncio queue with a fixed number of consumers
- At most one queued or running job per session id
- Error isolation (a failing session does not stop the worker)
"""

import argparse
import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import List, Optional, Set

from processing.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


class ProcessingWorker:
    """
    Background worker for session processing.

    This worker:
    1. Accepts session ids through enqueue()
    2. Runs BatchProcessor.run() for each, `concurrency` sessions at a time
    3. Refuses a session id that is already queued or running
    4. Keeps the last outcome of the most recent `max_results` sessions
    """

    def __init__(self, processor, concurrency: int = 4, max_results: int = 1000):
        """
        Initialize the worker.

        Args:
            processor: BatchProcessor used for every job
            concurrency: Number of sessions processed at the same time
            max_results: Number of finished sessions whose stats are kept
        """
        self.processor = processor
        self.concurrency = concurrency
        self._queue: asyncio.Queue = asyncio.Queue()
        self._active: Set[int] = set()
        self._consumers: List[asyncio.Task] = []
        self.max_results = max_results
        self.last_results: "OrderedDict[int, dict]" = OrderedDict()

    @property
    def running(self) -> bool:
        return bool(self._consumers)

    def is_active(self, session_id: int) -> bool:
        return session_id in self._active

    def enqueue(self, session_id: int) -> bool:
        """
        Queue a session for processing.

        Returns:
            False if the session is already queued or running
        """
        if session_id in self._active:
            logger.info(f"Session {session_id} is already queued or running")
            return False

        self._active.add(session_id)
        self._queue.put_nowait(session_id)
        logger.info(f"Queued session {session_id} for processing")
        return True

    async def process_one(self, session_id: int) -> dict:
        """
        Run one session and record the outcome.

        Returns:
            Processing statistics
        """
        try:
            result = await self.processor.run(session_id)
            stats = {
                "session_id": session_id,
                "status": result.status.value,
                "skipped": result.skipped,
                "pages": result.pages,
                "processed_rows": result.processed_rows,
                "failed_rows": result.failed_rows,
                "propagated_rows": result.propagated_rows,
                "error": result.error,
            }
        except SessionNotFoundError as e:
            logger.warning(str(e))
            stats = {"session_id": session_id, "status": "not_found", "error": str(e)}
        except Exception as e:
            logger.error(f"Worker error for session {session_id}: {e}")
            stats = {"session_id": session_id, "status": "error", "error": str(e)}
        finally:
            self._active.discard(session_id)

        stats["timestamp"] = datetime.now(timezone.utc).isoformat()
        self.last_results.pop(session_id, None)
        self.last_results[session_id] = stats
        while len(self.last_results) > self.max_results:
            self.last_results.popitem(last=False)
        return stats

    async def _consume(self, consumer_id: int):
        while True:
            session_id = await self._queue.get()
            try:
                stats = await self.process_one(session_id)
                logger.info(
                    f"Consumer {consumer_id} finished session {session_id}: {stats['status']}"
                )
            finally:
                self._queue.task_done()

    def start(self):
        """Start the consumer tasks on the running event loop."""
        if self._consumers:
            return
        logger.info(f"Starting processing worker (concurrency={self.concurrency})")
        self._consumers = [
            asyncio.create_task(self._consume(i)) for i in range(self.concurrency)
        ]

    async def join(self):
        """Wait until every queued session has been processed."""
        await self._queue.join()

    async def stop(self):
        """Stop the consumers. Sessions still queued are dropped (their status stays uploaded)."""
        for task in self._consumers:
            task.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        logger.info("Processing worker stopped")

    def stats(self) -> dict:
        return {
            "running": self.running,
            "concurrency": self.concurrency,
            "queued": self._queue.qsize(),
            "active_sessions": sorted(self._active),
        }


# Worker shared by the API process, created in the server lifespan
_worker: Optional[ProcessingWorker] = None


def get_worker() -> Optional[ProcessingWorker]:
    return _worker


def set_worker(worker: Optional[ProcessingWorker]):
    global _worker
    _worker = worker


async def run_worker(session_ids: List[int]):
    """Process the given sessions as a standalone process and exit."""
    from config import get_settings
    from database.connection import get_session_factory
    from logging_config import setup_logging
    from processing.batch_processor import BatchProcessor
    from processing.progress import DatabaseProgressStore
    from sentry_integration import init_sentry

    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.is_production, service_name="journal-worker")
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    session_factory = get_session_factory()
    processor = BatchProcessor.from_session_factory(session_factory, DatabaseProgressStore(session_factory))
    worker = ProcessingWorker(
        processor, concurrency=settings.WORKER_CONCURRENCY, max_results=len(session_ids)
    )

    for session_id in session_ids:
        worker.enqueue(session_id)

    worker.start()
    try:
        await worker.join()
    finally:
        await worker.stop()

    for stats in worker.last_results.values():
        logger.info(f"Session {stats['session_id']}: {stats['status']}")


def main():
    parser = argparse.ArgumentParser(description="Classify uploaded journal sessions")
    parser.add_argument("session_ids", nargs="+", type=int, help="Upload session ids to process")
    args = parser.parse_args()
    asyncio.run(run_worker(args.session_ids))


if __name__ == "__main__":
    main()
