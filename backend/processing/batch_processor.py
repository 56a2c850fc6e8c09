"""
Batch Processor

Runs classification for one upload session:

    processing -> completed | failed | canceled

1. Terminal sessions (completed, failed, canceled) are left alone.
2. Rules are loaded once; a load failure fails the session, no rows touched.
3. Pages of unprocessed rows are fetched in row-id order, classified row by
   row and written back in one bulk write per page. A row that cannot be
   classified is stored with its error and counted as failed; a page that
   cannot be fetched or written fails the whole session.
4. Counters and the progress percentage are updated after every page.
5. The session status is re-read before every page; a session canceled
   from outside stops after the page in flight. Nothing is rolled back.
6. After the last page the propagator runs once over the whole session.
   Its failure is recorded on the session but does not fail it. Only a
   session still processing is marked completed; a cancel that lands
   during propagation stands.
"""

import logging
from typing import Optional

from config import get_settings
from logging_config import set_processing_context, clear_processing_context
from models.enums import SessionStatus, TERMINAL_STATUSES
from processing.classifier import classify_safely
from processing.errors import (
    PagePersistError, PropagationError, RuleLoadError, SessionNotFoundError
)
from processing.models import BatchRunResult
from processing.progress import progress_key, progress_percentage
from processing.propagator import Propagator
from processing.rule_cache import load_rule_set
from processing.stores import RuleStore, SessionStore, TransactionStore
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Paged read-classify-persist loop for one session at a time.

    The caller guarantees at most one active run per session id.
    """

    def __init__(
        self,
        rule_store,
        transaction_store,
        session_store,
        progress_store,
        page_size: Optional[int] = None,
        propagator: Optional[Propagator] = None
    ):
        self.rule_store = rule_store
        self.transaction_store = transaction_store
        self.session_store = session_store
        self.progress_store = progress_store
        self.page_size = page_size or get_settings().BATCH_SIZE
        self.propagator = propagator or Propagator(transaction_store)

    @classmethod
    def from_session_factory(cls, session_factory, progress_store, page_size: Optional[int] = None) -> "BatchProcessor":
        """Build a processor backed by the SQLAlchemy stores"""
        return cls(
            rule_store=RuleStore(session_factory),
            transaction_store=TransactionStore(session_factory),
            session_store=SessionStore(session_factory),
            progress_store=progress_store,
            page_size=page_size,
        )

    async def run(self, session_id: int) -> BatchRunResult:
        """
        Process every unprocessed row of a session.

        Raises:
            SessionNotFoundError: the session does not exist
        """
        session = await self.session_store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        status = SessionStatus(session.status)
        if status in TERMINAL_STATUSES:
            logger.info(f"Session {session.session_code} is already {status.value}, skipping processing")
            return BatchRunResult(session_id=session_id, status=status, skipped=True)

        set_processing_context(session_id, session.session_code)
        try:
            return await self._run(session)
        except Exception as e:
            # Anything not handled below leaves the session failed, not stuck in processing
            logger.error(f"Unexpected error processing session {session_id}: {e}", exc_info=True)
            capture_exception(e, session_id=session_id)
            await self.session_store.set_status(session_id, SessionStatus.failed, error_message=str(e))
            raise
        finally:
            clear_processing_context()

    async def _run(self, session) -> BatchRunResult:
        session_id = session.id
        total_rows = session.total_rows or 0
        result = BatchRunResult(
            session_id=session_id,
            status=SessionStatus.processing,
            processed_rows=session.processed_rows or 0,
            failed_rows=session.failed_rows or 0,
        )

        logger.info(f"Starting processing for session {session.session_code} (ID: {session_id})")
        await self.session_store.set_status(session_id, SessionStatus.processing)

        try:
            rule_set = await load_rule_set(self.rule_store)
        except RuleLoadError as e:
            logger.error(f"Failed to load rules for session {session_id}: {e}")
            return await self._fail(result, e)

        key = progress_key(session_id)

        while True:
            if await self.session_store.get_status(session_id) == SessionStatus.canceled:
                logger.info(f"Session {session_id} has been canceled after {result.pages} pages, stopping")
                result.status = SessionStatus.canceled
                return result

            page_number = result.pages + 1
            try:
                page = await self.transaction_store.get_unprocessed_page(session_id, self.page_size)
            except Exception as e:
                error = PagePersistError(f"failed to fetch page {page_number}: {e}", page=page_number)
                logger.error(f"Session {session_id}: {error}")
                return await self._fail(result, error)

            if not page:
                break

            classified = [classify_safely(row, rule_set) for row in page]
            page_failed = sum(1 for item in classified if item.failed)

            try:
                await self.transaction_store.persist_page(classified)
            except Exception as e:
                error = PagePersistError(f"failed to persist page {page_number}: {e}", page=page_number)
                logger.error(f"Session {session_id}: {error}")
                return await self._fail(result, error)

            result.pages = page_number
            result.processed_rows += len(classified) - page_failed
            result.failed_rows += page_failed

            await self.session_store.update_progress(session_id, result.processed_rows, result.failed_rows)
            handled = result.processed_rows + result.failed_rows
            percentage = progress_percentage(handled, total_rows)
            await self.progress_store.publish(key, percentage)

            logger.info(
                f"Processed {handled}/{total_rows} transactions ({percentage:.2f}%), "
                f"{result.failed_rows} failed"
            )

        caveat = None
        try:
            result.propagated_rows = await self.propagator.propagate(session_id, rule_set)
        except PropagationError as e:
            logger.warning(f"Failed to propagate document number fields for session {session_id}: {e}")
            caveat = f"Classification completed; document number propagation failed: {e}"

        completed = await self.session_store.set_status(
            session_id,
            SessionStatus.completed,
            error_message=caveat,
            expected_status=SessionStatus.processing,
        )
        if not completed:
            # Canceled while propagating; the cancel stands
            status = await self.session_store.get_status(session_id)
            logger.info(
                f"Session {session_id} is no longer processing "
                f"({status.value if status else 'missing'}), not marking it completed"
            )
            result.status = status or SessionStatus.canceled
            result.error = caveat
            return result

        await self.progress_store.publish(key, 100.0)

        result.status = SessionStatus.completed
        result.error = caveat
        logger.info(
            f"Processing completed for session {session.session_code}. "
            f"Processed: {result.processed_rows}, Failed: {result.failed_rows}"
        )
        return result

    async def _fail(self, result: BatchRunResult, error: Exception) -> BatchRunResult:
        capture_exception(error, session_id=result.session_id, pages=result.pages)
        await self.session_store.set_status(result.session_id, SessionStatus.failed, error_message=str(error))
        result.status = SessionStatus.failed
        result.error = str(error)
        return result
