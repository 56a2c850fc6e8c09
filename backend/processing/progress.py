"""
Progress surface

Percentages published by the batch processor and polled by clients.
Fire-and-forget for the writer, last write wins per key.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select

from config import get_settings
from database.classification_models import ProcessingProgressDB

logger = logging.getLogger(__name__)


def progress_key(session_id: int, prefix: Optional[str] = None) -> str:
    prefix = prefix or get_settings().PROGRESS_KEY_PREFIX
    return f"{prefix}:{session_id}"


def progress_percentage(handled: int, total: int) -> float:
    """Share of a session's rows handled so far, 0-100 with two decimals."""
    if total <= 0:
        return 100.0
    return round(min(handled / total * 100, 100.0), 2)


class InMemoryProgressStore:
    """Process-local progress store (development, tests, single-process deployments)."""

    def __init__(self):
        self._values: Dict[str, float] = {}

    async def publish(self, key: str, percentage: float):
        self._values[key] = percentage

    async def get(self, key: str) -> Optional[float]:
        return self._values.get(key)


class DatabaseProgressStore:
    """Progress stored in the processing_progress table, shared by API and worker processes."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def publish(self, key: str, percentage: float):
        try:
            async with self.session_factory() as db:
                record = await db.get(ProcessingProgressDB, key)
                if record is None:
                    db.add(ProcessingProgressDB(key=key, percentage=Decimal(str(percentage))))
                else:
                    record.percentage = Decimal(str(percentage))
                    record.updated_at = datetime.now(timezone.utc)
                await db.commit()
        except Exception as e:
            # Progress is advisory; a missed write must not fail the run
            logger.warning(f"Failed to publish progress for {key}: {e}")

    async def get(self, key: str) -> Optional[float]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ProcessingProgressDB.percentage).where(ProcessingProgressDB.key == key)
            )
            value = result.scalar_one_or_none()
            return float(value) if value is not None else None
