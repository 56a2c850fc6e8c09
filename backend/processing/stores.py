"""
SQLAlchemy stores used by the batch processor.

- RuleStore: active accounts and rule lists, in priority order
- TransactionStore: unprocessed pages, bulk page writes, propagation reads/writes
- SessionStore: upload session status and counters

Each call opens its own short-lived AsyncSession so a page write is one
transaction and a failed write leaves earlier pages committed.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update

from database.classification_models import (
    AccountDB, KoreksiRuleDB, ObyekRuleDB, WithholdingTaxRuleDB, TaxKeywordDB,
    UploadSessionDB, TransactionDataDB
)
from models.enums import FlagKind, SessionStatus
from processing.models import ClassifiedRow, DerivedAttributes, TransactionRow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Statuses a session may be canceled from
CANCELABLE_STATUSES = (SessionStatus.uploaded.value, SessionStatus.processing.value)


# ==================== CONVERSIONS ====================

def row_from_db(record: TransactionDataDB) -> TransactionRow:
    return TransactionRow(
        id=record.id,
        session_id=record.session_id,
        document_type=record.document_type or "",
        document_number=record.document_number or "",
        posting_date=record.posting_date,
        account=record.account or "",
        account_name=record.account_name or "",
        description=record.keterangan or "",
        debit=record.debet if record.debet is not None else ZERO,
        credit=record.credit if record.credit is not None else ZERO,
        net=record.net if record.net is not None else ZERO,
    )


def derived_from_db(record: TransactionDataDB) -> DerivedAttributes:
    return DerivedAttributes(
        nature=record.analisa_nature_akun,
        koreksi=record.koreksi,
        obyek=record.obyek,
        koreksi_obyek=record.analisa_koreksi_obyek,
        wth_21_cr=record.wth_21_cr,
        wth_23_cr=record.wth_23_cr,
        wth_26_cr=record.wth_26_cr,
        wth_4_2_cr=record.wth_4_2_cr,
        wth_15_cr=record.wth_15_cr,
        pk_cr=record.pk_cr,
        pm_db=record.pm_db,
        um_pajak_db=record.um_pajak_db,
        additional_analysis=record.analisa_tambahan,
        is_processed=bool(record.is_processed),
        processing_error=record.processing_error,
    )


def derived_to_columns(derived: DerivedAttributes) -> Dict[str, Any]:
    """Column values for every derived field of a row"""
    columns = {
        "analisa_nature_akun": derived.nature,
        "koreksi": derived.koreksi,
        "obyek": derived.obyek,
        "analisa_koreksi_obyek": derived.koreksi_obyek,
        "analisa_tambahan": derived.additional_analysis,
        "is_processed": derived.is_processed,
        "processing_error": derived.processing_error,
    }
    columns.update(flag_columns(derived))
    return columns


def flag_columns(derived: DerivedAttributes) -> Dict[str, Optional[Decimal]]:
    """Column values for the propagated tax buckets only"""
    return {flag.value: derived.bucket(flag) for flag in FlagKind}


# ==================== RULES ====================

class RuleStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def _all(self, query) -> List[Any]:
        async with self.session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def get_active_accounts(self) -> List[AccountDB]:
        return await self._all(
            select(AccountDB).where(AccountDB.is_active.is_(True)).order_by(AccountDB.id)
        )

    async def get_active_koreksi_rules(self) -> List[KoreksiRuleDB]:
        return await self._all(
            select(KoreksiRuleDB).where(KoreksiRuleDB.is_active.is_(True)).order_by(KoreksiRuleDB.id.desc())
        )

    async def get_active_obyek_rules(self) -> List[ObyekRuleDB]:
        return await self._all(
            select(ObyekRuleDB).where(ObyekRuleDB.is_active.is_(True)).order_by(ObyekRuleDB.id.desc())
        )

    async def get_active_withholding_tax_rules(self) -> List[WithholdingTaxRuleDB]:
        return await self._all(
            select(WithholdingTaxRuleDB)
            .where(WithholdingTaxRuleDB.is_active.is_(True))
            .order_by(WithholdingTaxRuleDB.priority.desc(), WithholdingTaxRuleDB.id)
        )

    async def get_active_tax_keywords(self) -> List[TaxKeywordDB]:
        return await self._all(
            select(TaxKeywordDB)
            .where(TaxKeywordDB.is_active.is_(True))
            .order_by(TaxKeywordDB.priority.desc(), TaxKeywordDB.id)
        )


# ==================== TRANSACTIONS ====================

class TransactionStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get_unprocessed_page(self, session_id: int, page_size: int) -> List[TransactionRow]:
        """Next page of unprocessed rows, ordered by row id."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(TransactionDataDB)
                .where(
                    TransactionDataDB.session_id == session_id,
                    TransactionDataDB.is_processed.is_(False),
                )
                .order_by(TransactionDataDB.id)
                .limit(page_size)
            )
            return [row_from_db(record) for record in result.scalars().all()]

    async def persist_page(self, items: Sequence[ClassifiedRow]):
        """Write a classified page in one transaction (all rows or none)."""
        if not items:
            return

        params = [{"id": item.row.id, **derived_to_columns(item.derived)} for item in items]
        async with self.session_factory() as db:
            try:
                await db.execute(update(TransactionDataDB), params)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def get_document_rows(self, session_id: int) -> List[ClassifiedRow]:
        """All rows of a session that carry a document number, ordered by row id."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(TransactionDataDB)
                .where(
                    TransactionDataDB.session_id == session_id,
                    TransactionDataDB.document_number.is_not(None),
                    TransactionDataDB.document_number != "",
                )
                .order_by(TransactionDataDB.id)
            )
            return [
                ClassifiedRow(row=row_from_db(record), derived=derived_from_db(record))
                for record in result.scalars().all()
            ]

    async def persist_propagated(self, changes: Dict[int, DerivedAttributes]):
        """Write propagated tax buckets; koreksi/obyek columns are not touched."""
        if not changes:
            return

        params = [{"id": row_id, **flag_columns(derived)} for row_id, derived in changes.items()]
        async with self.session_factory() as db:
            try:
                await db.execute(update(TransactionDataDB), params)
                await db.commit()
            except Exception:
                await db.rollback()
                raise


# ==================== SESSIONS ====================

class SessionStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get_session(self, session_id: int) -> Optional[UploadSessionDB]:
        async with self.session_factory() as db:
            return await db.get(UploadSessionDB, session_id)

    async def get_status(self, session_id: int) -> Optional[SessionStatus]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(UploadSessionDB.status).where(UploadSessionDB.id == session_id)
            )
            status = result.scalar_one_or_none()
            return SessionStatus(status) if status is not None else None

    async def update_progress(self, session_id: int, processed_rows: int, failed_rows: int):
        async with self.session_factory() as db:
            await db.execute(
                update(UploadSessionDB)
                .where(UploadSessionDB.id == session_id)
                .values(processed_rows=processed_rows, failed_rows=failed_rows)
            )
            await db.commit()

    async def set_status(
        self,
        session_id: int,
        status: SessionStatus,
        error_message: Optional[str] = None,
        expected_status: Optional[SessionStatus] = None
    ) -> bool:
        """
        Update the session status.

        With expected_status the update only applies while the session is
        still in that status.

        Returns:
            True if the status changed
        """
        values = {"status": status.value}
        if error_message is not None:
            values["error_message"] = error_message

        query = update(UploadSessionDB).where(UploadSessionDB.id == session_id)
        if expected_status is not None:
            query = query.where(UploadSessionDB.status == expected_status.value)

        async with self.session_factory() as db:
            result = await db.execute(query.values(**values))
            await db.commit()
            return result.rowcount > 0

    async def cancel(self, session_id: int) -> bool:
        """
        Mark a session canceled if it is still uploaded or processing.

        Returns:
            True if the status changed
        """
        async with self.session_factory() as db:
            result = await db.execute(
                update(UploadSessionDB)
                .where(
                    UploadSessionDB.id == session_id,
                    UploadSessionDB.status.in_(CANCELABLE_STATUSES),
                )
                .values(status=SessionStatus.canceled.value)
            )
            await db.commit()
            return result.rowcount > 0
