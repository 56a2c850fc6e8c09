"""
Journal Classification - Domain Models

Immutable values passed between the processing stages:
- Account / rule entries: run-scoped reference data
- TransactionRow: a journal row as uploaded
- DerivedAttributes: what classification (then propagation) derived for a row
- BatchRunResult: outcome of one batch run

Tax buckets are Optional[Decimal] throughout:
None means the flag does not apply, Decimal("0") means it applies and is zero.
"""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional

from models.enums import FlagKind, SessionStatus


# ==================== REFERENCE DATA ====================

@dataclass(frozen=True)
class Account:
    account_code: str
    account_name: str = ""
    account_type: str = ""
    nature: str = ""
    koreksi_obyek: str = ""
    analisa_tambahan: str = ""
    flag: Optional[FlagKind] = None


@dataclass(frozen=True)
class KoreksiRule:
    keyword: str
    value: str
    not_value: Optional[str] = None


@dataclass(frozen=True)
class ObyekRule:
    keyword: str
    value: str
    not_value: Optional[str] = None


@dataclass(frozen=True)
class WithholdingTaxRule:
    keyword: str
    flag: FlagKind
    tax_rate: Decimal
    priority: int = 0


# ==================== ROWS ====================

@dataclass(frozen=True)
class TransactionRow:
    """Journal row as uploaded. Never mutated by processing."""
    id: int
    session_id: int
    document_type: str = ""
    document_number: str = ""
    posting_date: Optional[date] = None
    account: str = ""
    account_name: str = ""
    description: str = ""
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    net: Decimal = Decimal("0")


@dataclass(frozen=True)
class DerivedAttributes:
    nature: Optional[str] = None
    koreksi: Optional[str] = None
    obyek: Optional[str] = None
    koreksi_obyek: Optional[str] = None
    wth_21_cr: Optional[Decimal] = None
    wth_23_cr: Optional[Decimal] = None
    wth_26_cr: Optional[Decimal] = None
    wth_4_2_cr: Optional[Decimal] = None
    wth_15_cr: Optional[Decimal] = None
    pk_cr: Optional[Decimal] = None
    pm_db: Optional[Decimal] = None
    um_pajak_db: Optional[Decimal] = None
    additional_analysis: Optional[str] = None
    is_processed: bool = False
    processing_error: Optional[str] = None

    def bucket(self, flag: FlagKind) -> Optional[Decimal]:
        return getattr(self, flag.value)

    def with_bucket(self, flag: FlagKind, amount: Optional[Decimal]) -> "DerivedAttributes":
        return replace(self, **{flag.value: amount})


@dataclass(frozen=True)
class ClassifiedRow:
    """A row together with the attributes derived for it so far."""
    row: TransactionRow
    derived: DerivedAttributes

    @property
    def failed(self) -> bool:
        return self.derived.processing_error is not None


# ==================== RUN RESULT ====================

@dataclass
class BatchRunResult:
    session_id: int
    status: SessionStatus
    pages: int = 0
    processed_rows: int = 0
    failed_rows: int = 0
    propagated_rows: int = 0
    skipped: bool = False
    error: Optional[str] = None
