from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    uploaded = "uploaded"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    canceled = "canceled"


# A run never restarts a session in one of these states
TERMINAL_STATUSES = frozenset({
    SessionStatus.completed,
    SessionStatus.failed,
    SessionStatus.canceled,
})


class TaxCategory(str, Enum):
    input_tax = "input_tax"
    output_tax = "output_tax"


class FlagSide(str, Enum):
    credit = "credit"
    debit = "debit"


class FlagKind(str, Enum):
    """
    Tax flags a row can carry. The value is the name of the bucket on the
    row (and the column in transaction_data).
    """
    wth_21 = "wth_21_cr"
    wth_23 = "wth_23_cr"
    wth_26 = "wth_26_cr"
    wth_4_2 = "wth_4_2_cr"
    wth_15 = "wth_15_cr"
    output_tax = "pk_cr"
    input_tax = "pm_db"
    advance_tax = "um_pajak_db"

    @property
    def side(self) -> FlagSide:
        if self in (FlagKind.input_tax, FlagKind.advance_tax):
            return FlagSide.debit
        return FlagSide.credit

    @classmethod
    def from_account_tag(cls, tag: Optional[str]) -> Optional["FlagKind"]:
        """Parse an account's koreksi_obyek tag ("Wth 21 Cr", "PK Cr", ...)."""
        if not tag:
            return None
        return _ACCOUNT_TAGS.get(" ".join(tag.split()).lower())

    @classmethod
    def from_tax_type(cls, tax_type: Optional[str]) -> Optional["FlagKind"]:
        """Parse a withholding rule's tax_type ("wth_21", "wth_4_2", ...)."""
        if not tax_type:
            return None
        return _WITHHOLDING_TAX_TYPES.get(tax_type.strip().lower())


_ACCOUNT_TAGS = {
    "wth 21 cr": FlagKind.wth_21,
    "wth 23 cr": FlagKind.wth_23,
    "wth 26 cr": FlagKind.wth_26,
    "wth 4.2 cr": FlagKind.wth_4_2,
    "wth 15 cr": FlagKind.wth_15,
    "pk cr": FlagKind.output_tax,
    "pm db": FlagKind.input_tax,
    "um pajak db": FlagKind.advance_tax,
}

_WITHHOLDING_TAX_TYPES = {
    "wth_21": FlagKind.wth_21,
    "wth_23": FlagKind.wth_23,
    "wth_26": FlagKind.wth_26,
    "wth_4_2": FlagKind.wth_4_2,
    "wth_15": FlagKind.wth_15,
}
