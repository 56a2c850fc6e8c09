from .enums import (
    SessionStatus, TERMINAL_STATUSES, TaxCategory, FlagSide, FlagKind
)

__all__ = [
    'SessionStatus', 'TERMINAL_STATUSES', 'TaxCategory', 'FlagSide', 'FlagKind',
]
