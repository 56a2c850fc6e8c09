from .connection import get_engine, get_session_factory, init_db, Base

# Import classification models to ensure they are registered with Base
from .classification_models import (
    AccountDB, KoreksiRuleDB, ObyekRuleDB, WithholdingTaxRuleDB, TaxKeywordDB,
    UploadSessionDB, TransactionDataDB, ProcessingProgressDB
)

__all__ = [
    'get_engine', 'get_session_factory', 'init_db', 'Base',
    'AccountDB', 'KoreksiRuleDB', 'ObyekRuleDB', 'WithholdingTaxRuleDB', 'TaxKeywordDB',
    'UploadSessionDB', 'TransactionDataDB', 'ProcessingProgressDB',
]
