"""
Journal Classification Processing Module

Rule-based classification of uploaded journal rows, paged batch
processing, and document-number propagation of tax flags.
"""

from .errors import (
    ProcessingError, SessionNotFoundError, RuleLoadError, PagePersistError, PropagationError
)
from .models import (
    Account, KoreksiRule, ObyekRule, WithholdingTaxRule,
    TransactionRow, DerivedAttributes, ClassifiedRow, BatchRunResult
)
from .rule_cache import RuleSet, build_rule_set, load_rule_set
from .classifier import classify, classify_safely
from .propagator import Propagator, propagate
from .batch_processor import BatchProcessor

__all__ = [
    "ProcessingError",
    "SessionNotFoundError",
    "RuleLoadError",
    "PagePersistError",
    "PropagationError",
    "Account",
    "KoreksiRule",
    "ObyekRule",
    "WithholdingTaxRule",
    "TransactionRow",
    "DerivedAttributes",
    "ClassifiedRow",
    "BatchRunResult",
    "RuleSet",
    "build_rule_set",
    "load_rule_set",
    "classify",
    "classify_safely",
    "Propagator",
    "propagate",
    "BatchProcessor",
]
