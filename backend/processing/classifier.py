"""
Classifier

Pure per-row classification: TransactionRow + RuleSet -> DerivedAttributes.

Order of evaluation:
1. nature of the account
2. koreksi (first matching keyword wins)
3. obyek (same, independent rule list)
4. combined "koreksi - obyek" label
5. withholding tax buckets (credit side, every matching rule)
6. input tax (debit side)
7. output tax (credit side)
8. advance tax bucket (reserved, always unset)
9. processed flag
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

from models.enums import FlagKind
from processing.models import ClassifiedRow, DerivedAttributes, TransactionRow
from processing.rule_cache import RuleSet

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def _money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def analyse_nature(row: TransactionRow, rule_set: RuleSet) -> Optional[str]:
    account = rule_set.account(row.account)
    if account is None:
        return None
    if account.nature:
        return account.nature
    if account.account_name:
        return account.account_name
    return row.account


def match_first(description: str, rules: Iterable) -> Optional[str]:
    """Value of the first rule whose keyword occurs in the description."""
    for rule in rules:
        if rule.keyword in description:
            return rule.value
    return None


def combine_labels(koreksi: Optional[str], obyek: Optional[str]) -> Optional[str]:
    if koreksi and obyek:
        return f"{koreksi} - {obyek}"
    return koreksi or obyek or None


def withholding_buckets(row: TransactionRow, description: str, rule_set: RuleSet) -> Dict[FlagKind, Decimal]:
    if row.credit <= ZERO:
        return {}

    buckets = {}
    for rule in rule_set.withholding_rules:
        if rule.keyword in description:
            # a later rule of the same type overwrites an earlier one
            buckets[rule.flag] = _money(row.credit * rule.tax_rate)
    return buckets


def _contains_any(description: str, keywords: Iterable[str]) -> bool:
    return any(keyword in description for keyword in keywords)


def input_tax(row: TransactionRow, description: str, rule_set: RuleSet) -> Optional[Decimal]:
    if row.debit > ZERO and _contains_any(description, rule_set.input_tax_keywords):
        return row.debit
    return None


def output_tax(row: TransactionRow, description: str, rule_set: RuleSet) -> Optional[Decimal]:
    if row.credit > ZERO and _contains_any(description, rule_set.output_tax_keywords):
        return row.credit
    return None


def classify(row: TransactionRow, rule_set: RuleSet) -> DerivedAttributes:
    """Derive classification attributes for one row. Has no side effects."""
    description = (row.description or "").lower()

    koreksi = match_first(description, rule_set.koreksi_rules)
    obyek = match_first(description, rule_set.obyek_rules)
    withholding = withholding_buckets(row, description, rule_set)

    account = rule_set.account(row.account)
    additional = account.analisa_tambahan if account and account.analisa_tambahan else None

    return DerivedAttributes(
        nature=analyse_nature(row, rule_set),
        koreksi=koreksi,
        obyek=obyek,
        koreksi_obyek=combine_labels(koreksi, obyek),
        wth_21_cr=withholding.get(FlagKind.wth_21),
        wth_23_cr=withholding.get(FlagKind.wth_23),
        wth_26_cr=withholding.get(FlagKind.wth_26),
        wth_4_2_cr=withholding.get(FlagKind.wth_4_2),
        wth_15_cr=withholding.get(FlagKind.wth_15),
        pm_db=input_tax(row, description, rule_set),
        pk_cr=output_tax(row, description, rule_set),
        um_pajak_db=None,
        additional_analysis=additional,
        is_processed=True,
    )


def classify_safely(row: TransactionRow, rule_set: RuleSet) -> ClassifiedRow:
    """
    Classify a row, turning any failure into a row-level error.

    Failed rows are still marked processed so the next page query does not
    pick them up again; processing_error tells them apart.
    """
    try:
        return ClassifiedRow(row=row, derived=classify(row, rule_set))
    except Exception as e:
        logger.warning(f"Failed to classify row {row.id}: {e}")
        return ClassifiedRow(
            row=row,
            derived=DerivedAttributes(is_processed=True, processing_error=str(e) or type(e).__name__),
        )
