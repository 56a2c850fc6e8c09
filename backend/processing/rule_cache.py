"""
Rule Cache

Loads accounts and the four rule lists once per processing run and freezes
them into a RuleSet. The RuleSet is handed to the classifier and the
propagator by reference; nothing is cached between runs, so concurrent
runs never share rule state and rule edits made mid-run are not seen until
the next run.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Tuple

from models.enums import FlagKind, TaxCategory
from processing.errors import RuleLoadError
from processing.models import Account, KoreksiRule, ObyekRule, WithholdingTaxRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSet:
    """Run-scoped snapshot of accounts and rules, in stored priority order."""
    accounts: Dict[str, Account] = field(default_factory=dict)
    koreksi_rules: Tuple[KoreksiRule, ...] = ()
    obyek_rules: Tuple[ObyekRule, ...] = ()
    withholding_rules: Tuple[WithholdingTaxRule, ...] = ()
    input_tax_keywords: Tuple[str, ...] = ()
    output_tax_keywords: Tuple[str, ...] = ()

    def account(self, account_code: Optional[str]) -> Optional[Account]:
        if not account_code:
            return None
        return self.accounts.get(account_code)

    def account_flag(self, account_code: Optional[str]) -> Optional[FlagKind]:
        account = self.account(account_code)
        return account.flag if account else None


def _keyword(raw: Optional[str]) -> str:
    return (raw or "").lower()


def _is_blank(raw: Optional[str]) -> bool:
    return not (raw or "").strip()


def _text(raw: Optional[str]) -> str:
    return raw or ""


def build_account(record) -> Account:
    """Convert an account record (ORM row or look-alike) to an Account."""
    tag = _text(record.koreksi_obyek).strip()
    flag = FlagKind.from_account_tag(tag)
    if tag and flag is None:
        logger.warning(f"Account {record.account_code} has unknown correction-object tag '{tag}', ignoring")

    return Account(
        account_code=record.account_code,
        account_name=_text(record.account_name),
        account_type=_text(getattr(record, "account_type", None)),
        nature=_text(record.nature),
        koreksi_obyek=tag,
        analisa_tambahan=_text(getattr(record, "analisa_tambahan", None)),
        flag=flag,
    )


def build_rule_set(
    accounts,
    koreksi_rules,
    obyek_rules,
    withholding_rules,
    tax_keywords,
) -> RuleSet:
    """
    Freeze already-fetched records into a RuleSet.

    String-typed tags, tax types and categories are resolved to enums here,
    once; records that cannot be resolved (or have a blank keyword) are
    logged and left out so they can never match.
    """
    account_map = {}
    for record in accounts:
        account = build_account(record)
        account_map[account.account_code] = account

    koreksi = tuple(
        KoreksiRule(keyword=_keyword(r.keyword), value=r.value, not_value=r.not_value)
        for r in koreksi_rules if not _is_blank(r.keyword)
    )
    obyek = tuple(
        ObyekRule(keyword=_keyword(r.keyword), value=r.value, not_value=r.not_value)
        for r in obyek_rules if not _is_blank(r.keyword)
    )

    withholding = []
    for r in withholding_rules:
        flag = FlagKind.from_tax_type(r.tax_type)
        if flag is None:
            logger.warning(f"Withholding rule '{r.keyword}' has unknown tax type '{r.tax_type}', skipping")
            continue
        if _is_blank(r.keyword):
            continue
        withholding.append(WithholdingTaxRule(
            keyword=_keyword(r.keyword),
            flag=flag,
            tax_rate=Decimal(str(r.tax_rate)),
            priority=r.priority or 0,
        ))

    input_keywords = []
    output_keywords = []
    for kw in tax_keywords:
        keyword = _keyword(kw.keyword)
        if _is_blank(keyword):
            continue
        if kw.tax_category == TaxCategory.input_tax.value:
            input_keywords.append(keyword)
        elif kw.tax_category == TaxCategory.output_tax.value:
            output_keywords.append(keyword)
        else:
            logger.warning(f"Tax keyword '{kw.keyword}' has unknown category '{kw.tax_category}', skipping")

    return RuleSet(
        accounts=account_map,
        koreksi_rules=koreksi,
        obyek_rules=obyek,
        withholding_rules=tuple(withholding),
        input_tax_keywords=tuple(input_keywords),
        output_tax_keywords=tuple(output_keywords),
    )


async def load_rule_set(rule_store) -> RuleSet:
    """
    Load a RuleSet from the rule store.

    Any failed read aborts the load with RuleLoadError.
    """
    loaded = {}
    reads = [
        ("accounts", rule_store.get_active_accounts),
        ("koreksi rules", rule_store.get_active_koreksi_rules),
        ("obyek rules", rule_store.get_active_obyek_rules),
        ("withholding tax rules", rule_store.get_active_withholding_tax_rules),
        ("tax keywords", rule_store.get_active_tax_keywords),
    ]
    for name, read in reads:
        try:
            loaded[name] = await read()
        except Exception as e:
            raise RuleLoadError(f"failed to load {name}: {e}") from e

    rule_set = build_rule_set(
        loaded["accounts"],
        loaded["koreksi rules"],
        loaded["obyek rules"],
        loaded["withholding tax rules"],
        loaded["tax keywords"],
    )

    logger.info(
        f"Loaded rule set: {len(rule_set.accounts)} accounts, "
        f"{len(rule_set.koreksi_rules)} koreksi, {len(rule_set.obyek_rules)} obyek, "
        f"{len(rule_set.withholding_rules)} withholding, "
        f"{len(rule_set.input_tax_keywords)}/{len(rule_set.output_tax_keywords)} input/output keywords"
    )
    return rule_set
