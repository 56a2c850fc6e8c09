"""
Shared fixtures for the processing tests.

Rule records are plain namespaces shaped like the ORM rows the rule store
returns, so build_rule_set is exercised the same way a real run does.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from processing.models import DerivedAttributes, ClassifiedRow, TransactionRow
from processing.rule_cache import build_rule_set


def account_record(code, name="", nature="", tag="", note="", account_type=""):
    return SimpleNamespace(
        account_code=code,
        account_name=name,
        account_type=account_type,
        nature=nature,
        koreksi_obyek=tag,
        analisa_tambahan=note,
    )


def label_rule(keyword, value, not_value=None):
    return SimpleNamespace(keyword=keyword, value=value, not_value=not_value)


def wht_rule(keyword, tax_type, rate, priority=0):
    return SimpleNamespace(keyword=keyword, tax_type=tax_type, tax_rate=Decimal(str(rate)), priority=priority)


def tax_keyword(keyword, category, priority=0):
    return SimpleNamespace(keyword=keyword, tax_category=category, priority=priority)


def make_row(row_id=1, session_id=7, description="", debit="0", credit="0",
             account="", document_number="", account_name=""):
    return TransactionRow(
        id=row_id,
        session_id=session_id,
        document_type="JV",
        document_number=document_number,
        account=account,
        account_name=account_name,
        description=description,
        debit=Decimal(debit),
        credit=Decimal(credit),
        net=Decimal(debit) - Decimal(credit),
    )


def classified(row, **derived):
    return ClassifiedRow(row=row, derived=DerivedAttributes(is_processed=True, **derived))


@pytest.fixture
def rule_set():
    """A small but realistic rule set."""
    return build_rule_set(
        accounts=[
            account_record("1101", "Kas", "Asset"),
            account_record("2101", "Hutang PPh 21", "Liability", tag="Wth 21 Cr"),
            account_record("2102", "Hutang PPh 23", "Liability", tag="Wth 23 Cr"),
            account_record("2201", "PPN Keluaran", "Liability", tag="PK Cr"),
            account_record("1401", "PPN Masukan", "Asset", tag="PM DB"),
            account_record("1402", "Uang Muka Pajak", "Asset", tag="UM Pajak DB"),
            account_record("5101", "Beban Gaji", "", note="Check payroll reconciliation"),
            account_record("5999", "", ""),
        ],
        koreksi_rules=[
            label_rule("pph", "A"),
            label_rule("pph 21", "B"),
            label_rule("entertain", "Koreksi Positif"),
        ],
        obyek_rules=[
            label_rule("gaji", "Obyek PPh 21"),
            label_rule("sewa", "Obyek PPh 4(2)"),
        ],
        withholding_rules=[
            wht_rule("pph 21", "wth_21", "0.02"),
            wht_rule("jasa", "wth_23", "0.02"),
            wht_rule("sewa", "wth_4_2", "0.10"),
        ],
        tax_keywords=[
            tax_keyword("ppn masukan", "input_tax"),
            tax_keyword("ppn keluaran", "output_tax"),
        ],
    )
