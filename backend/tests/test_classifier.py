"""
Unit Tests for the Classifier

Covers nature lookup, koreksi/obyek matching precedence, combined labels,
withholding/input/output tax buckets and row-level failure handling.

Run with: pytest backend/tests/test_classifier.py -v
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from models.enums import FlagKind
from processing.classifier import classify, classify_safely, combine_labels
from processing.rule_cache import build_rule_set

from conftest import account_record, label_rule, make_row, wht_rule


class TestNature:
    """Nature comes from the account, falling back to name then code."""

    def test_uses_account_nature(self, rule_set):
        result = classify(make_row(account="1101"), rule_set)
        assert result.nature == "Asset"

    def test_falls_back_to_account_name(self, rule_set):
        result = classify(make_row(account="5101"), rule_set)
        assert result.nature == "Beban Gaji"

    def test_falls_back_to_account_code(self, rule_set):
        result = classify(make_row(account="5999"), rule_set)
        assert result.nature == "5999"

    def test_unknown_account_leaves_nature_unset(self, rule_set):
        result = classify(make_row(account="0000"), rule_set)
        assert result.nature is None

    def test_additional_analysis_from_account(self, rule_set):
        assert classify(make_row(account="5101"), rule_set).additional_analysis == "Check payroll reconciliation"
        assert classify(make_row(account="1101"), rule_set).additional_analysis is None


class TestKoreksiObyek:
    """Keyword rules: first substring match in list order wins."""

    def test_first_match_wins_over_more_specific(self, rule_set):
        result = classify(make_row(description="bayar pph 21"), rule_set)
        assert result.koreksi == "A"

    def test_matching_is_case_insensitive(self, rule_set):
        result = classify(make_row(description="BIAYA ENTERTAIN klien"), rule_set)
        assert result.koreksi == "Koreksi Positif"

    def test_obyek_matched_independently(self, rule_set):
        result = classify(make_row(description="Sewa gedung kantor"), rule_set)
        assert result.koreksi is None
        assert result.obyek == "Obyek PPh 4(2)"

    def test_no_match_leaves_labels_unset(self, rule_set):
        result = classify(make_row(description="transfer antar bank"), rule_set)
        assert result.koreksi is None
        assert result.obyek is None
        assert result.koreksi_obyek is None

    def test_combined_label_when_both_set(self, rule_set):
        result = classify(make_row(description="gaji dan pph 21 karyawan"), rule_set)
        assert result.koreksi_obyek == "A - Obyek PPh 21"

    def test_combined_label_with_one_side(self):
        assert combine_labels("A", None) == "A"
        assert combine_labels(None, "Obyek") == "Obyek"
        assert combine_labels(None, None) is None

    def test_padded_keyword_matches_whole_word_only(self):
        rules = build_rule_set([], [label_rule(" sewa ", "X"), label_rule("gedung", "Y")], [], [], [])

        assert classify(make_row(description="persewaan gedung"), rules).koreksi == "Y"
        assert classify(make_row(description="biaya sewa gedung"), rules).koreksi == "X"

    def test_blank_keyword_never_matches(self):
        rules = build_rule_set([], [label_rule("  ", "EVERYTHING")], [], [], [])
        assert classify(make_row(description="anything at all"), rules).koreksi is None


class TestWithholdingTax:
    """Withholding buckets: credit * rate, credit side only."""

    def test_wth_21_computed_from_credit(self, rule_set):
        row = make_row(description="Potongan PPh 21 bulan Mei", credit="1000000")
        result = classify(row, rule_set)

        assert result.wth_21_cr == Decimal("20000.00")
        assert result.wth_23_cr is None
        assert result.wth_26_cr is None
        assert result.wth_4_2_cr is None
        assert result.wth_15_cr is None

    def test_multiple_buckets_can_match(self, rule_set):
        row = make_row(description="jasa sewa alat", credit="500000")
        result = classify(row, rule_set)

        assert result.wth_23_cr == Decimal("10000.00")
        assert result.wth_4_2_cr == Decimal("50000.00")

    @pytest.mark.parametrize("credit", ["0", "-250000"])
    def test_non_positive_credit_leaves_credit_buckets_unset(self, rule_set, credit):
        row = make_row(description="pph 21 jasa sewa ppn keluaran", credit=credit, debit="100")
        result = classify(row, rule_set)

        for flag in (FlagKind.wth_21, FlagKind.wth_23, FlagKind.wth_26,
                     FlagKind.wth_4_2, FlagKind.wth_15, FlagKind.output_tax):
            assert result.bucket(flag) is None

    def test_zero_rate_is_applicable_zero_not_unset(self):
        rules = build_rule_set([], [], [], [wht_rule("natura", "wth_21", "0")], [])
        result = classify(make_row(description="natura", credit="1000"), rules)
        assert result.wth_21_cr == Decimal("0")
        assert result.wth_21_cr is not None

    def test_unknown_tax_type_is_dropped_at_load(self):
        rules = build_rule_set([], [], [], [wht_rule("pph 22", "wth_22", "0.015")], [])
        assert rules.withholding_rules == ()


class TestVat:
    """Input tax on debit, output tax on credit."""

    def test_input_tax_takes_debit(self, rule_set):
        result = classify(make_row(description="PPN Masukan faktur 010", debit="110000"), rule_set)
        assert result.pm_db == Decimal("110000")

    def test_input_tax_needs_positive_debit(self, rule_set):
        result = classify(make_row(description="ppn masukan", credit="5000"), rule_set)
        assert result.pm_db is None

    def test_output_tax_takes_credit(self, rule_set):
        result = classify(make_row(description="ppn keluaran penjualan", credit="220000"), rule_set)
        assert result.pk_cr == Decimal("220000")
        assert result.pm_db is None

    def test_no_keyword_means_not_applicable(self, rule_set):
        result = classify(make_row(description="pembelian atk", debit="50000"), rule_set)
        assert result.pm_db is None
        assert result.pk_cr is None

    def test_advance_tax_is_always_unset(self, rule_set):
        result = classify(make_row(description="uang muka pajak", debit="100", account="1402"), rule_set)
        assert result.um_pajak_db is None


class TestClassifySafely:
    """Row-level failures are recorded, not raised."""

    def test_successful_row(self, rule_set):
        item = classify_safely(make_row(description="pph 21", credit="100"), rule_set)
        assert item.failed is False
        assert item.derived.is_processed is True

    def test_failure_is_recorded_on_row(self, rule_set):
        with patch("processing.classifier.classify", side_effect=ValueError("bad amount")):
            item = classify_safely(make_row(row_id=42), rule_set)

        assert item.failed is True
        assert item.row.id == 42
        assert item.derived.processing_error == "bad amount"
        assert item.derived.is_processed is True
        assert item.derived.koreksi is None

    def test_classify_does_not_mutate_row(self, rule_set):
        row = make_row(description="pph 21", credit="1000", account="2101")
        before = row
        classify(row, rule_set)
        assert row == before
        assert row.description == "pph 21"
