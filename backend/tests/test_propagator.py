"""
Unit Tests for document-number propagation

Run with: pytest backend/tests/test_propagator.py -v
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from processing.errors import PropagationError
from processing.models import ClassifiedRow
from processing.propagator import Propagator, propagate

from conftest import classified, make_row


def apply(rows, changes):
    """Rows with the propagated attributes applied, as a store would persist them."""
    return [
        ClassifiedRow(row=item.row, derived=changes.get(item.row.id, item.derived))
        for item in rows
    ]


class TestPropagate:

    def test_tagged_credit_propagates_to_whole_document(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="500000", document_number="D1")),
            classified(
                make_row(2, account="5101", debit="500000", document_number="D1"),
                koreksi="Koreksi Positif", obyek="Obyek PPh 21",
            ),
        ]

        changes = propagate(rows, rule_set)

        assert changes[1].wth_21_cr == Decimal("500000")
        assert changes[2].wth_21_cr == Decimal("500000")
        assert changes[2].koreksi == "Koreksi Positif"
        assert changes[2].obyek == "Obyek PPh 21"

    def test_computed_value_preferred_over_credit(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="1000000", document_number="D1"),
                       wth_21_cr=Decimal("20000.00")),
            classified(make_row(2, account="5101", debit="1000000", document_number="D1")),
        ]

        changes = propagate(rows, rule_set)

        assert changes[2].wth_21_cr == Decimal("20000.00")
        assert 1 not in changes

    def test_debit_side_flag_uses_debit(self, rule_set):
        rows = [
            classified(make_row(1, account="1401", debit="110000", document_number="D9")),
            classified(make_row(2, account="1101", credit="110000", document_number="D9")),
        ]

        changes = propagate(rows, rule_set)

        assert changes[1].pm_db == Decimal("110000")
        assert changes[2].pm_db == Decimal("110000")
        assert changes[2].pk_cr is None

    def test_advance_tax_propagated_from_tagged_account(self, rule_set):
        rows = [
            classified(make_row(1, account="1402", debit="75000", document_number="D5")),
            classified(make_row(2, account="1101", credit="75000", document_number="D5")),
        ]

        changes = propagate(rows, rule_set)

        assert changes[2].um_pajak_db == Decimal("75000")

    def test_document_without_tagged_account_untouched(self, rule_set):
        rows = [
            classified(make_row(1, account="1101", credit="300", document_number="D2"),
                       wth_23_cr=Decimal("6.00"), koreksi="A"),
            classified(make_row(2, account="5101", debit="300", document_number="D2")),
        ]

        assert propagate(rows, rule_set) == {}

    def test_account_outside_rule_set_is_not_a_source(self, rule_set):
        # deactivated accounts are not loaded into the rule set
        rows = [
            classified(make_row(1, account="2109", credit="500", document_number="D8")),
            classified(make_row(2, account="5101", debit="500", document_number="D8")),
        ]

        assert propagate(rows, rule_set) == {}

    def test_rows_without_document_number_not_grouped(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="500", document_number="")),
            classified(make_row(2, account="5101", debit="500", document_number="  ")),
        ]

        assert propagate(rows, rule_set) == {}

    def test_documents_are_independent(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="500", document_number="D1")),
            classified(make_row(2, account="5101", debit="500", document_number="D2")),
        ]

        changes = propagate(rows, rule_set)

        assert set(changes) == {1}

    def test_tagged_row_without_value_leaves_document_unchanged(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", debit="100", document_number="D3")),
            classified(make_row(2, account="5101", debit="100", document_number="D3"),
                       wth_21_cr=Decimal("2.00")),
        ]

        assert propagate(rows, rule_set) == {}

    def test_largest_value_wins_between_conflicting_tagged_rows(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="400", document_number="D4")),
            classified(make_row(2, account="2101", credit="900", document_number="D4")),
            classified(make_row(3, account="5101", debit="1300", document_number="D4")),
        ]

        changes = propagate(rows, rule_set)
        reversed_changes = propagate(list(reversed(rows)), rule_set)

        assert {row_id: d.wth_21_cr for row_id, d in changes.items()} == {
            1: Decimal("900"), 2: Decimal("900"), 3: Decimal("900"),
        }
        assert changes == reversed_changes

    def test_several_flags_in_one_document(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="50", document_number="D6")),
            classified(make_row(2, account="2201", credit="110", document_number="D6")),
            classified(make_row(3, account="5101", debit="160", document_number="D6")),
        ]

        changes = propagate(rows, rule_set)

        assert changes[3].wth_21_cr == Decimal("50")
        assert changes[3].pk_cr == Decimal("110")
        assert changes[3].wth_23_cr is None

    def test_second_pass_changes_nothing(self, rule_set):
        rows = [
            classified(make_row(1, account="2101", credit="500000", document_number="D1")),
            classified(make_row(2, account="5101", debit="500000", document_number="D1")),
            classified(make_row(3, account="2201", credit="10", document_number="D7"),
                       pk_cr=Decimal("10")),
            classified(make_row(4, account="1401", debit="0", document_number="D7")),
            classified(make_row(5, account="1101", credit="1", document_number="D2")),
        ]

        once = apply(rows, propagate(rows, rule_set))
        twice = apply(once, propagate(once, rule_set))

        assert propagate(once, rule_set) == {}
        assert once == twice


class TestPropagatorService:

    @pytest.mark.asyncio
    async def test_persists_only_changed_rows(self, rule_set):
        store = AsyncMock()
        store.get_document_rows.return_value = [
            classified(make_row(1, account="2101", credit="500", document_number="D1")),
            classified(make_row(2, account="5101", debit="500", document_number="D1")),
            classified(make_row(3, account="5101", debit="10", document_number="D2")),
        ]

        updated = await Propagator(store).propagate(7, rule_set)

        assert updated == 2
        store.get_document_rows.assert_awaited_once_with(7)
        changes = store.persist_propagated.await_args.args[0]
        assert set(changes) == {1, 2}

    @pytest.mark.asyncio
    async def test_nothing_to_write(self, rule_set):
        store = AsyncMock()
        store.get_document_rows.return_value = []

        assert await Propagator(store).propagate(7, rule_set) == 0
        store.persist_propagated.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_wrapped(self, rule_set):
        store = AsyncMock()
        store.get_document_rows.return_value = [
            classified(make_row(1, account="2101", credit="500", document_number="D1")),
        ]
        store.persist_propagated.side_effect = RuntimeError("deadlock")

        with pytest.raises(PropagationError) as exc_info:
            await Propagator(store).propagate(7, rule_set)

        assert "deadlock" in str(exc_info.value)
