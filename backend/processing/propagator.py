"""
Propagator

Makes every journal line of one accounting document agree on its tax flags.

For each document number and each flag (five withholding buckets, output
tax, input tax, advance tax), if any row of the document is posted to an
account tagged with that flag, one canonical value is written onto every
row of the document:

- a tagged row offers its already-computed bucket value when non-zero,
  otherwise its credit (credit-side flags) or debit (debit-side flags)
  when positive, otherwise nothing;
- the largest offered value is canonical, so the result does not depend
  on row order;
- if no tagged row offers a value the document is left as it is for that
  flag.

koreksi and obyek are row-local and are never written here. Rows without a
document number are never grouped. Applying the pass to its own output
changes nothing.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from models.enums import FlagKind, FlagSide
from processing.errors import PropagationError
from processing.models import ClassifiedRow, DerivedAttributes
from processing.rule_cache import RuleSet

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def offered_value(item: ClassifiedRow, flag: FlagKind) -> Optional[Decimal]:
    """Value a tagged row contributes for a flag, or None."""
    current = item.derived.bucket(flag)
    if current is not None and current != ZERO:
        return current

    amount = item.row.credit if flag.side == FlagSide.credit else item.row.debit
    if amount > ZERO:
        return amount
    return None


def group_by_document(rows: Sequence[ClassifiedRow]) -> Dict[str, List[ClassifiedRow]]:
    groups: Dict[str, List[ClassifiedRow]] = OrderedDict()
    for item in rows:
        document_number = (item.row.document_number or "").strip()
        if not document_number:
            continue
        groups.setdefault(document_number, []).append(item)
    return groups


def canonical_values(group: Sequence[ClassifiedRow], rule_set: RuleSet) -> Dict[FlagKind, Decimal]:
    offers: Dict[FlagKind, List[Decimal]] = {}
    for item in group:
        flag = rule_set.account_flag(item.row.account)
        if flag is None:
            continue
        value = offered_value(item, flag)
        if value is not None:
            offers.setdefault(flag, []).append(value)

    return {flag: max(values) for flag, values in offers.items()}


def propagate(rows: Sequence[ClassifiedRow], rule_set: RuleSet) -> Dict[int, DerivedAttributes]:
    """
    Compute the propagated attributes for a session's rows.

    Returns only the rows whose attributes change, keyed by row id.
    """
    changes: Dict[int, DerivedAttributes] = {}

    for document_number, group in group_by_document(rows).items():
        canonical = canonical_values(group, rule_set)
        if not canonical:
            continue

        for item in group:
            derived = item.derived
            for flag, value in canonical.items():
                if derived.bucket(flag) != value:
                    derived = derived.with_bucket(flag, value)
            if derived != item.derived:
                changes[item.row.id] = derived

    return changes


class Propagator:
    """Runs the propagation pass for a whole session against the transaction store."""

    def __init__(self, transaction_store):
        self.transaction_store = transaction_store

    async def propagate(self, session_id: int, rule_set: RuleSet) -> int:
        """
        Propagate flags across document numbers of a session.

        Returns:
            Number of rows updated

        Raises:
            PropagationError: reading or writing the session's rows failed
        """
        try:
            rows = await self.transaction_store.get_document_rows(session_id)
            changes = propagate(rows, rule_set)
            if changes:
                await self.transaction_store.persist_propagated(changes)
        except Exception as e:
            raise PropagationError(f"failed to propagate document number fields: {e}") from e

        logger.info(f"Propagated tax flags to {len(changes)} rows in session {session_id}")
        return len(changes)
