"""Per-cell issue annotations derived from raw contractor bids."""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Optional

from .models import ArithmeticMismatch, ContractorBid, Included, Unpriced, raw_cell
from .overrides import override_key

INCLUDED = "included"
UNPRICED = "unpriced"
ARITHMETIC_ERROR = "arithmetic_error"
ISSUE_KINDS = (INCLUDED, UNPRICED, ARITHMETIC_ERROR)


def cell_issues(bids: Iterable[ContractorBid]) -> Dict[str, str]:
    """Return ``{"<contractor>-<item>": kind}`` for every flagged cell.

    Issues describe what the contractor submitted, so normalized bids are
    unwrapped to their raw cells first.  Cells absent from a bid are not
    reported.
    """

    issues: Dict[str, str] = {}
    for bid in bids:
        for item_id, cell in bid.cells.items():
            raw = raw_cell(cell)
            if isinstance(raw, Included):
                kind = INCLUDED
            elif isinstance(raw, ArithmeticMismatch):
                kind = ARITHMETIC_ERROR
            elif isinstance(raw, Unpriced):
                kind = UNPRICED
            else:
                continue
            issues[override_key(bid.contractor_id, item_id)] = kind
    return issues


def issue_counts(issues: Dict[str, str]) -> Dict[str, int]:
    counts = Counter(issues.values())
    return {kind: counts.get(kind, 0) for kind in ISSUE_KINDS}


def _currency(value: float) -> str:
    return f"${value:,.2f}"


def describe_issue(bid: ContractorBid, item_id: str, issue: Optional[str]) -> str:
    """Return the reviewer-facing description for a flagged cell."""

    if issue == UNPRICED:
        return "This item was not priced by the contractor."
    if issue == ARITHMETIC_ERROR:
        raw = raw_cell(bid.cell(item_id))
        if isinstance(raw, ArithmeticMismatch):
            return (
                f"Arithmetic error detected: Submitted {_currency(raw.submitted)}, "
                f"but calculated value is {_currency(raw.calculated)}."
            )
    if issue == INCLUDED:
        return "The contractor included this item's cost in another item."
    return ""


__all__ = [
    "INCLUDED",
    "UNPRICED",
    "ARITHMETIC_ERROR",
    "ISSUE_KINDS",
    "cell_issues",
    "issue_counts",
    "describe_issue",
]
