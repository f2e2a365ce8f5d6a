"""Post-tender clarification (PTC) tracking per contractor."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from .issues import ARITHMETIC_ERROR, INCLUDED, UNPRICED, cell_issues
from .models import (
    PTC_CATEGORIES,
    ArithmeticMismatch,
    BOQData,
    ContractorBid,
    ContractorPTCs,
    PTCItem,
    raw_cell,
)
from .overrides import override_key

logger = logging.getLogger(__name__)

# Fixed namespace so redrafting the same issues yields the same PTC ids.
_PTC_NAMESPACE = uuid.UUID("6f1c3a52-8d0e-4b7a-9f53-2f4c1e7d9a10")

ISSUE_CATEGORY = {
    ARITHMETIC_ERROR: "arithmetic_checks",
    UNPRICED: "pricing_anomalies",
    INCLUDED: "exclusions",
}


def pending_count(contractor_ptcs: ContractorPTCs, category: Optional[str] = None) -> int:
    """Count pending PTCs, optionally restricted to one category."""

    return sum(
        1
        for ptc in contractor_ptcs.ptcs
        if ptc.status == "pending" and (category is None or ptc.category == category)
    )


def _replace_ptc(contractor_ptcs: ContractorPTCs, ptc_id: str, **changes) -> ContractorPTCs:
    found = False
    updated: List[PTCItem] = []
    for ptc in contractor_ptcs.ptcs:
        if ptc.id == ptc_id:
            updated.append(replace(ptc, **changes))
            found = True
        else:
            updated.append(ptc)
    if not found:
        raise KeyError(ptc_id)
    return replace(contractor_ptcs, ptcs=tuple(updated))


def toggle_status(contractor_ptcs: ContractorPTCs, ptc_id: str) -> ContractorPTCs:
    current = next((ptc for ptc in contractor_ptcs.ptcs if ptc.id == ptc_id), None)
    if current is None:
        raise KeyError(ptc_id)
    new_status = "closed" if current.status == "pending" else "pending"
    return _replace_ptc(contractor_ptcs, ptc_id, status=new_status)


def update_response(contractor_ptcs: ContractorPTCs, ptc_id: str, response: str) -> ContractorPTCs:
    return _replace_ptc(contractor_ptcs, ptc_id, vendor_response=response)


def add_ptc(
    contractor_ptcs: ContractorPTCs,
    category: str,
    reference_section: str = "",
    query_description: str = "",
) -> ContractorPTCs:
    """Append a new pending PTC with an empty vendor response."""

    if category not in PTC_CATEGORIES:
        raise ValueError(f"Unknown PTC category: {category}")
    item = PTCItem(
        id=str(uuid.uuid4()),
        reference_section=reference_section,
        query_description=query_description,
        vendor_response="",
        status="pending",
        category=category,
    )
    return replace(contractor_ptcs, ptcs=(*contractor_ptcs.ptcs, item))


def _query_for(issue: str, bid: ContractorBid, item_id: str) -> str:
    if issue == ARITHMETIC_ERROR:
        raw = raw_cell(bid.cell(item_id))
        if isinstance(raw, ArithmeticMismatch):
            return (
                "Quantity extension error - unit rate x quantity mismatch "
                f"(submitted {raw.submitted:,.2f}, calculated {raw.calculated:,.2f}) - please correct"
            )
        return "Quantity extension error - unit rate x quantity mismatch"
    if issue == UNPRICED:
        return "Item not priced - confirm whether the cost is carried elsewhere in your bid"
    return "Item marked as included - confirm which item carries this cost"


def draft_ptcs_from_issues(boq: BOQData, bids: Sequence[ContractorBid]) -> List[ContractorPTCs]:
    """Draft one pending PTC per flagged cell of the raw bids.

    PTCs follow BOQ order and carry ids derived from contractor, item and
    category, so drafting twice produces identical lists.
    """

    issues = cell_issues(bids)
    drafted: List[ContractorPTCs] = []
    for bid in bids:
        items: List[PTCItem] = []
        for _, _, line_item in boq.iter_line_items():
            issue = issues.get(override_key(bid.contractor_id, line_item.id))
            if issue is None:
                continue
            category = ISSUE_CATEGORY[issue]
            ptc_id = uuid.uuid5(_PTC_NAMESPACE, f"{bid.contractor_id}/{line_item.id}/{category}")
            items.append(
                PTCItem(
                    id=str(ptc_id),
                    reference_section=f"BOQ Item {line_item.code}",
                    query_description=_query_for(issue, bid, line_item.id),
                    vendor_response="",
                    status="pending",
                    category=category,
                )
            )
        logger.debug("Drafted %d PTCs for %s", len(items), bid.contractor_id)
        drafted.append(
            ContractorPTCs(
                contractor_id=bid.contractor_id,
                contractor_name=bid.contractor_name,
                ptcs=tuple(items),
            )
        )
    return drafted


def pending_by_contractor(all_ptcs: Iterable[ContractorPTCs]) -> Dict[str, int]:
    return {entry.contractor_id: pending_count(entry) for entry in all_ptcs}


__all__ = [
    "ISSUE_CATEGORY",
    "pending_count",
    "pending_by_contractor",
    "toggle_status",
    "update_response",
    "add_ptc",
    "draft_ptcs_from_issues",
]
