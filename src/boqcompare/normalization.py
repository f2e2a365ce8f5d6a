"""
Bid normalization for BOQ comparisons.

Contractor submissions rarely price every line item.  Some items are left
blank, some are marked as included in another item, and some carry
arithmetic errors where the submitted amount disagrees with quantity x rate.
To compare contractors on equal terms every gap is filled with a value drawn
from the other contractors' prices for the same item (the median or the
lowest), while evaluator overrides always win.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .models import (
    DEFAULT_NORMALIZATION_SETTINGS,
    ArithmeticMismatch,
    BidCell,
    BOQData,
    ContractorBid,
    CustomOverrides,
    Filled,
    Included,
    NormalizationSettings,
    Overridden,
    Unpriced,
    cell_price,
    raw_cell,
    round_cents,
)
from .overrides import override_key

logger = logging.getLogger(__name__)


def fill_value(pool: Sequence[float], algorithm: str = "median") -> float:
    """Return the fill value for a pool of candidate prices.

    ``lowest`` takes the minimum; any other algorithm takes the statistical
    median (midpoint average for an even count).  An empty pool yields 0.
    """

    if len(pool) == 0:
        return 0.0
    if algorithm == "lowest":
        return float(min(pool))
    return float(np.median(np.asarray(pool, dtype=float)))


def _pool_for_item(
    bids: Iterable[ContractorBid],
    item_id: str,
    settings: NormalizationSettings,
) -> List[float]:
    pool: List[float] = []
    for bid in bids:
        raw = raw_cell(bid.cell(item_id))
        if isinstance(raw, Included):
            continue
        if isinstance(raw, ArithmeticMismatch) and settings.normalize_arithmetic_errors:
            continue
        price = cell_price(raw)
        if price is not None:
            pool.append(price)
    return pool


def compute_fill_values(
    boq: BOQData,
    bids: Sequence[ContractorBid],
    settings: NormalizationSettings = DEFAULT_NORMALIZATION_SETTINGS,
) -> Dict[str, float]:
    """Compute the per-item fill value used for unpriced and erroneous cells.

    Parameters
    ----------
    boq:
        BOQ tree whose line items are evaluated.
    bids:
        Contractor bids.  Already-normalized bids are unwrapped to the cells
        the contractor originally submitted.
    settings:
        Normalization settings; ``algorithm`` picks median or lowest and
        ``normalize_arithmetic_errors`` removes erroneous prices from the pool.

    Returns
    -------
    dict
        Mapping of line-item id to fill value (0 when no price is available).
    """

    values: Dict[str, float] = {}
    for item_id in boq.line_item_ids:
        pool = _pool_for_item(bids, item_id, settings)
        values[item_id] = fill_value(pool, settings.algorithm)
        if not pool:
            logger.debug("No comparable prices for line item %s; fill value defaults to 0", item_id)
    return values


def _effective_cell(
    raw: BidCell,
    fill: float,
    override: Optional[float],
    settings: NormalizationSettings,
) -> BidCell:
    if override is not None:
        return Overridden(amount=float(override), source=raw)
    if isinstance(raw, Included):
        return raw
    if isinstance(raw, Unpriced) and settings.normalize_unpriced:
        return Filled(amount=fill, source=raw)
    if isinstance(raw, ArithmeticMismatch) and settings.normalize_arithmetic_errors:
        return Filled(amount=fill, source=raw)
    return raw


def normalize_bids(
    boq: BOQData,
    bids: Sequence[ContractorBid],
    settings: NormalizationSettings = DEFAULT_NORMALIZATION_SETTINGS,
    overrides: Optional[CustomOverrides] = None,
) -> List[ContractorBid]:
    """Normalize contractor bids and return them sorted by total ascending.

    Precedence per cell, highest first: custom override, included item (stays
    null), unpriced item filled when ``normalize_unpriced``, arithmetic error
    filled when ``normalize_arithmetic_errors``, otherwise the submitted price.
    Totals are rounded to cents once, after summation.  Index 0 of the result
    is the lowest bidder.
    """

    overrides = overrides or {}
    fill_values = compute_fill_values(boq, bids, settings)
    normalized: List[ContractorBid] = []
    for bid in bids:
        cells: Dict[str, BidCell] = {}
        total = 0.0
        for item_id in boq.line_item_ids:
            raw = raw_cell(bid.cell(item_id))
            override = overrides.get(override_key(bid.contractor_id, item_id))
            if override is not None:
                logger.debug("Override applied for %s/%s: %s", bid.contractor_id, item_id, override)
            cell = _effective_cell(raw, fill_values[item_id], override, settings)
            cells[item_id] = cell
            price = cell_price(cell)
            if price is not None:
                total += price
        normalized.append(
            ContractorBid(
                contractor_id=bid.contractor_id,
                contractor_name=bid.contractor_name,
                cells=cells,
                total_amount=round_cents(total),
            )
        )
    # sorted() is stable, so tied totals keep input order.
    normalized = sorted(normalized, key=lambda b: b.total_amount)
    if normalized:
        logger.debug(
            "Normalized %d bids over %d line items (algorithm=%s); lowest bidder %s",
            len(normalized),
            len(boq.line_item_ids),
            settings.algorithm,
            normalized[0].contractor_id,
        )
    return normalized


def lowest_bidder(bids: Sequence[ContractorBid]) -> Optional[ContractorBid]:
    """Return the lowest bidder of a list sorted by :func:`normalize_bids`."""

    return bids[0] if bids else None


def subtotal(bid: ContractorBid, item_ids: Iterable[str]) -> float:
    return sum(price for price in (cell_price(bid.cell(item_id)) for item_id in item_ids) if price is not None)


def section_subtotals(boq: BOQData, bid: ContractorBid) -> Dict[str, float]:
    return {
        section.id: subtotal(bid, (item.id for item in section.line_items))
        for division in boq.divisions
        for section in division.sections
    }


def division_subtotals(boq: BOQData, bid: ContractorBid) -> Dict[str, float]:
    return {
        division.id: subtotal(
            bid,
            (item.id for section in division.sections for item in section.line_items),
        )
        for division in boq.divisions
    }


def _column_labels(bids: Sequence[ContractorBid]) -> List[str]:
    labels: List[str] = []
    seen: Dict[str, int] = {}
    for bid in bids:
        label = bid.contractor_name or bid.contractor_id
        if label in seen:
            seen[label] += 1
            label = f"{label} ({bid.contractor_id})"
        else:
            seen[label] = 1
        labels.append(label)
    return labels


def comparison_frame(boq: BOQData, bids: Sequence[ContractorBid]) -> pd.DataFrame:
    """Return a line-item by contractor price grid.

    One row per BOQ line item in depth-first order; one price column per bid
    in the order given.  Null prices are ``NaN``.
    """

    labels = _column_labels(bids)
    rows: List[Dict[str, object]] = []
    for division, section, item in boq.iter_line_items():
        row: Dict[str, object] = {
            "DIVISION_CODE": division.code,
            "SECTION_CODE": section.code,
            "ITEM_CODE": item.code,
            "DESCRIPTION": item.description,
            "QUANTITY": item.quantity,
            "UNIT": item.unit,
        }
        for label, bid in zip(labels, bids):
            price = cell_price(bid.cell(item.id))
            row[label] = float("nan") if price is None else price
        rows.append(row)
    columns = ["DIVISION_CODE", "SECTION_CODE", "ITEM_CODE", "DESCRIPTION", "QUANTITY", "UNIT", *labels]
    return pd.DataFrame(rows, columns=columns)


def totals_frame(bids: Sequence[ContractorBid]) -> pd.DataFrame:
    """Tabulate bid totals with rank and delta to the lowest total."""

    frame = pd.DataFrame(
        {
            "CONTRACTOR_ID": [bid.contractor_id for bid in bids],
            "CONTRACTOR": [bid.contractor_name for bid in bids],
            "TOTAL_AMOUNT": [bid.total_amount for bid in bids],
        },
        columns=["CONTRACTOR_ID", "CONTRACTOR", "TOTAL_AMOUNT"],
    )
    if frame.empty:
        return pd.DataFrame(columns=["RANK", "CONTRACTOR_ID", "CONTRACTOR", "TOTAL_AMOUNT", "DELTA_TO_LOWEST"])
    frame = frame.sort_values("TOTAL_AMOUNT", kind="mergesort").reset_index(drop=True)
    frame.insert(0, "RANK", range(1, len(frame) + 1))
    frame["DELTA_TO_LOWEST"] = (frame["TOTAL_AMOUNT"] - frame["TOTAL_AMOUNT"].iloc[0]).round(2)
    return frame


def adjusted_cells(bid: ContractorBid) -> Mapping[str, BidCell]:
    """Return the cells of ``bid`` that normalization filled or overrode."""

    return {item_id: cell for item_id, cell in bid.cells.items() if isinstance(cell, (Filled, Overridden))}


def raw_bid(bid: ContractorBid) -> ContractorBid:
    """Strip fills and overrides from ``bid``, recovering the submission."""

    return ContractorBid.from_cells(
        bid.contractor_id,
        bid.contractor_name,
        {item_id: raw_cell(cell) for item_id, cell in bid.cells.items()},
    )


__all__ = [
    "fill_value",
    "compute_fill_values",
    "normalize_bids",
    "lowest_bidder",
    "subtotal",
    "section_subtotals",
    "division_subtotals",
    "comparison_frame",
    "totals_frame",
    "adjusted_cells",
    "raw_bid",
]
