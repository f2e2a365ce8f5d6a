"""Reading and writing evaluation blobs and comparison workbooks."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .issues import cell_issues
from .models import (
    ArithmeticMismatch,
    BOQData,
    CommercialEvaluation,
    ContractorBid,
    ContractorPTCs,
    Filled,
    cell_price,
    raw_cell,
)
from .normalization import comparison_frame, totals_frame
from .overrides import override_key

logger = logging.getLogger(__name__)


def read_json(path: Path) -> object:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, payload: object) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    logger.debug("Wrote %s", path)
    return path


def boq_to_dict(boq: BOQData) -> dict:
    return {
        "divisions": [
            {
                "id": division.id,
                "code": division.code,
                "name": division.name,
                "sections": [
                    {
                        "id": section.id,
                        "code": section.code,
                        "name": section.name,
                        "lineItems": [
                            {
                                "id": item.id,
                                "code": item.code,
                                "description": item.description,
                                "quantity": item.quantity,
                                "unit": item.unit,
                            }
                            for item in section.line_items
                        ],
                    }
                    for section in division.sections
                ],
            }
            for division in boq.divisions
        ]
    }


def bid_to_dict(bid: ContractorBid) -> dict:
    """Serialize a bid in the stored parallel-map shape.

    Filled and overridden cells also record their submitted price under
    ``originalPrices`` so a reloaded blob recovers what the contractor sent.
    """

    prices: Dict[str, Optional[float]] = {}
    included: List[str] = []
    errors: Dict[str, Dict[str, float]] = {}
    adjustments: Dict[str, str] = {}
    original_prices: Dict[str, Optional[float]] = {}
    for item_id, cell in bid.cells.items():
        prices[item_id] = cell_price(cell)
        raw = raw_cell(cell)
        if raw is not cell:
            adjustments[item_id] = "fill" if isinstance(cell, Filled) else "override"
            original_prices[item_id] = cell_price(raw)
        if item_id in bid.included_items:
            included.append(item_id)
        if isinstance(raw, ArithmeticMismatch):
            errors[item_id] = {"submitted": raw.submitted, "calculated": raw.calculated}
    payload: dict = {
        "contractorId": bid.contractor_id,
        "contractorName": bid.contractor_name,
        "prices": prices,
        "includedItems": included,
        "arithmeticErrors": errors,
        "totalAmount": bid.total_amount,
    }
    if adjustments:
        payload["adjustments"] = adjustments
        payload["originalPrices"] = original_prices
    return payload


def ptcs_to_dict(entries: Sequence[ContractorPTCs]) -> List[dict]:
    return [
        {
            "contractorId": entry.contractor_id,
            "contractorName": entry.contractor_name,
            "ptcs": [
                {
                    "id": ptc.id,
                    "referenceSection": ptc.reference_section,
                    "queryDescription": ptc.query_description,
                    "vendorResponse": ptc.vendor_response,
                    "status": ptc.status,
                    "category": ptc.category,
                }
                for ptc in entry.ptcs
            ],
        }
        for entry in entries
    ]


def evaluation_to_dict(evaluation: CommercialEvaluation) -> dict:
    payload = {
        "boq": boq_to_dict(evaluation.boq),
        "contractors": [bid_to_dict(bid) for bid in evaluation.contractors],
    }
    if evaluation.ptcs:
        payload["ptcs"] = ptcs_to_dict(evaluation.ptcs)
    return payload


def issues_frame(boq: BOQData, bids: Sequence[ContractorBid]) -> pd.DataFrame:
    issues = cell_issues(bids)
    rows = []
    for bid in bids:
        for _, _, item in boq.iter_line_items():
            kind = issues.get(override_key(bid.contractor_id, item.id))
            if kind is None:
                continue
            rows.append(
                {
                    "CONTRACTOR_ID": bid.contractor_id,
                    "CONTRACTOR": bid.contractor_name,
                    "ITEM_CODE": item.code,
                    "DESCRIPTION": item.description,
                    "ISSUE": kind,
                }
            )
    return pd.DataFrame(rows, columns=["CONTRACTOR_ID", "CONTRACTOR", "ITEM_CODE", "DESCRIPTION", "ISSUE"])


def write_comparison_workbook(
    path: Path,
    boq: BOQData,
    raw_bids: Sequence[ContractorBid],
    normalized_bids: Sequence[ContractorBid],
) -> Path:
    """Write Totals / Normalized / Raw / Issues sheets to an Excel workbook."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sheets: Mapping[str, pd.DataFrame] = {
        "Totals": totals_frame(normalized_bids),
        "Normalized": comparison_frame(boq, normalized_bids),
        "Raw": comparison_frame(boq, raw_bids),
        "Issues": issues_frame(boq, raw_bids),
    }
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name, index=False)
    logger.debug("Wrote comparison workbook %s", path)
    return path


__all__ = [
    "read_json",
    "write_json",
    "boq_to_dict",
    "bid_to_dict",
    "ptcs_to_dict",
    "evaluation_to_dict",
    "issues_frame",
    "write_comparison_workbook",
]
