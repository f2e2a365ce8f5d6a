from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from boqcompare.models import (
    ArithmeticMismatch,
    BidCell,
    BOQData,
    BOQDivision,
    BOQLineItem,
    BOQSection,
    ContractorBid,
    Included,
    Priced,
    Unpriced,
)
from boqcompare.validation import parse_commercial_evaluation


@pytest.fixture
def single_item_boq() -> BOQData:
    item = BOQLineItem(id="li-1", code="1.1.1", description="Floor screed", quantity=10.0, unit="m2")
    section = BOQSection(id="sec-1", code="1.1", name="Floors", line_items=(item,))
    return BOQData(divisions=(BOQDivision(id="div-1", code="1", name="Finishes", sections=(section,)),))


@pytest.fixture
def make_bid() -> Callable[..., ContractorBid]:
    """Build a bid from shorthand cells.

    ``None`` is unpriced, ``"included"`` is included and a ``(submitted,
    calculated)`` tuple is an arithmetic mismatch.
    """

    def _create(contractor_id: str, cells: Dict[str, object], name: Optional[str] = None) -> ContractorBid:
        built: Dict[str, BidCell] = {}
        for item_id, value in cells.items():
            if value is None:
                built[item_id] = Unpriced()
            elif value == "included":
                built[item_id] = Included()
            elif isinstance(value, tuple):
                built[item_id] = ArithmeticMismatch(submitted=float(value[0]), calculated=float(value[1]))
            else:
                built[item_id] = Priced(amount=float(value))
        return ContractorBid.from_cells(contractor_id, name or contractor_id.upper(), built)

    return _create


def _line_item(item_id: str, code: str, description: str, quantity: float, unit: str) -> dict:
    return {"id": item_id, "code": code, "description": description, "quantity": quantity, "unit": unit}


@pytest.fixture
def boq_payload() -> dict:
    return {
        "divisions": [
            {
                "id": "d1",
                "code": "01",
                "name": "Substructure",
                "sections": [
                    {
                        "id": "s1",
                        "code": "01.1",
                        "name": "Excavation",
                        "lineItems": [
                            _line_item("i1", "01.1.1", "Bulk excavation", 120.0, "m3"),
                            _line_item("i2", "01.1.2", "Disposal", 80.0, "m3"),
                        ],
                    },
                    {
                        "id": "s2",
                        "code": "01.2",
                        "name": "Concrete",
                        "lineItems": [_line_item("i3", "01.2.1", "Blinding", 15.0, "m3")],
                    },
                ],
            },
            {
                "id": "d2",
                "code": "02",
                "name": "Superstructure",
                "sections": [
                    {
                        "id": "s3",
                        "code": "02.1",
                        "name": "Frame",
                        "lineItems": [_line_item("i4", "02.1.1", "Steel columns", 4.0, "t")],
                    }
                ],
            },
        ]
    }


@pytest.fixture
def evaluation_payload(boq_payload: dict) -> dict:
    """Three bids; Bravo has one unpriced, one included and one erroneous item."""

    return {
        "boq": boq_payload,
        "contractors": [
            {
                "contractorId": "c1",
                "contractorName": "Alpha Build",
                "prices": {"i1": 100, "i2": 200, "i3": 300, "i4": 400},
                "includedItems": [],
                "arithmeticErrors": {},
                "totalAmount": 1000,
            },
            {
                "contractorId": "c2",
                "contractorName": "Bravo Works",
                "prices": {"i1": 120, "i2": None, "i4": 500},
                "includedItems": ["i3"],
                "arithmeticErrors": {"i4": {"submitted": 500, "calculated": 450}},
                "totalAmount": 620,
            },
            {
                "contractorId": "c3",
                "contractorName": "Charlie Contracting",
                "prices": {"i1": 80, "i2": 260, "i3": 310, "i4": 380},
                "includedItems": [],
                "arithmeticErrors": {},
                "totalAmount": 1030,
            },
        ],
    }


@pytest.fixture
def evaluation(evaluation_payload: dict):
    return parse_commercial_evaluation(evaluation_payload)


@pytest.fixture
def json_file(tmp_path: Path) -> Callable[[str, object], Path]:
    def _create(filename: str, payload: object) -> Path:
        path = tmp_path / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _create
