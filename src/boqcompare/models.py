from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from functools import cached_property
from typing import Dict, FrozenSet, Iterator, Mapping, Optional, Tuple, Union

ALGORITHMS = ("median", "lowest")
EVALUATION_STATUSES = ("analyzing", "ready", "review_complete")
PTC_CATEGORIES = ("exclusions", "deviations", "pricing_anomalies", "arithmetic_checks")
PTC_STATUSES = ("pending", "closed")

CustomOverrides = Mapping[str, float]


def round_cents(value: float) -> float:
    """Round ``value`` to cents, half away from zero."""

    return float(Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class BOQLineItem:
    id: str
    code: str
    description: str
    quantity: float
    unit: str


@dataclass(frozen=True)
class BOQSection:
    id: str
    code: str
    name: str
    line_items: Tuple[BOQLineItem, ...] = ()


@dataclass(frozen=True)
class BOQDivision:
    id: str
    code: str
    name: str
    sections: Tuple[BOQSection, ...] = ()


@dataclass(frozen=True)
class BOQData:
    """Bill of quantities tree: divisions -> sections -> line items."""

    divisions: Tuple[BOQDivision, ...] = ()

    def iter_line_items(self) -> Iterator[Tuple[BOQDivision, BOQSection, BOQLineItem]]:
        for division in self.divisions:
            for section in division.sections:
                for item in section.line_items:
                    yield division, section, item

    @cached_property
    def line_item_ids(self) -> Tuple[str, ...]:
        # Cached on the instance; normalization is re-run on every settings toggle.
        return tuple(item.id for _, _, item in self.iter_line_items())

    @cached_property
    def _items_by_id(self) -> Dict[str, BOQLineItem]:
        return {item.id: item for _, _, item in self.iter_line_items()}

    def line_item(self, item_id: str) -> Optional[BOQLineItem]:
        return self._items_by_id.get(item_id)


# Bid cells. Exactly one variant describes each contractor/line-item cell.


@dataclass(frozen=True)
class Priced:
    amount: float


@dataclass(frozen=True)
class Included:
    """Cost folded into another line item by the contractor."""


@dataclass(frozen=True)
class Unpriced:
    pass


@dataclass(frozen=True)
class ArithmeticMismatch:
    """Submitted amount differs from quantity x rate."""

    submitted: float
    calculated: float


RawCell = Union[Priced, Included, Unpriced, ArithmeticMismatch]


@dataclass(frozen=True)
class Filled:
    """Normalized fill value standing in for an unpriced or erroneous cell."""

    amount: float
    source: Union[Unpriced, ArithmeticMismatch]


@dataclass(frozen=True)
class Overridden:
    """Evaluator-supplied price wrapping whatever the contractor submitted."""

    amount: float
    source: RawCell


BidCell = Union[Priced, Included, Unpriced, ArithmeticMismatch, Filled, Overridden]


def raw_cell(cell: BidCell) -> RawCell:
    if isinstance(cell, (Filled, Overridden)):
        return cell.source
    return cell


def cell_price(cell: BidCell) -> Optional[float]:
    if isinstance(cell, (Priced, Filled, Overridden)):
        return cell.amount
    if isinstance(cell, ArithmeticMismatch):
        return cell.submitted
    return None


@dataclass(frozen=True)
class ContractorBid:
    """One contractor's priced submission against a BOQ."""

    contractor_id: str
    contractor_name: str
    cells: Mapping[str, BidCell] = field(default_factory=dict)
    total_amount: float = 0.0

    @classmethod
    def from_cells(
        cls,
        contractor_id: str,
        contractor_name: str,
        cells: Mapping[str, BidCell],
    ) -> "ContractorBid":
        total = sum(price for price in (cell_price(cell) for cell in cells.values()) if price is not None)
        return cls(
            contractor_id=contractor_id,
            contractor_name=contractor_name,
            cells=dict(cells),
            total_amount=round_cents(total),
        )

    def cell(self, item_id: str) -> BidCell:
        return self.cells.get(item_id, Unpriced())

    @property
    def prices(self) -> Dict[str, Optional[float]]:
        return {item_id: cell_price(cell) for item_id, cell in self.cells.items()}

    @property
    def included_items(self) -> FrozenSet[str]:
        return frozenset(
            item_id for item_id, cell in self.cells.items() if isinstance(raw_cell(cell), Included)
        )

    @property
    def arithmetic_errors(self) -> Dict[str, ArithmeticMismatch]:
        errors: Dict[str, ArithmeticMismatch] = {}
        for item_id, cell in self.cells.items():
            raw = raw_cell(cell)
            if isinstance(raw, ArithmeticMismatch):
                errors[item_id] = raw
        return errors


@dataclass(frozen=True)
class NormalizationSettings:
    normalize_unpriced: bool = True
    normalize_arithmetic_errors: bool = True
    algorithm: str = "median"


DEFAULT_NORMALIZATION_SETTINGS = NormalizationSettings()


@dataclass(frozen=True)
class Contractor:
    id: str
    name: str


@dataclass(frozen=True)
class PTCItem:
    id: str
    reference_section: str
    query_description: str
    vendor_response: str = ""
    status: str = "pending"
    category: str = "exclusions"


@dataclass(frozen=True)
class ContractorPTCs:
    contractor_id: str
    contractor_name: str
    ptcs: Tuple[PTCItem, ...] = ()


@dataclass(frozen=True)
class CommercialEvaluation:
    boq: BOQData
    contractors: Tuple[ContractorBid, ...] = ()
    ptcs: Tuple[ContractorPTCs, ...] = ()


@dataclass(frozen=True)
class CommercialAsset:
    asset_id: str
    name: str
    evaluation: Optional[CommercialEvaluation] = None


@dataclass(frozen=True)
class CommercialSummary:
    """Latest commercial evaluation round for every asset in a package."""

    assets: Tuple[CommercialAsset, ...] = ()


@dataclass(frozen=True)
class Breakdown:
    id: str
    title: str
    weight: float
    description: str = ""


@dataclass(frozen=True)
class Scope:
    id: str
    title: str
    breakdowns: Tuple[Breakdown, ...] = ()


@dataclass(frozen=True)
class EvaluationCriteria:
    scopes: Tuple[Scope, ...] = ()

    @property
    def breakdowns(self) -> Tuple[Breakdown, ...]:
        return tuple(breakdown for scope in self.scopes for breakdown in scope.breakdowns)


@dataclass(frozen=True)
class ScoreEntry:
    score: float = 0.0
    comment: str = ""
    approved: bool = False
    evidence: Tuple[object, ...] = ()


@dataclass(frozen=True)
class TechnicalEvaluation:
    status: str = "analyzing"
    criteria: EvaluationCriteria = field(default_factory=EvaluationCriteria)
    scores: Optional[Mapping[str, Mapping[str, ScoreEntry]]] = None
    proposals_uploaded: Tuple[str, ...] = ()


__all__ = [
    "ALGORITHMS",
    "EVALUATION_STATUSES",
    "PTC_CATEGORIES",
    "PTC_STATUSES",
    "CustomOverrides",
    "round_cents",
    "BOQLineItem",
    "BOQSection",
    "BOQDivision",
    "BOQData",
    "Priced",
    "Included",
    "Unpriced",
    "ArithmeticMismatch",
    "RawCell",
    "Filled",
    "Overridden",
    "BidCell",
    "raw_cell",
    "cell_price",
    "ContractorBid",
    "NormalizationSettings",
    "DEFAULT_NORMALIZATION_SETTINGS",
    "Contractor",
    "PTCItem",
    "ContractorPTCs",
    "CommercialEvaluation",
    "CommercialAsset",
    "CommercialSummary",
    "Breakdown",
    "Scope",
    "EvaluationCriteria",
    "ScoreEntry",
    "TechnicalEvaluation",
]
