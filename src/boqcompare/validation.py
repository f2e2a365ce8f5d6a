"""
Boundary validation for persisted evaluation payloads.

The evaluation data store hands over JSON blobs with camelCase keys.  Each
``parse_*`` function checks the blob's shape against a Draft 7 JSON schema,
applies the semantic checks the schema cannot express (unique ids,
contradictory cell states, finite numbers) and returns the frozen model.
Every violation is collected and raised together as
:class:`~boqcompare.errors.InputValidationError`.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Set

from jsonschema import Draft7Validator

from .errors import InputValidationError
from .models import (
    ALGORITHMS,
    ArithmeticMismatch,
    BidCell,
    BOQData,
    BOQDivision,
    BOQLineItem,
    BOQSection,
    Breakdown,
    CommercialAsset,
    CommercialEvaluation,
    CommercialSummary,
    Contractor,
    ContractorBid,
    ContractorPTCs,
    EvaluationCriteria,
    Filled,
    Included,
    NormalizationSettings,
    Overridden,
    Priced,
    PTCItem,
    RawCell,
    Scope,
    ScoreEntry,
    TechnicalEvaluation,
    Unpriced,
)

logger = logging.getLogger(__name__)

_NULLABLE_NUMBER = {"type": ["number", "null"]}

LINE_ITEM_SCHEMA = {
    "type": "object",
    "required": ["id", "code", "description", "quantity", "unit"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "code": {"type": "string"},
        "description": {"type": "string"},
        "quantity": {"type": "number", "minimum": 0},
        "unit": {"type": "string"},
    },
}

BOQ_SCHEMA = {
    "type": "object",
    "required": ["divisions"],
    "properties": {
        "divisions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "code", "name", "sections"],
                "properties": {
                    "id": {"type": "string"},
                    "code": {"type": "string"},
                    "name": {"type": "string"},
                    "sections": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["id", "code", "name", "lineItems"],
                            "properties": {
                                "id": {"type": "string"},
                                "code": {"type": "string"},
                                "name": {"type": "string"},
                                "lineItems": {"type": "array", "items": LINE_ITEM_SCHEMA},
                            },
                        },
                    },
                },
            },
        }
    },
}

BID_SCHEMA = {
    "type": "object",
    "required": ["contractorId", "contractorName"],
    "properties": {
        "contractorId": {"type": "string", "minLength": 1},
        "contractorName": {"type": "string"},
        "prices": {"type": "object", "additionalProperties": _NULLABLE_NUMBER},
        "includedItems": {"type": "array", "items": {"type": "string"}},
        "arithmeticErrors": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["submitted", "calculated"],
                "properties": {
                    "submitted": {"type": "number"},
                    "calculated": {"type": "number"},
                },
            },
        },
        "totalAmount": {"type": "number"},
        "adjustments": {
            "type": "object",
            "additionalProperties": {"enum": ["fill", "override"]},
        },
        "originalPrices": {"type": "object", "additionalProperties": _NULLABLE_NUMBER},
    },
}

PTC_SCHEMA = {
    "type": "object",
    "required": ["contractorId", "contractorName", "ptcs"],
    "properties": {
        "contractorId": {"type": "string"},
        "contractorName": {"type": "string"},
        "ptcs": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "status", "category"],
                "properties": {
                    "id": {"type": "string"},
                    "referenceSection": {"type": "string"},
                    "queryDescription": {"type": "string"},
                    "vendorResponse": {"type": "string"},
                    "status": {"enum": ["pending", "closed"]},
                    "category": {
                        "enum": ["exclusions", "deviations", "pricing_anomalies", "arithmetic_checks"]
                    },
                },
            },
        },
    },
}

EVALUATION_SCHEMA = {
    "type": "object",
    "required": ["boq", "contractors"],
    "properties": {
        "boq": BOQ_SCHEMA,
        "contractors": {"type": "array", "items": BID_SCHEMA},
        "ptcs": {"type": "array", "items": PTC_SCHEMA},
    },
}

SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "normalizeUnpriced": {"type": "boolean"},
        "normalizeArithmeticErrors": {"type": "boolean"},
        "algorithm": {"enum": list(ALGORITHMS)},
    },
}

OVERRIDES_SCHEMA = {"type": "object", "additionalProperties": {"type": "number"}}

CONTRACTORS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "name"],
        "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
    },
}

TECHNICAL_SCHEMA = {
    "type": "object",
    "properties": {
        "status": {"enum": ["analyzing", "ready", "review_complete"]},
        "criteria": {
            "type": ["object", "null"],
            "properties": {
                "scopes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["id", "breakdowns"],
                        "properties": {
                            "id": {"type": "string"},
                            "title": {"type": "string"},
                            "breakdowns": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "required": ["id", "weight"],
                                    "properties": {
                                        "id": {"type": "string"},
                                        "title": {"type": "string"},
                                        "weight": {"type": "number"},
                                        "description": {"type": "string"},
                                    },
                                },
                            },
                        },
                    },
                }
            },
        },
        "scores": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": "object",
                "additionalProperties": {
                    "type": "object",
                    "properties": {
                        "score": {"type": "number"},
                        "comment": {"type": "string"},
                        "approved": {"type": "boolean"},
                        "evidence": {"type": "array"},
                    },
                },
            },
        },
        "proposalsUploaded": {"type": "array", "items": {"type": "string"}},
    },
}

SUMMARY_SCHEMA = {
    "type": "object",
    "required": ["assets"],
    "properties": {
        "assets": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "assetId": {"type": "string"},
                    "name": {"type": "string"},
                    "evaluation": {"anyOf": [{"type": "null"}, EVALUATION_SCHEMA]},
                },
            },
        }
    },
}

BIDS_SCHEMA = {"type": "array", "items": BID_SCHEMA}

PTCS_SCHEMA = {"type": "array", "items": PTC_SCHEMA}

# Keyed by id(); only the module-level schemas above are ever passed in.
_VALIDATORS: Dict[int, Draft7Validator] = {}


def _validator(schema: dict) -> Draft7Validator:
    key = id(schema)
    if key not in _VALIDATORS:
        _VALIDATORS[key] = Draft7Validator(schema)
    return _VALIDATORS[key]


def _schema_errors(schema: dict, payload: object, prefix: str = "") -> List[str]:
    messages: List[str] = []
    for error in sorted(_validator(schema).iter_errors(payload), key=lambda e: [str(p) for p in e.path]):
        location = "/".join(str(part) for part in error.path)
        where = f"{prefix}{location}" if location else (prefix.rstrip("/") or "<root>")
        messages.append(f"{where}: {error.message}")
    return messages


def _check_schema(schema: dict, payload: object, prefix: str = "") -> None:
    errors = _schema_errors(schema, payload, prefix)
    if errors:
        raise InputValidationError(errors)


def _finite(value: Optional[float]) -> bool:
    # JSON integers can exceed the float range.
    if value is None:
        return True
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def _build_boq(payload: Mapping) -> tuple[BOQData, List[str]]:
    errors: List[str] = []
    seen: Set[str] = set()
    divisions: List[BOQDivision] = []
    for div in payload.get("divisions", []):
        sections: List[BOQSection] = []
        for sec in div.get("sections", []):
            items: List[BOQLineItem] = []
            for raw_item in sec.get("lineItems", []):
                item_id = raw_item["id"]
                if item_id in seen:
                    errors.append(f"Duplicate line item id: {item_id}")
                seen.add(item_id)
                quantity = raw_item["quantity"]
                if _finite(quantity):
                    quantity = float(quantity)
                else:
                    errors.append(f"Line item {item_id}: quantity must be finite")
                    quantity = 0.0
                items.append(
                    BOQLineItem(
                        id=item_id,
                        code=raw_item["code"],
                        description=raw_item["description"],
                        quantity=quantity,
                        unit=raw_item["unit"],
                    )
                )
            sections.append(BOQSection(id=sec["id"], code=sec["code"], name=sec["name"], line_items=tuple(items)))
        divisions.append(BOQDivision(id=div["id"], code=div["code"], name=div["name"], sections=tuple(sections)))
    return BOQData(divisions=tuple(divisions)), errors


def parse_boq(payload: Mapping) -> BOQData:
    """Validate a BOQ blob and return :class:`BOQData`."""

    _check_schema(BOQ_SCHEMA, payload)
    boq, errors = _build_boq(payload)
    if errors:
        raise InputValidationError(errors)
    return boq


def _raw_cell(
    contractor_id: str,
    item_id: str,
    price: Optional[float],
    included: bool,
    error: Optional[Mapping],
    errors: List[str],
) -> Optional[RawCell]:
    where = f"Bid {contractor_id}, item {item_id}"
    if not _finite(price):
        errors.append(f"{where}: price must be finite")
        return None
    if included:
        if price is not None:
            errors.append(f"{where}: included item must not carry a price")
        if error is not None:
            errors.append(f"{where}: included item cannot have an arithmetic error")
        return Included()
    if error is not None:
        if not (_finite(error["submitted"]) and _finite(error["calculated"])):
            errors.append(f"{where}: arithmetic error amounts must be finite")
            return None
        submitted = float(error["submitted"])
        calculated = float(error["calculated"])
        if price is None:
            errors.append(f"{where}: arithmetic error recorded for an unpriced item")
            return None
        if not math.isclose(float(price), submitted, rel_tol=1e-9, abs_tol=0.005):
            errors.append(f"{where}: price {price} does not match submitted amount {submitted}")
        return ArithmeticMismatch(submitted=submitted, calculated=calculated)
    if price is None:
        return Unpriced()
    return Priced(amount=float(price))


def _build_bid(payload: Mapping, known_ids: Set[str], errors: List[str]) -> ContractorBid:
    contractor_id = payload["contractorId"]
    prices: Mapping[str, Optional[float]] = payload.get("prices") or {}
    included = set(payload.get("includedItems") or [])
    arithmetic: Mapping[str, Mapping] = payload.get("arithmeticErrors") or {}
    adjustments: Mapping[str, str] = payload.get("adjustments") or {}
    original_prices: Mapping[str, Optional[float]] = payload.get("originalPrices") or {}

    item_ids: List[str] = []
    for item_id in [*prices, *sorted(included), *arithmetic]:
        if item_id not in item_ids:
            item_ids.append(item_id)

    cells: Dict[str, BidCell] = {}
    for item_id in item_ids:
        if item_id not in known_ids:
            logger.warning("Bid %s prices unknown line item %s; ignoring", contractor_id, item_id)
            continue
        adjustment = adjustments.get(item_id)
        if adjustment is not None and item_id in original_prices:
            submitted_price = original_prices[item_id]
        else:
            submitted_price = prices.get(item_id)
        raw = _raw_cell(contractor_id, item_id, submitted_price, item_id in included, arithmetic.get(item_id), errors)
        if raw is None:
            continue
        if adjustment is None:
            cells[item_id] = raw
            continue
        amount = prices.get(item_id)
        if amount is None or not _finite(amount):
            errors.append(f"Bid {contractor_id}, item {item_id}: adjusted cell must carry a finite price")
            continue
        if adjustment == "fill":
            if not isinstance(raw, (Unpriced, ArithmeticMismatch)):
                errors.append(f"Bid {contractor_id}, item {item_id}: only unpriced or erroneous cells can be filled")
                continue
            cells[item_id] = Filled(amount=float(amount), source=raw)
        else:
            cells[item_id] = Overridden(amount=float(amount), source=raw)

    bid = ContractorBid.from_cells(contractor_id, payload["contractorName"], cells)
    stated_total = payload.get("totalAmount")
    if (
        stated_total is not None
        and _finite(stated_total)
        and not math.isclose(float(stated_total), bid.total_amount, abs_tol=0.01)
    ):
        logger.debug(
            "Bid %s stated total %s differs from derived total %s; using derived total",
            contractor_id,
            stated_total,
            bid.total_amount,
        )
    return bid


def _build_bids(payloads: Iterable[Mapping], boq: BOQData) -> tuple[List[ContractorBid], List[str]]:
    errors: List[str] = []
    known_ids = set(boq.line_item_ids)
    seen: Set[str] = set()
    bids: List[ContractorBid] = []
    for payload in payloads:
        contractor_id = payload["contractorId"]
        if contractor_id in seen:
            errors.append(f"Duplicate contractor id: {contractor_id}")
        seen.add(contractor_id)
        bids.append(_build_bid(payload, known_ids, errors))
    return bids, errors


def parse_bids(payloads: Iterable[Mapping], boq: BOQData) -> List[ContractorBid]:
    """Validate raw (or previously normalized) bid blobs against ``boq``."""

    payloads = list(payloads)
    _check_schema(BIDS_SCHEMA, payloads)
    bids, errors = _build_bids(payloads, boq)
    if errors:
        raise InputValidationError(errors)
    return bids


def _build_ptcs(payloads: Iterable[Mapping]) -> List[ContractorPTCs]:
    result: List[ContractorPTCs] = []
    for entry in payloads:
        items = tuple(
            PTCItem(
                id=item["id"],
                reference_section=item.get("referenceSection", ""),
                query_description=item.get("queryDescription", ""),
                vendor_response=item.get("vendorResponse", ""),
                status=item["status"],
                category=item["category"],
            )
            for item in entry.get("ptcs", [])
        )
        result.append(
            ContractorPTCs(contractor_id=entry["contractorId"], contractor_name=entry["contractorName"], ptcs=items)
        )
    return result


def parse_ptcs(payloads: Iterable[Mapping]) -> List[ContractorPTCs]:
    payloads = list(payloads)
    _check_schema(PTCS_SCHEMA, payloads)
    return _build_ptcs(payloads)


def _build_evaluation(payload: Mapping) -> tuple[CommercialEvaluation, List[str]]:
    boq, errors = _build_boq(payload["boq"])
    if errors:
        # Bid checks depend on a well-formed BOQ.
        return CommercialEvaluation(boq=boq), errors
    bids, bid_errors = _build_bids(payload.get("contractors", []), boq)
    ptcs = _build_ptcs(payload.get("ptcs") or [])
    return CommercialEvaluation(boq=boq, contractors=tuple(bids), ptcs=tuple(ptcs)), bid_errors


def parse_commercial_evaluation(payload: Mapping) -> CommercialEvaluation:
    """Validate a full commercial evaluation blob (BOQ, bids, optional PTCs)."""

    _check_schema(EVALUATION_SCHEMA, payload)
    evaluation, errors = _build_evaluation(payload)
    if errors:
        raise InputValidationError(errors)
    return evaluation


def parse_settings(payload: Optional[Mapping]) -> NormalizationSettings:
    if payload is None:
        return NormalizationSettings()
    _check_schema(SETTINGS_SCHEMA, payload)
    defaults = NormalizationSettings()
    return NormalizationSettings(
        normalize_unpriced=payload.get("normalizeUnpriced", defaults.normalize_unpriced),
        normalize_arithmetic_errors=payload.get("normalizeArithmeticErrors", defaults.normalize_arithmetic_errors),
        algorithm=payload.get("algorithm", defaults.algorithm),
    )


def parse_overrides(payload: Optional[Mapping]) -> Dict[str, float]:
    """Validate custom overrides keyed ``"<contractorId>-<lineItemId>"``."""

    if payload is None:
        return {}
    _check_schema(OVERRIDES_SCHEMA, payload)
    errors = [f"Override {key}: value must be finite" for key, value in payload.items() if not _finite(value)]
    if errors:
        raise InputValidationError(errors)
    return {key: float(value) for key, value in payload.items()}


def parse_contractors(payload: Iterable[Mapping]) -> List[Contractor]:
    payload = list(payload)
    _check_schema(CONTRACTORS_SCHEMA, payload)
    return [Contractor(id=entry["id"], name=entry["name"]) for entry in payload]


def parse_technical_evaluation(payload: Optional[Mapping]) -> Optional[TechnicalEvaluation]:
    """Validate a technical evaluation blob; ``None`` means no evaluation yet."""

    if payload is None:
        return None
    _check_schema(TECHNICAL_SCHEMA, payload)
    criteria_payload = payload.get("criteria") or {}
    errors = [
        f"Breakdown {b['id']}: weight must be finite"
        for scope in criteria_payload.get("scopes", [])
        for b in scope.get("breakdowns", [])
        if not _finite(b["weight"])
    ]
    errors.extend(
        f"Score {contractor_id}/{breakdown_id}: score must be finite"
        for contractor_id, by_breakdown in (payload.get("scores") or {}).items()
        for breakdown_id, entry in by_breakdown.items()
        if not _finite(entry.get("score"))
    )
    if errors:
        raise InputValidationError(errors)
    scopes = tuple(
        Scope(
            id=scope["id"],
            title=scope.get("title", ""),
            breakdowns=tuple(
                Breakdown(
                    id=b["id"],
                    title=b.get("title", ""),
                    weight=float(b["weight"]),
                    description=b.get("description", ""),
                )
                for b in scope.get("breakdowns", [])
            ),
        )
        for scope in criteria_payload.get("scopes", [])
    )
    scores_payload = payload.get("scores")
    scores = None
    if scores_payload is not None:
        scores = {
            contractor_id: {
                breakdown_id: ScoreEntry(
                    score=float(entry.get("score", 0)),
                    comment=entry.get("comment", ""),
                    approved=bool(entry.get("approved", False)),
                    evidence=tuple(entry.get("evidence", [])),
                )
                for breakdown_id, entry in by_breakdown.items()
            }
            for contractor_id, by_breakdown in scores_payload.items()
        }
    return TechnicalEvaluation(
        status=payload.get("status", "analyzing"),
        criteria=EvaluationCriteria(scopes=scopes),
        scores=scores,
        proposals_uploaded=tuple(payload.get("proposalsUploaded", [])),
    )


def parse_commercial_summary(payload: Optional[Mapping]) -> Optional[CommercialSummary]:
    if payload is None:
        return None
    _check_schema(SUMMARY_SCHEMA, payload)
    errors: List[str] = []
    assets: List[CommercialAsset] = []
    for index, asset in enumerate(payload["assets"]):
        evaluation = None
        if asset.get("evaluation") is not None:
            evaluation, asset_errors = _build_evaluation(asset["evaluation"])
            errors.extend(f"assets/{index}: {message}" for message in asset_errors)
        assets.append(
            CommercialAsset(
                asset_id=asset.get("assetId", str(index)),
                name=asset.get("name", ""),
                evaluation=evaluation,
            )
        )
    if errors:
        raise InputValidationError(errors)
    return CommercialSummary(assets=tuple(assets))


__all__ = [
    "BOQ_SCHEMA",
    "BID_SCHEMA",
    "BIDS_SCHEMA",
    "PTCS_SCHEMA",
    "EVALUATION_SCHEMA",
    "parse_boq",
    "parse_bids",
    "parse_ptcs",
    "parse_commercial_evaluation",
    "parse_settings",
    "parse_overrides",
    "parse_contractors",
    "parse_technical_evaluation",
    "parse_commercial_summary",
]
