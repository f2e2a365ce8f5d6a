from __future__ import annotations

import copy
import json

import pytest

from boqcompare.errors import InputValidationError
from boqcompare.models import ArithmeticMismatch, Included, NormalizationSettings, Priced, Unpriced
from boqcompare import validation
from boqcompare.validation import (
    parse_bids,
    parse_boq,
    parse_commercial_evaluation,
    parse_commercial_summary,
    parse_contractors,
    parse_overrides,
    parse_ptcs,
    parse_settings,
    parse_technical_evaluation,
)


def test_parse_evaluation_builds_cells(evaluation):
    assert evaluation.boq.line_item_ids == ("i1", "i2", "i3", "i4")
    bravo = evaluation.contractors[1]
    assert bravo.cell("i1") == Priced(120.0)
    assert bravo.cell("i2") == Unpriced()
    assert bravo.cell("i3") == Included()
    assert bravo.cell("i4") == ArithmeticMismatch(500.0, 450.0)
    assert bravo.total_amount == 620.0


def test_schema_errors_are_collected(boq_payload):
    payload = copy.deepcopy(boq_payload)
    del payload["divisions"][0]["sections"][0]["lineItems"][0]["unit"]
    payload["divisions"][0]["sections"][0]["lineItems"][1]["quantity"] = "lots"

    with pytest.raises(InputValidationError) as excinfo:
        parse_boq(payload)
    assert len(excinfo.value.errors) == 2
    assert any("'unit' is a required property" in message for message in excinfo.value.errors)


def test_negative_quantity_rejected(boq_payload):
    payload = copy.deepcopy(boq_payload)
    payload["divisions"][1]["sections"][0]["lineItems"][0]["quantity"] = -1
    with pytest.raises(InputValidationError):
        parse_boq(payload)


def test_duplicate_line_item_ids_rejected(boq_payload):
    payload = copy.deepcopy(boq_payload)
    payload["divisions"][1]["sections"][0]["lineItems"][0]["id"] = "i1"
    with pytest.raises(InputValidationError, match="Duplicate line item id: i1"):
        parse_boq(payload)


def test_duplicate_contractor_ids_rejected(evaluation_payload):
    evaluation_payload["contractors"][2]["contractorId"] = "c1"
    with pytest.raises(InputValidationError, match="Duplicate contractor id: c1"):
        parse_commercial_evaluation(evaluation_payload)


def test_included_item_with_price_rejected(evaluation_payload):
    evaluation_payload["contractors"][1]["prices"]["i3"] = 10
    with pytest.raises(InputValidationError, match="included item must not carry a price"):
        parse_commercial_evaluation(evaluation_payload)


def test_included_item_with_arithmetic_error_rejected(evaluation_payload):
    evaluation_payload["contractors"][1]["arithmeticErrors"]["i3"] = {"submitted": 1, "calculated": 2}
    with pytest.raises(InputValidationError, match="included item cannot have an arithmetic error"):
        parse_commercial_evaluation(evaluation_payload)


def test_arithmetic_error_on_unpriced_item_rejected(evaluation_payload):
    evaluation_payload["contractors"][1]["arithmeticErrors"]["i2"] = {"submitted": 1, "calculated": 2}
    with pytest.raises(InputValidationError, match="arithmetic error recorded for an unpriced item"):
        parse_commercial_evaluation(evaluation_payload)


def test_arithmetic_error_price_must_match_submitted(evaluation_payload):
    evaluation_payload["contractors"][1]["prices"]["i4"] = 499
    with pytest.raises(InputValidationError, match="does not match submitted amount"):
        parse_commercial_evaluation(evaluation_payload)


def test_non_finite_price_rejected(evaluation_payload):
    evaluation_payload["contractors"][0]["prices"]["i1"] = float("nan")
    with pytest.raises(InputValidationError, match="price must be finite"):
        parse_commercial_evaluation(evaluation_payload)


def test_unknown_line_items_are_dropped(evaluation_payload, caplog):
    evaluation_payload["contractors"][0]["prices"]["ghost"] = 999
    evaluation = parse_commercial_evaluation(evaluation_payload)
    assert "ghost" not in evaluation.contractors[0].cells
    assert evaluation.contractors[0].total_amount == 1000.0
    assert "unknown line item ghost" in caplog.text


def test_parse_bids_against_boq(evaluation_payload):
    boq = parse_boq(evaluation_payload["boq"])
    bids = parse_bids(evaluation_payload["contractors"], boq)
    assert [b.contractor_id for b in bids] == ["c1", "c2", "c3"]


def test_fill_adjustment_only_on_gaps(evaluation_payload):
    alpha = evaluation_payload["contractors"][0]
    alpha["adjustments"] = {"i1": "fill"}
    alpha["originalPrices"] = {"i1": 100}
    with pytest.raises(InputValidationError, match="only unpriced or erroneous cells can be filled"):
        parse_commercial_evaluation(evaluation_payload)


def test_parse_settings_defaults_and_values():
    assert parse_settings(None) == NormalizationSettings()
    settings = parse_settings({"algorithm": "lowest", "normalizeUnpriced": False})
    assert settings == NormalizationSettings(normalize_unpriced=False, algorithm="lowest")


def test_parse_settings_rejects_unknown_algorithm():
    with pytest.raises(InputValidationError):
        parse_settings({"algorithm": "mean"})


def test_parse_overrides():
    assert parse_overrides(None) == {}
    assert parse_overrides({"c1-i1": 12}) == {"c1-i1": 12.0}
    with pytest.raises(InputValidationError):
        parse_overrides({"c1-i1": "twelve"})
    with pytest.raises(InputValidationError):
        parse_overrides({"c1-i1": True})
    with pytest.raises(InputValidationError, match="must be finite"):
        parse_overrides({"c1-i1": float("inf")})


def test_parse_contractors_and_ptcs():
    contractors = parse_contractors([{"id": "c1", "name": "Alpha"}])
    assert contractors[0].name == "Alpha"

    ptcs = parse_ptcs(
        [
            {
                "contractorId": "c1",
                "contractorName": "Alpha",
                "ptcs": [{"id": "p1", "status": "pending", "category": "deviations"}],
            }
        ]
    )
    assert ptcs[0].ptcs[0].category == "deviations"
    with pytest.raises(InputValidationError):
        parse_ptcs([{"contractorId": "c1", "contractorName": "Alpha", "ptcs": [{"id": "p1", "status": "open", "category": "deviations"}]}])


def test_parse_technical_evaluation_keeps_none_scores_distinct():
    assert parse_technical_evaluation(None) is None
    pending = parse_technical_evaluation({"status": "analyzing", "scores": None})
    assert pending.scores is None
    empty = parse_technical_evaluation({"status": "analyzing", "scores": {}})
    assert empty.scores == {}


def test_parse_commercial_summary(evaluation_payload):
    summary = parse_commercial_summary(
        {"assets": [{"assetId": "a1", "name": "Tower", "evaluation": evaluation_payload}, {"name": "Podium"}]}
    )
    assert summary.assets[0].evaluation is not None
    assert summary.assets[1].asset_id == "1"
    assert summary.assets[1].evaluation is None
    assert parse_commercial_summary(None) is None


HUGE_INT = json.loads("1" + "0" * 400)


def test_huge_integers_reported_as_validation_errors(evaluation_payload):
    evaluation_payload["boq"]["divisions"][0]["sections"][0]["lineItems"][0]["quantity"] = HUGE_INT
    evaluation_payload["contractors"][0]["prices"]["i2"] = HUGE_INT
    evaluation_payload["contractors"][1]["arithmeticErrors"]["i4"]["calculated"] = HUGE_INT

    with pytest.raises(InputValidationError) as excinfo:
        parse_boq(evaluation_payload["boq"])
    assert excinfo.value.errors == ["Line item i1: quantity must be finite"]

    evaluation_payload["boq"]["divisions"][0]["sections"][0]["lineItems"][0]["quantity"] = 120
    with pytest.raises(InputValidationError) as excinfo:
        parse_commercial_evaluation(evaluation_payload)
    assert any("c1, item i2: price must be finite" in message for message in excinfo.value.errors)
    assert any("c2, item i4: arithmetic error amounts must be finite" in message for message in excinfo.value.errors)


def test_huge_stated_total_is_ignored(evaluation_payload):
    evaluation_payload["contractors"][0]["totalAmount"] = HUGE_INT
    evaluation = parse_commercial_evaluation(evaluation_payload)
    assert evaluation.contractors[0].total_amount == 1000.0


def test_huge_override_rejected():
    with pytest.raises(InputValidationError, match="Override c1-i1: value must be finite"):
        parse_overrides({"c1-i1": HUGE_INT})


def test_huge_technical_numbers_rejected():
    payload = {
        "criteria": {"scopes": [{"id": "s1", "breakdowns": [{"id": "b1", "weight": HUGE_INT}]}]},
        "scores": {"c1": {"b1": {"score": HUGE_INT}}},
    }
    with pytest.raises(InputValidationError) as excinfo:
        parse_technical_evaluation(payload)
    assert excinfo.value.errors == [
        "Breakdown b1: weight must be finite",
        "Score c1/b1: score must be finite",
    ]


def test_repeated_parsing_reuses_compiled_validators(evaluation_payload):
    boq = parse_boq(evaluation_payload["boq"])
    parse_ptcs([])
    parse_bids(evaluation_payload["contractors"], boq)
    compiled = len(validation._VALIDATORS)
    for _ in range(20):
        parse_ptcs([])
        parse_bids(evaluation_payload["contractors"], boq)
    assert len(validation._VALIDATORS) == compiled
