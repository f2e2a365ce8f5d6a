from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from boqcompare import cli
from boqcompare.api import ComparisonOptions, compare


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "BOQ_NORMALIZE_UNPRICED",
        "BOQ_NORMALIZE_ARITHMETIC_ERRORS",
        "BOQ_FILL_ALGORITHM",
        "OUTPUT_DIR",
        "OUTPUT_JSON",
        "OUTPUT_XLSX",
    ):
        monkeypatch.delenv(name, raising=False)


def test_normalize_writes_outputs(evaluation_payload, json_file, tmp_path: Path):
    evaluation_path = json_file("evaluation.json", evaluation_payload)
    overrides_path = json_file("overrides.json", {"c3-i4": 300})
    out_dir = tmp_path / "out"

    rc = cli.main(["normalize", str(evaluation_path), "--overrides", str(overrides_path), "--output-dir", str(out_dir)])

    assert rc == 0
    blob = json.loads((out_dir / "normalized_bids.json").read_text(encoding="utf-8"))
    assert [(c["contractorId"], c["totalAmount"]) for c in blob["contractors"]] == [
        ("c2", 740.0),
        ("c3", 950.0),
        ("c1", 1000.0),
    ]
    assert blob["settings"] == {"normalizeUnpriced": True, "normalizeArithmeticErrors": True, "algorithm": "median"}
    assert blob["customOverrides"] == {"c3-i4": 300.0}
    totals = pd.read_excel(out_dir / "BOQ_Comparison.xlsx", sheet_name="Totals")
    assert list(totals["CONTRACTOR_ID"]) == ["c2", "c3", "c1"]


def test_normalize_options(evaluation_payload, json_file, tmp_path: Path):
    evaluation_path = json_file("evaluation.json", evaluation_payload)
    rc = cli.main(
        [
            "normalize",
            str(evaluation_path),
            "--algorithm",
            "lowest",
            "--keep-arithmetic-errors",
            "--output-dir",
            str(tmp_path),
        ]
    )
    assert rc == 0
    blob = json.loads((tmp_path / "normalized_bids.json").read_text(encoding="utf-8"))
    bravo = next(c for c in blob["contractors"] if c["contractorId"] == "c2")
    assert bravo["totalAmount"] == 820.0
    assert bravo["prices"]["i4"] == 500.0


def test_normalize_rerun_on_own_output_is_stable(evaluation_payload, json_file, tmp_path: Path):
    first_dir = tmp_path / "first"
    second_dir = tmp_path / "second"
    assert cli.main(["normalize", str(json_file("evaluation.json", evaluation_payload)), "--output-dir", str(first_dir)]) == 0
    assert cli.main(["normalize", str(first_dir / "normalized_bids.json"), "--output-dir", str(second_dir)]) == 0

    first = json.loads((first_dir / "normalized_bids.json").read_text(encoding="utf-8"))
    second = json.loads((second_dir / "normalized_bids.json").read_text(encoding="utf-8"))
    assert first["contractors"] == second["contractors"]


def test_invalid_input_returns_2(evaluation_payload, json_file, tmp_path: Path, caplog):
    evaluation_payload["contractors"][0]["contractorId"] = "c2"
    rc = cli.main(["normalize", str(json_file("evaluation.json", evaluation_payload)), "--output-dir", str(tmp_path)])
    assert rc == 2
    assert "Duplicate contractor id: c2" in caplog.text
    assert not (tmp_path / "normalized_bids.json").exists()


def test_missing_file_returns_1(tmp_path: Path):
    assert cli.main(["normalize", str(tmp_path / "missing.json"), "--output-dir", str(tmp_path)]) == 1


def test_rank_writes_rankings(evaluation_payload, json_file, tmp_path: Path):
    technical = {
        "status": "review_complete",
        "criteria": {
            "scopes": [
                {
                    "id": "scope-1",
                    "title": "Delivery",
                    "breakdowns": [{"id": "b1", "weight": 60}, {"id": "b2", "weight": 40}],
                }
            ]
        },
        "scores": {
            "c1": {"b1": {"score": 80, "approved": True}, "b2": {"score": 50, "approved": True}},
            "c3": {"b1": {"score": 70, "approved": True}, "b2": {"score": 90, "approved": True}},
        },
        "proposalsUploaded": ["c1", "c3"],
    }
    contractors = [
        {"id": "c1", "name": "Alpha Build"},
        {"id": "c2", "name": "Bravo Works"},
        {"id": "c3", "name": "Charlie Contracting"},
    ]
    summary = {"assets": [{"assetId": "a1", "name": "Tower", "evaluation": evaluation_payload}]}

    rc = cli.main(
        [
            "rank",
            "--technical",
            str(json_file("technical.json", technical)),
            "--commercial",
            str(json_file("summary.json", summary)),
            "--contractors",
            str(json_file("contractors.json", contractors)),
            "--output-dir",
            str(tmp_path / "out"),
        ]
    )

    assert rc == 0
    result = json.loads((tmp_path / "out" / "rankings.json").read_text(encoding="utf-8"))
    assert [r["id"] for r in result["technical"]] == ["c3", "c1"]
    assert result["technical"][1]["score"] == pytest.approx(68.0)
    assert [r["id"] for r in result["commercial"]] == ["c2", "c1", "c3"]
    assert result["canAward"] is True
    assert [c["id"] for c in result["eligible"]] == ["c1", "c3"]
    assert result["reviewProgress"] == {"approved": 4, "total": 4, "percent": 100}


def test_rank_without_technical_evaluation(json_file, tmp_path: Path):
    rc = cli.main(
        [
            "rank",
            "--technical",
            str(json_file("technical.json", None)),
            "--commercial",
            str(json_file("summary.json", {"assets": []})),
            "--contractors",
            str(json_file("contractors.json", [])),
            "--output-dir",
            str(tmp_path),
        ]
    )
    assert rc == 0
    result = json.loads((tmp_path / "rankings.json").read_text(encoding="utf-8"))
    assert result["technical"] == []
    assert result["canAward"] is False
    assert result["reason"] == "Complete the score review on the latest technical evaluation first"


def test_ptc_draft(evaluation_payload, json_file, tmp_path: Path):
    rc = cli.main(["ptc-draft", str(json_file("evaluation.json", evaluation_payload)), "--output-dir", str(tmp_path)])
    assert rc == 0
    drafted = json.loads((tmp_path / "ptcs.json").read_text(encoding="utf-8"))
    assert [len(entry["ptcs"]) for entry in drafted] == [0, 3, 0]


def test_compare_api(evaluation_payload, json_file, tmp_path: Path):
    paths = compare(
        ComparisonOptions(
            evaluation_json=json_file("evaluation.json", evaluation_payload),
            output_dir=tmp_path / "api",
            normalize_unpriced=False,
        )
    )
    assert paths["json"] == (tmp_path / "api" / "normalized_bids.json").resolve()
    assert paths["xlsx"].exists()
    blob = json.loads(paths["json"].read_text(encoding="utf-8"))
    assert blob["settings"]["normalizeUnpriced"] is False


def test_out_of_range_number_returns_2(evaluation_payload, json_file, tmp_path: Path, caplog):
    evaluation_payload["contractors"][0]["prices"]["i1"] = 10**400
    path = json_file("evaluation.json", evaluation_payload)

    assert cli.main(["normalize", str(path), "--output-dir", str(tmp_path)]) == 2
    assert "price must be finite" in caplog.text
