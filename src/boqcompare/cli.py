import argparse
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Sequence

from dotenv import load_dotenv

from .config import Config
from .config import load_config as load_runtime_config
from .errors import InputValidationError
from .evaluation_io import (
    bid_to_dict,
    evaluation_to_dict,
    ptcs_to_dict,
    read_json,
    write_comparison_workbook,
    write_json,
)
from .issues import cell_issues, issue_counts
from .models import CommercialEvaluation
from .normalization import normalize_bids, raw_bid
from .ptc import draft_ptcs_from_issues, pending_by_contractor
from .ranking import (
    award_readiness,
    commercial_rankings,
    review_progress,
    technical_rankings,
)
from .reporting import make_rankings_text, make_summary_text
from .validation import (
    parse_commercial_evaluation,
    parse_commercial_summary,
    parse_contractors,
    parse_overrides,
    parse_technical_evaluation,
)

BASE_DIR = Path(__file__).resolve().parents[2]

load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)


def _load_evaluation(path: Path) -> CommercialEvaluation:
    logger.info(" - Evaluation: %s", path)
    return parse_commercial_evaluation(read_json(path))


def run_normalize(
    runtime_config: Config,
    evaluation_path: Path,
    overrides_path: Optional[Path] = None,
) -> Dict[str, Path]:
    """Normalize one commercial evaluation and write its JSON and workbook outputs."""

    evaluation = _load_evaluation(evaluation_path)
    overrides: Dict[str, float] = {}
    if overrides_path is not None:
        logger.info(" - Custom overrides: %s", overrides_path)
        overrides = parse_overrides(read_json(overrides_path))

    settings = runtime_config.settings
    raw_bids = [raw_bid(bid) for bid in evaluation.contractors]
    counts = issue_counts(cell_issues(raw_bids))
    logger.info(
        "Loaded %d bids over %d line items (%d unpriced, %d included, %d arithmetic errors)",
        len(raw_bids),
        len(evaluation.boq.line_item_ids),
        counts["unpriced"],
        counts["included"],
        counts["arithmetic_error"],
    )
    normalized = normalize_bids(evaluation.boq, raw_bids, settings, overrides)

    payload = evaluation_to_dict(evaluation)
    payload["contractors"] = [bid_to_dict(bid) for bid in normalized]
    payload["settings"] = {
        "normalizeUnpriced": settings.normalize_unpriced,
        "normalizeArithmeticErrors": settings.normalize_arithmetic_errors,
        "algorithm": settings.algorithm,
    }
    if overrides:
        payload["customOverrides"] = overrides

    out_json = write_json(runtime_config.output_json, payload)
    out_xlsx = write_comparison_workbook(runtime_config.output_xlsx, evaluation.boq, raw_bids, normalized)

    logger.info(make_summary_text(normalized))
    logger.info("Outputs written:")
    logger.info(" - %s", out_json)
    logger.info(" - %s", out_xlsx)
    return {"json": out_json, "xlsx": out_xlsx}


def run_rank(
    runtime_config: Config,
    technical_path: Path,
    commercial_path: Path,
    contractors_path: Path,
) -> Path:
    contractors = parse_contractors(read_json(contractors_path))
    technical_eval = parse_technical_evaluation(read_json(technical_path))
    summary = parse_commercial_summary(read_json(commercial_path))

    technical = technical_rankings(technical_eval, contractors)
    commercial = commercial_rankings(summary)
    readiness = award_readiness(technical_eval, contractors, technical, commercial)
    progress = review_progress(technical_eval, contractors)

    logger.info(make_rankings_text(technical, commercial, readiness))
    logger.info("Score review: %d/%d approved (%d%%)", progress.approved, progress.total, progress.percent)

    payload = {
        "technical": [{"id": r.id, "name": r.name, "score": r.score} for r in technical],
        "commercial": [{"id": r.id, "name": r.name, "total": r.total} for r in commercial],
        "canAward": readiness.can_award,
        "reason": readiness.reason,
        "eligible": [{"id": c.id, "name": c.name} for c in readiness.eligible],
        "reviewProgress": {
            "approved": progress.approved,
            "total": progress.total,
            "percent": progress.percent,
        },
    }
    out_path = write_json(runtime_config.output_dir / "rankings.json", payload)
    logger.info("Outputs written:")
    logger.info(" - %s", out_path)
    return out_path


def run_ptc_draft(runtime_config: Config, evaluation_path: Path) -> Path:
    evaluation = _load_evaluation(evaluation_path)
    raw_bids = [raw_bid(bid) for bid in evaluation.contractors]
    drafted = draft_ptcs_from_issues(evaluation.boq, raw_bids)
    for contractor_id, pending in pending_by_contractor(drafted).items():
        logger.info(" - %s: %d pending clarifications", contractor_id, pending)
    out_path = write_json(runtime_config.output_dir / "ptcs.json", ptcs_to_dict(drafted))
    logger.info("Outputs written:")
    logger.info(" - %s", out_path)
    return out_path


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output-dir", help="Directory for generated outputs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Normalize and compare contractor BOQ bids")
    subparsers = parser.add_subparsers(dest="command", required=True)

    normalize = subparsers.add_parser("normalize", help="Normalize bids and write comparison outputs")
    normalize.add_argument("evaluation", help="Commercial evaluation JSON (BOQ and contractor bids)")
    normalize.add_argument("--overrides", help="JSON object of custom overrides keyed <contractorId>-<lineItemId>")
    normalize.add_argument("--algorithm", choices=["median", "lowest"], help="Fill value algorithm")
    normalize.add_argument("--keep-unpriced", action="store_true", help="Leave unpriced items unfilled")
    normalize.add_argument(
        "--keep-arithmetic-errors",
        action="store_true",
        help="Keep submitted amounts for items with arithmetic errors",
    )
    _add_common(normalize)

    rank = subparsers.add_parser("rank", help="Rank contractors and check award readiness")
    rank.add_argument("--technical", required=True, help="Technical evaluation JSON")
    rank.add_argument("--commercial", required=True, help="Commercial summary JSON (one evaluation per asset)")
    rank.add_argument("--contractors", required=True, help="Package contractors JSON")
    _add_common(rank)

    ptc_draft = subparsers.add_parser("ptc-draft", help="Draft post-tender clarifications from bid issues")
    ptc_draft.add_argument("evaluation", help="Commercial evaluation JSON (BOQ and contractor bids)")
    _add_common(ptc_draft)

    return parser.parse_args(argv)


def _dispatch(args: argparse.Namespace, runtime_cfg: Config) -> int:
    if args.command == "normalize":
        run_normalize(
            runtime_cfg,
            Path(args.evaluation),
            Path(args.overrides) if args.overrides else None,
        )
    elif args.command == "rank":
        run_rank(runtime_cfg, Path(args.technical), Path(args.commercial), Path(args.contractors))
    else:
        run_ptc_draft(runtime_cfg, Path(args.evaluation))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    if not logging.getLogger().handlers:
        logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return _dispatch(args, runtime_cfg)
    except InputValidationError as exc:
        logger.error("Invalid input:")
        for message in exc.errors:
            logger.error(" - %s", message)
        return 2
    except Exception:  # pragma: no cover - defensive
        logger.exception("Fatal error during %s", args.command)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
