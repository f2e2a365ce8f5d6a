"""
Technical and commercial contractor rankings for package award.

Technical rankings weight each breakdown score by its criteria weight
(percent); commercial rankings add up contractor totals across every asset's
latest commercial evaluation.  A contractor must appear in both to be eligible
for award, and award additionally waits for the technical score review to be
complete.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .models import CommercialSummary, Contractor, TechnicalEvaluation

logger = logging.getLogger(__name__)

REVIEW_COMPLETE = "review_complete"
REVIEW_INCOMPLETE_REASON = "Complete the score review on the latest technical evaluation first"
NO_ELIGIBLE_REASON = "No contractors have completed both technical and commercial evaluations"


@dataclass(frozen=True)
class TechnicalRank:
    id: str
    name: str
    score: float


@dataclass(frozen=True)
class CommercialRank:
    id: str
    name: str
    total: float


@dataclass(frozen=True)
class AwardReadiness:
    can_award: bool
    reason: Optional[str]
    eligible: Tuple[Contractor, ...] = ()


@dataclass(frozen=True)
class ReviewProgress:
    approved: int
    total: int
    percent: int


def _check_weights(evaluation: TechnicalEvaluation) -> None:
    total = sum(float(b.weight) for b in evaluation.criteria.breakdowns)
    if evaluation.criteria.breakdowns and not math.isclose(total, 100.0, abs_tol=1e-6):
        logger.warning("Breakdown weights sum to %s%% rather than 100%%", f"{total:g}")


def weighted_score(contractor_id: str, evaluation: TechnicalEvaluation) -> float:
    """Return ``sum(score * weight / 100)`` across every scope breakdown.

    A breakdown the contractor has no score for counts as 0.
    """

    contractor_scores = (evaluation.scores or {}).get(contractor_id, {})
    total = 0.0
    for breakdown in evaluation.criteria.breakdowns:
        entry = contractor_scores.get(breakdown.id)
        score = entry.score if entry is not None else 0.0
        total += (score * breakdown.weight) / 100
    return total


def _evaluated(evaluation: TechnicalEvaluation, contractors: Sequence[Contractor]) -> List[Contractor]:
    uploaded = set(evaluation.proposals_uploaded)
    return [c for c in contractors if c.id in uploaded]


def technical_rankings(
    evaluation: Optional[TechnicalEvaluation],
    contractors: Sequence[Contractor],
) -> List[TechnicalRank]:
    """Rank contractors with uploaded proposals by weighted score, highest first.

    Returns an empty list when there is no evaluation or it has no scores yet;
    a contractor that was evaluated but never scored still appears with 0.
    """

    if evaluation is None or evaluation.scores is None:
        return []
    _check_weights(evaluation)
    ranks = [
        TechnicalRank(id=c.id, name=c.name, score=weighted_score(c.id, evaluation))
        for c in _evaluated(evaluation, contractors)
    ]
    return sorted(ranks, key=lambda r: r.score, reverse=True)


def commercial_rankings(summary: Optional[CommercialSummary]) -> List[CommercialRank]:
    """Aggregate contractor totals across assets, lowest total first."""

    if summary is None or not summary.assets:
        return []

    names: Dict[str, str] = {}
    totals: Dict[str, float] = {}
    for asset in summary.assets:
        evaluation = asset.evaluation
        if evaluation is None:
            logger.debug("Asset %s has no commercial evaluation; skipping", asset.asset_id)
            continue
        for bid in evaluation.contractors:
            names.setdefault(bid.contractor_id, bid.contractor_name)
            totals[bid.contractor_id] = totals.get(bid.contractor_id, 0.0) + bid.total_amount

    ranks = [CommercialRank(id=cid, name=names[cid], total=total) for cid, total in totals.items()]
    return sorted(ranks, key=lambda r: r.total)


def eligible_contractors(
    contractors: Sequence[Contractor],
    technical: Sequence[TechnicalRank],
    commercial: Sequence[CommercialRank],
) -> List[Contractor]:
    tech_ids = {r.id for r in technical}
    comm_ids = {r.id for r in commercial}
    return [c for c in contractors if c.id in tech_ids and c.id in comm_ids]


def award_readiness(
    evaluation: Optional[TechnicalEvaluation],
    contractors: Sequence[Contractor],
    technical: Sequence[TechnicalRank],
    commercial: Sequence[CommercialRank],
) -> AwardReadiness:
    eligible = tuple(eligible_contractors(contractors, technical, commercial))
    review_complete = evaluation is not None and evaluation.status == REVIEW_COMPLETE
    if not review_complete:
        reason: Optional[str] = REVIEW_INCOMPLETE_REASON
    elif not eligible:
        reason = NO_ELIGIBLE_REASON
    else:
        reason = None
    return AwardReadiness(can_award=reason is None, reason=reason, eligible=eligible)


def review_progress(
    evaluation: Optional[TechnicalEvaluation],
    contractors: Sequence[Contractor],
) -> ReviewProgress:
    """Count approved score cells over evaluated contractors x breakdowns."""

    if evaluation is None:
        return ReviewProgress(approved=0, total=0, percent=0)
    scores = evaluation.scores or {}
    approved = 0
    total = 0
    for contractor in _evaluated(evaluation, contractors):
        for breakdown in evaluation.criteria.breakdowns:
            total += 1
            entry = scores.get(contractor.id, {}).get(breakdown.id)
            if entry is not None and entry.approved:
                approved += 1
    if total == 0:
        return ReviewProgress(approved=0, total=0, percent=0)
    percent = int((Decimal(approved * 100) / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return ReviewProgress(approved=approved, total=total, percent=percent)


def rankings_frame(
    technical: Sequence[TechnicalRank],
    commercial: Sequence[CommercialRank],
) -> pd.DataFrame:
    """Outer-join technical and commercial rankings into one table."""

    tech = pd.DataFrame(
        {
            "CONTRACTOR_ID": [r.id for r in technical],
            "CONTRACTOR": [r.name for r in technical],
            "TECH_RANK": list(range(1, len(technical) + 1)),
            "TECH_SCORE": [r.score for r in technical],
        },
        columns=["CONTRACTOR_ID", "CONTRACTOR", "TECH_RANK", "TECH_SCORE"],
    )
    comm = pd.DataFrame(
        {
            "CONTRACTOR_ID": [r.id for r in commercial],
            "COMM_CONTRACTOR": [r.name for r in commercial],
            "COMM_RANK": list(range(1, len(commercial) + 1)),
            "COMM_TOTAL": [r.total for r in commercial],
        },
        columns=["CONTRACTOR_ID", "COMM_CONTRACTOR", "COMM_RANK", "COMM_TOTAL"],
    )
    merged = tech.merge(comm, on="CONTRACTOR_ID", how="outer")
    merged["CONTRACTOR"] = merged["CONTRACTOR"].fillna(merged["COMM_CONTRACTOR"])
    merged["ELIGIBLE"] = merged["TECH_RANK"].notna() & merged["COMM_RANK"].notna()
    merged = merged.drop(columns=["COMM_CONTRACTOR"])
    return merged.sort_values(["TECH_RANK", "COMM_RANK"], na_position="last", kind="mergesort").reset_index(drop=True)


__all__ = [
    "REVIEW_COMPLETE",
    "REVIEW_INCOMPLETE_REASON",
    "NO_ELIGIBLE_REASON",
    "TechnicalRank",
    "CommercialRank",
    "AwardReadiness",
    "ReviewProgress",
    "weighted_score",
    "technical_rankings",
    "commercial_rankings",
    "eligible_contractors",
    "award_readiness",
    "review_progress",
    "rankings_frame",
]
