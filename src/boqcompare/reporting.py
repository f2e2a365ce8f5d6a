from typing import Optional, Sequence

from .models import ContractorBid
from .normalization import totals_frame
from .ranking import AwardReadiness, CommercialRank, TechnicalRank


def make_summary_text(bids: Sequence[ContractorBid]) -> str:
    if not bids:
        return "No contractor bids to compare.\n"
    table = totals_frame(bids)
    lowest = bids[0]
    spread = float(table["TOTAL_AMOUNT"].iloc[-1] - table["TOTAL_AMOUNT"].iloc[0])
    return (
        f"Lowest bidder: {lowest.contractor_name} at ${lowest.total_amount:,.2f}.\n"
        f"Spread between lowest and highest normalized totals: ${spread:,.2f}.\n"
        f"Normalized totals:\n{table.to_string(index=False)}\n"
    )


def make_rankings_text(
    technical: Sequence[TechnicalRank],
    commercial: Sequence[CommercialRank],
    readiness: Optional[AwardReadiness] = None,
) -> str:
    lines = ["Technical ranking (weighted score):"]
    if technical:
        lines.extend(f"  {i}. {r.name}: {r.score:.2f}" for i, r in enumerate(technical, start=1))
    else:
        lines.append("  (no technical evaluation)")
    lines.append("Commercial ranking (total across assets):")
    if commercial:
        lines.extend(f"  {i}. {r.name}: ${r.total:,.2f}" for i, r in enumerate(commercial, start=1))
    else:
        lines.append("  (no commercial evaluation)")
    if readiness is not None:
        if readiness.can_award:
            names = ", ".join(c.name for c in readiness.eligible)
            lines.append(f"Award ready. Eligible contractors: {names}")
        else:
            lines.append(f"Award blocked: {readiness.reason}")
    return "\n".join(lines) + "\n"
