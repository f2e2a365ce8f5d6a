from boqcompare.models import Contractor
from boqcompare.normalization import normalize_bids
from boqcompare.ranking import AwardReadiness, CommercialRank, TechnicalRank
from boqcompare.reporting import make_rankings_text, make_summary_text


def test_summary_text_names_lowest_bidder(evaluation):
    text = make_summary_text(normalize_bids(evaluation.boq, evaluation.contractors))
    assert "Lowest bidder: Bravo Works at $740.00." in text
    assert "highest normalized totals: $290.00." in text
    assert "Charlie Contracting" in text


def test_summary_text_without_bids():
    assert make_summary_text([]) == "No contractor bids to compare.\n"


def test_rankings_text():
    text = make_rankings_text(
        [TechnicalRank("c1", "Alpha", 68.0)],
        [CommercialRank("c1", "Alpha", 1250000.0)],
        AwardReadiness(can_award=True, reason=None, eligible=(Contractor("c1", "Alpha"),)),
    )
    assert "1. Alpha: 68.00" in text
    assert "1. Alpha: $1,250,000.00" in text
    assert "Award ready. Eligible contractors: Alpha" in text

    blocked = make_rankings_text([], [], AwardReadiness(can_award=False, reason="Waiting"))
    assert "(no technical evaluation)" in blocked
    assert "Award blocked: Waiting" in blocked
