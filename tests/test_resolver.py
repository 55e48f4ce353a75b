"""Tests for the cross-source resolver and the match arbiter."""

import pytest

from wine_selector.ingestion.arbiter import ClaimArbiter, ClaimStatus, to_confidence
from wine_selector.ingestion.registry import MatchingConfig
from wine_selector.ingestion.resolver import (
    CandidateIndex,
    CrossSourceMatcher,
    ExternalRatingCandidate,
    MatchTarget,
    jaccard,
    match_one,
    score_candidate,
)


def candidate(
    winery: str,
    name: str,
    wine_id: str = "1",
    rating: float = 4.0,
    rating_count: int = 100,
) -> ExternalRatingCandidate:
    """Build a candidate with a derived full name."""
    return ExternalRatingCandidate(
        wine_id=wine_id,
        winery_name=winery,
        wine_name_only=name,
        full_name="",
        rating=rating,
        rating_count=rating_count,
        direct_url=f"https://www.vivino.com/w/{wine_id}",
    )


class TestExternalRatingCandidate:
    """Tests for ExternalRatingCandidate."""

    def test_full_name_and_tokens_derived(self) -> None:
        """Test derived fields."""
        c = candidate("Gato Negro", "Chardonnay", wine_id=1101)
        assert c.wine_id == "1101"
        assert c.full_name == "Gato Negro Chardonnay"
        assert c.tokens == frozenset({"gato", "negro", "chardonnay"})

    def test_eligibility(self) -> None:
        """Test unrated or unreviewed wines are not eligible."""
        assert candidate("A", "B").is_eligible is True
        assert candidate("A", "B", rating=0.0).is_eligible is False
        assert candidate("A", "B", rating_count=0).is_eligible is False


class TestScoring:
    """Tests for candidate scoring."""

    def test_jaccard(self) -> None:
        """Test Jaccard similarity."""
        assert jaccard(frozenset({"a", "b"}), frozenset({"b", "c"})) == pytest.approx(1 / 3)
        assert jaccard(frozenset(), frozenset({"a"})) == 0.0

    def test_exact_match_breakdown(self) -> None:
        """Test an identical name with an identical producer."""
        breakdown = score_candidate(
            "Gato Negro Chardonnay", "Gato Negro", candidate("Gato Negro", "Chardonnay")
        )
        assert breakdown.base_score == pytest.approx(1.0)
        assert breakdown.producer_adjustment == pytest.approx(0.20)
        assert breakdown.containment_bonus == pytest.approx(0.10)
        assert breakdown.total == pytest.approx(1.3)

    def test_partial_producer(self) -> None:
        """Test producer containment earns the partial bonus."""
        breakdown = score_candidate(
            "Penfolds Bin 28 Kalimna Shiraz",
            "Penfolds Bin 28 Kalimna",
            candidate("Penfolds", "Bin 28 Kalimna Shiraz"),
        )
        assert breakdown.producer_adjustment == pytest.approx(0.12)
        assert breakdown.total == pytest.approx(1.22)

    def test_producer_mismatch_penalty(self) -> None:
        """Test producers with no words in common are penalised."""
        breakdown = score_candidate(
            "Tawse Sauvignon Blanc", "Tawse", candidate("Cloudy Bay", "Sauvignon Blanc")
        )
        assert breakdown.producer_adjustment == pytest.approx(-0.10)

    def test_shared_producer_word_is_neutral(self) -> None:
        """Test overlapping but distinct producers get no adjustment."""
        breakdown = score_candidate(
            "Henry Estate Baco Noir", "Henry Estate", candidate("Henry of Pelham", "Baco Noir")
        )
        assert breakdown.producer_adjustment == 0.0

    def test_unknown_producer_has_no_adjustment(self) -> None:
        """Test the unknown sentinel is treated as no producer."""
        breakdown = score_candidate(
            "Catena Malbec", "Unknown Producer", candidate("Catena", "Malbec")
        )
        assert breakdown.producer_adjustment == 0.0
        assert breakdown.total == pytest.approx(1.1)

    def test_unknown_producer_left_out_of_tokens(self) -> None:
        """Test the sentinel never becomes match tokens."""
        target = MatchTarget.build("Catena Malbec", "Unknown Producer")
        assert target.producer is None
        assert target.tokens == frozenset({"catena", "malbec"})
        assert target.min_shared_tokens == 1


class TestCandidateIndex:
    """Tests for the inverted index."""

    def test_candidates_sharing(self) -> None:
        """Test lookup by shared token count."""
        index = CandidateIndex(
            [
                candidate("Gato Negro", "Chardonnay", wine_id="1"),
                candidate("Cloudy Bay", "Chardonnay", wine_id="2"),
                candidate("Catena", "Malbec", wine_id="3"),
            ]
        )
        tokens = frozenset({"gato", "negro", "chardonnay"})
        assert index.candidates_sharing(tokens, 1) == [0, 1]
        assert index.candidates_sharing(tokens, 2) == [0]
        assert len(index) == 3


class TestCrossSourceMatcher:
    """Tests for CrossSourceMatcher."""

    def test_best_match(self) -> None:
        """Test the best candidate is chosen."""
        index = CandidateIndex(
            [
                candidate("Penfolds", "Bin 389 Cabernet Shiraz", wine_id="1108"),
                candidate("Penfolds", "Bin 28 Kalimna Shiraz", wine_id="1106"),
            ]
        )
        result = match_one("Penfolds Bin 28 Kalimna Shiraz", "Penfolds", index)
        assert result is not None
        assert result.candidate.wine_id == "1106"

    def test_varietal_veto(self) -> None:
        """Test a candidate naming another grape is never chosen."""
        index = CandidateIndex([candidate("Gato Negro", "Chardonnay")])
        matcher = CrossSourceMatcher()
        best, vetoed = matcher.best_candidate("Gato Negro Merlot", "Gato Negro", index)
        assert best is None
        assert vetoed == 1
        assert matcher.match_one("Gato Negro Merlot", "Gato Negro", index) is None

    def test_floors(self) -> None:
        """Test the floor is higher for unknown producers."""
        matcher = CrossSourceMatcher()
        assert matcher.min_score_for(MatchTarget.build("Catena Malbec", "Catena")) == 0.45
        assert matcher.min_score_for(MatchTarget.build("Catena Malbec", None)) == 0.50

    def test_floor_rejects_weak_match(self) -> None:
        """Test a best candidate below the floor is dropped."""
        index = CandidateIndex([candidate("Inniskillin", "Riesling Icewine")])
        strict = CrossSourceMatcher(min_score_known_producer=0.7, min_score_unknown_producer=0.8)
        # 2/3 overlap plus containment
        assert strict.match_one("Inniskillin Riesling", None, index) is None
        result = strict.match_one("Inniskillin Riesling", "Inniskillin", index)
        assert result is not None
        assert result.score == pytest.approx(2 / 3 + 0.2 + 0.1)

    def test_from_config(self) -> None:
        """Test thresholds are read from MatchingConfig."""
        matcher = CrossSourceMatcher.from_config(
            MatchingConfig(min_score_known_producer=0.6, min_score_unknown_producer=0.7)
        )
        assert matcher.min_score_known_producer == 0.6
        assert matcher.min_score_unknown_producer == 0.7

    def test_tie_prefers_more_reviews(self) -> None:
        """Test equal scores are broken by review count."""
        index = CandidateIndex(
            [
                candidate("Catena", "Malbec", wine_id="100", rating_count=50),
                candidate("Catena", "Malbec", wine_id="200", rating_count=9800),
            ]
        )
        result = match_one("Catena Malbec", "Catena", index)
        assert result.candidate.wine_id == "200"

    def test_tie_prefers_smaller_id(self) -> None:
        """Test equal scores and review counts are broken by id."""
        index = CandidateIndex(
            [
                candidate("Catena", "Malbec", wine_id="300", rating_count=10),
                candidate("Catena", "Malbec", wine_id="200", rating_count=10),
            ]
        )
        result = match_one("Catena Malbec", "Catena", index)
        assert result.candidate.wine_id == "200"

    def test_no_shared_tokens(self) -> None:
        """Test an unrelated pool yields no match."""
        index = CandidateIndex([candidate("Catena", "Malbec")])
        assert match_one("Cloudy Bay Sauvignon Blanc", "Cloudy Bay", index) is None


class TestClaimArbiter:
    """Tests for the one-to-one claim arbiter."""

    def test_first_claim_accepted(self) -> None:
        """Test an unclaimed candidate is accepted."""
        arbiter = ClaimArbiter()
        outcome = arbiter.propose("Catena Malbec", "w1", "Catena Malbec", 0.9)
        assert outcome.status == ClaimStatus.ACCEPTED
        assert outcome.accepted is True
        assert "Catena Malbec" in arbiter

    def test_stronger_claim_evicts(self) -> None:
        """Test a strictly stronger claim replaces the holder."""
        arbiter = ClaimArbiter()
        arbiter.propose("Catena Malbec", "w1", "Catena Malbec Reserve", 0.8)
        outcome = arbiter.propose("Catena Malbec", "w2", "Catena Malbec", 1.2)
        assert outcome.status == ClaimStatus.REPLACED
        assert outcome.evicted.catalog_id == "w1"
        assert arbiter.claim_for("Catena Malbec").catalog_id == "w2"

    def test_equal_claim_rejected(self) -> None:
        """Test the holder keeps the candidate on a tie."""
        arbiter = ClaimArbiter()
        arbiter.propose("Henry of Pelham Baco Noir", "w1", "Baco Noir 2021", 1.3)
        outcome = arbiter.propose("Henry of Pelham Baco Noir", "w2", "Baco Noir 2022", 1.3)
        assert outcome.status == ClaimStatus.REJECTED
        assert outcome.accepted is False
        assert arbiter.claim_for("Henry of Pelham Baco Noir").catalog_id == "w1"

    def test_weaker_claim_rejected(self) -> None:
        """Test a weaker claim is rejected."""
        arbiter = ClaimArbiter()
        arbiter.propose("Catena Malbec", "w1", "Catena Malbec", 1.2)
        assert arbiter.propose("Catena Malbec", "w2", "Catena", 0.5).accepted is False

    def test_same_wine_reproposing(self) -> None:
        """Test the holder re-proposing keeps its claim."""
        arbiter = ClaimArbiter()
        arbiter.propose("Catena Malbec", "w1", "Catena Malbec", 0.9)
        outcome = arbiter.propose("Catena Malbec", "w1", "Catena Malbec", 0.7)
        assert outcome.status == ClaimStatus.ACCEPTED
        assert outcome.evicted is None
        assert arbiter.claim_for("Catena Malbec").score == 0.9
        assert len(arbiter) == 1

    @pytest.mark.parametrize(
        "score,expected",
        [(1.3, 0.95), (0.95, 0.95), (0.7, 0.7), (0.46, 0.55), (-0.1, 0.55)],
    )
    def test_to_confidence(self, score: float, expected: float) -> None:
        """Test confidence clamping."""
        assert to_confidence(score) == pytest.approx(expected)
