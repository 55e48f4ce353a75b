"""
Cross-Source Resolver Module
============================

Matches retailer catalog wines to wines on the ratings site. Neither source
shares an identifier with the other, so matching is done on significant name
tokens (Jaccard similarity) adjusted by producer agreement, with a veto when
the two names mention different grapes.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wine_selector.core.varietals import parse_producer
from wine_selector.ingestion.normalizer import (
    normalise,
    significant_tokens,
    varietal_conflict,
)

if TYPE_CHECKING:
    from wine_selector.ingestion.registry import MatchingConfig

logger = logging.getLogger(__name__)

PRODUCER_EXACT_BONUS = 0.20
PRODUCER_PARTIAL_BONUS = 0.12
PRODUCER_MISMATCH_PENALTY = -0.10
CONTAINMENT_BONUS = 0.10


@dataclass
class ExternalRatingCandidate:
    """
    One wine listed on the ratings site.

    ``tokens`` are the significant tokens of "winery + full name" and are
    derived on construction when not given.
    """

    wine_id: str
    winery_name: str
    wine_name_only: str
    full_name: str
    rating: float
    rating_count: int
    direct_url: str = ""
    region: str = ""
    country: str = ""
    tokens: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        self.wine_id = str(self.wine_id)
        if not self.full_name:
            self.full_name = f"{self.winery_name} {self.wine_name_only}".strip()
        if not self.tokens:
            self.tokens = significant_tokens(f"{self.winery_name} {self.full_name}")

    @property
    def is_eligible(self) -> bool:
        """Candidates without a rating or reviews are never match targets."""
        return self.rating > 0 and self.rating_count > 0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Components of a candidate's match score."""

    base_score: float
    producer_adjustment: float = 0.0
    containment_bonus: float = 0.0

    @property
    def total(self) -> float:
        return self.base_score + self.producer_adjustment + self.containment_bonus


@dataclass
class MatchTarget:
    """A catalog wine prepared for matching."""

    name: str
    producer: str | None
    tokens: frozenset[str]
    name_norm: str
    producer_norm: str

    @classmethod
    def build(cls, name: str, producer: str | None) -> MatchTarget:
        """
        Prepare a catalog wine for matching.

        The producer is left out of the token set when it is unknown.
        """
        known = parse_producer(producer)
        raw = f"{known} {name}" if known else name
        return cls(
            name=name,
            producer=known,
            tokens=significant_tokens(raw),
            name_norm=normalise(name),
            producer_norm=normalise(known) if known else "",
        )

    @property
    def min_shared_tokens(self) -> int:
        return 1 if len(self.tokens) <= 2 else 2


@dataclass
class MatchResult:
    """Best candidate for a catalog wine and how it scored."""

    candidate: ExternalRatingCandidate
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.total


class CandidateIndex:
    """
    Inverted index from significant token to candidate positions.

    Built once per candidate pool so each catalog wine only scores the
    candidates it shares tokens with.
    """

    def __init__(self, candidates: list[ExternalRatingCandidate]) -> None:
        self.candidates = candidates
        self._postings: dict[str, list[int]] = defaultdict(list)
        for position, candidate in enumerate(candidates):
            for token in candidate.tokens:
                self._postings[token].append(position)

    def __len__(self) -> int:
        return len(self.candidates)

    def candidates_sharing(self, tokens: frozenset[str], min_shared: int) -> list[int]:
        """
        Positions of candidates sharing at least ``min_shared`` tokens.

        Args:
            tokens: Target token set
            min_shared: Minimum number of shared tokens

        Returns:
            Candidate positions in ascending order
        """
        counts: dict[int, int] = defaultdict(int)
        for token in tokens:
            for position in self._postings.get(token, ()):
                counts[position] += 1
        return sorted(pos for pos, count in counts.items() if count >= min_shared)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    """Jaccard similarity of two token sets (0 when either is empty)."""
    if not a or not b:
        return 0.0
    overlap = len(a & b)
    union = len(a) + len(b) - overlap
    return overlap / union if union else 0.0


def _producer_adjustment(producer_norm: str, winery_name: str) -> float:
    if not producer_norm or not winery_name:
        return 0.0
    winery_norm = normalise(winery_name)
    if producer_norm == winery_norm:
        return PRODUCER_EXACT_BONUS
    if producer_norm in winery_norm or winery_norm in producer_norm:
        return PRODUCER_PARTIAL_BONUS
    producer_words = {t for t in producer_norm.split(" ") if len(t) > 1}
    winery_words = {t for t in winery_norm.split(" ") if len(t) > 1}
    if producer_words.isdisjoint(winery_words):
        return PRODUCER_MISMATCH_PENALTY
    return 0.0


def _score(target: MatchTarget, candidate: ExternalRatingCandidate) -> ScoreBreakdown:
    candidate_norm = normalise(candidate.full_name)
    contained = bool(target.name_norm and candidate_norm) and (
        candidate_norm in target.name_norm or target.name_norm in candidate_norm
    )
    return ScoreBreakdown(
        base_score=jaccard(target.tokens, candidate.tokens),
        producer_adjustment=_producer_adjustment(target.producer_norm, candidate.winery_name),
        containment_bonus=CONTAINMENT_BONUS if contained else 0.0,
    )


def score_candidate(
    catalog_name: str,
    catalog_producer: str | None,
    candidate: ExternalRatingCandidate,
) -> ScoreBreakdown:
    """
    Score a single candidate against a catalog wine.

    Args:
        catalog_name: Retailer product name
        catalog_producer: Producer, or None / "Unknown Producer"
        candidate: Ratings-site wine

    Returns:
        ScoreBreakdown; ``total`` is not clamped and may exceed 1.0
    """
    return _score(MatchTarget.build(catalog_name, catalog_producer), candidate)


def _beats(new: MatchResult, best: MatchResult | None) -> bool:
    if best is None:
        return True
    if new.score != best.score:
        return new.score > best.score
    # Exact ties: more reviews, then smaller id.
    if new.candidate.rating_count != best.candidate.rating_count:
        return new.candidate.rating_count > best.candidate.rating_count
    return new.candidate.wine_id < best.candidate.wine_id


class CrossSourceMatcher:
    """
    Finds the best ratings-site candidate for a catalog wine.

    A match is accepted only if its score clears a floor, which is higher
    when the producer is unknown because the name alone must carry it.
    """

    def __init__(
        self,
        min_score_known_producer: float = 0.45,
        min_score_unknown_producer: float = 0.50,
    ) -> None:
        """
        Initialize the matcher.

        Args:
            min_score_known_producer: Floor when the catalog producer is known
            min_score_unknown_producer: Floor when the producer is unknown
        """
        self.min_score_known_producer = min_score_known_producer
        self.min_score_unknown_producer = min_score_unknown_producer

    @classmethod
    def from_config(cls, config: MatchingConfig) -> CrossSourceMatcher:
        """Create matcher from configuration."""
        return cls(
            min_score_known_producer=config.min_score_known_producer,
            min_score_unknown_producer=config.min_score_unknown_producer,
        )

    def min_score_for(self, target: MatchTarget) -> float:
        if target.producer is None:
            return self.min_score_unknown_producer
        return self.min_score_known_producer

    def best_candidate(
        self,
        catalog_name: str,
        catalog_producer: str | None,
        index: CandidateIndex,
    ) -> tuple[MatchResult | None, int]:
        """
        Best-scoring candidate before the acceptance floor is applied.

        Returns:
            (best result or None, number of candidates vetoed for grape conflict)
        """
        target = MatchTarget.build(catalog_name, catalog_producer)
        positions = index.candidates_sharing(target.tokens, target.min_shared_tokens)

        best: MatchResult | None = None
        vetoed = 0
        for position in positions:
            candidate = index.candidates[position]
            if varietal_conflict(catalog_name, candidate.full_name):
                vetoed += 1
                continue
            result = MatchResult(candidate=candidate, breakdown=_score(target, candidate))
            if result.score > 0 and _beats(result, best):
                best = result
        return best, vetoed

    def match_one(
        self,
        catalog_name: str,
        catalog_producer: str | None,
        index: CandidateIndex,
    ) -> MatchResult | None:
        """
        Match a catalog wine against an indexed candidate pool.

        Args:
            catalog_name: Retailer product name
            catalog_producer: Producer, or None / "Unknown Producer"
            index: Inverted index over the candidate pool

        Returns:
            MatchResult if the best candidate clears the floor, None otherwise
        """
        best, _ = self.best_candidate(catalog_name, catalog_producer, index)
        if best is None:
            return None
        floor = self.min_score_for(MatchTarget.build(catalog_name, catalog_producer))
        if best.score < floor:
            logger.debug(
                f"Best candidate for '{catalog_name}' scored {best.score:.2f} "
                f"below floor {floor:.2f}"
            )
            return None
        return best


def match_one(
    catalog_name: str,
    catalog_producer: str | None,
    index: CandidateIndex,
) -> MatchResult | None:
    """Match with the default thresholds. See :meth:`CrossSourceMatcher.match_one`."""
    return CrossSourceMatcher().match_one(catalog_name, catalog_producer, index)
