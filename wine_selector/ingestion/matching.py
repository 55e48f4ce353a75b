"""
Match Run Module
================

Links catalog wines to ratings-site wines and writes their quality signals.

A run has three phases:
1. Page the ratings site's explore feed into a candidate pool and a winery
   directory.
2. Broad pass: match every catalog wine, in catalog order, against the pool.
3. Winery expansion: for wines still unmatched with a known producer, find
   the producer's winery, fetch that winery's full catalog and match again.

Both passes share one ClaimArbiter, so each ratings-site wine backs at most
one catalog wine. When a stronger claim evicts a weaker one, the evicted
wine's signal and direct link are removed. A wine that loses its claim
while still linked to the candidate from an earlier run is cleared too.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import Session

from wine_selector.core.varietals import parse_producer
from wine_selector.db.repositories import (
    VIVINO_SOURCE,
    IngestionRunRepository,
    QualitySignalRepository,
    WineRepository,
)
from wine_selector.ingestion.adapters.vivino import CandidatePool, WineryInfo
from wine_selector.ingestion.arbiter import ClaimArbiter, to_confidence
from wine_selector.ingestion.normalizer import normalise
from wine_selector.ingestion.registry import MatchingConfig
from wine_selector.ingestion.resolver import (
    CandidateIndex,
    CrossSourceMatcher,
    ExternalRatingCandidate,
    MatchResult,
    MatchTarget,
)

logger = logging.getLogger(__name__)

MATCH_SOURCE = "vivino_explore"
WINERY_TOKEN_OVERLAP_MIN = 0.5


class CandidateSource(Protocol):
    """Where a match run gets its candidates from."""

    async def fetch_candidate_pool(self, max_pages: int | None = None) -> CandidatePool: ...

    async def fetch_winery_wines(
        self, winery: WineryInfo, min_rating_count: int = 5
    ) -> list[ExternalRatingCandidate]: ...


@dataclass(frozen=True)
class CatalogWine:
    """The fields of a catalog wine a match run needs."""

    id: str
    name: str
    producer: str | None


@dataclass
class MatchStats:
    """Counters for one match run."""

    catalog_wines: int = 0
    candidates: int = 0
    wineries: int = 0
    matched: int = 0
    matched_explore: int = 0
    matched_winery: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    no_candidate: int = 0
    vetoed: int = 0
    below_threshold: int = 0
    lost_claim: int = 0
    evicted: int = 0
    stale_links_cleared: int = 0
    urls_updated: int = 0
    winery_lookups: int = 0
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return dict(self.__dict__)


@dataclass
class MatchRunContext:
    """
    Run-scoped state of a match run.

    Holds the claim map, counters and thresholds so that nothing outlives
    the run.
    """

    session: Session
    source: CandidateSource
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    dry_run: bool = False
    arbiter: ClaimArbiter = field(default_factory=ClaimArbiter)
    stats: MatchStats = field(default_factory=MatchStats)

    def __post_init__(self) -> None:
        self.matcher = CrossSourceMatcher.from_config(self.matching)
        self.wines = WineRepository(self.session)
        self.signals = QualitySignalRepository(self.session)
        self.stats.dry_run = self.dry_run
        self.phase_of: dict[str, str] = {}

    def confidence_of(self, score: float) -> float:
        return to_confidence(
            score, self.matching.confidence_floor, self.matching.confidence_ceiling
        )


def load_catalog(session: Session) -> list[CatalogWine]:
    """Catalog wines in the order they were first synced."""
    return [
        CatalogWine(id=w.id, name=w.name, producer=parse_producer(w.producer))
        for w in WineRepository(session).list_all()
    ]


def evaluate(ctx: MatchRunContext, wine: CatalogWine, index: CandidateIndex) -> MatchResult | None:
    """
    Best acceptable candidate for a wine, counting the rejection reason.

    Returns:
        MatchResult clearing the score floor, or None
    """
    best, vetoed = ctx.matcher.best_candidate(wine.name, wine.producer, index)
    ctx.stats.vetoed += vetoed
    if best is None:
        ctx.stats.no_candidate += 1
        return None
    floor = ctx.matcher.min_score_for(MatchTarget.build(wine.name, wine.producer))
    if best.score < floor:
        ctx.stats.below_threshold += 1
        logger.debug(f"'{wine.name}' best score {best.score:.2f} is below {floor:.2f}")
        return None
    return best


def release_claim(ctx: MatchRunContext, catalog_id: str) -> None:
    """Remove the signal and direct link of a wine that lost its claim."""
    if ctx.dry_run:
        return
    ctx.signals.delete(catalog_id, VIVINO_SOURCE)
    ctx.wines.set_vivino_url(catalog_id, None)
    ctx.session.commit()


def apply_match(ctx: MatchRunContext, wine: CatalogWine, result: MatchResult, phase: str) -> bool:
    """
    Claim a candidate for a wine and persist the signal if the claim holds.

    Args:
        ctx: Run context
        wine: Catalog wine
        result: Accepted match result
        phase: "explore" or "winery", for counters

    Returns:
        True if the claim was accepted
    """
    candidate = result.candidate
    outcome = ctx.arbiter.propose(candidate.full_name, wine.id, wine.name, result.score)
    if not outcome.accepted:
        ctx.stats.lost_claim += 1
        stored = ctx.wines.get_by_id(wine.id)
        if candidate.direct_url and stored is not None and stored.vivino_url == candidate.direct_url:
            # Held this candidate in an earlier run
            ctx.stats.stale_links_cleared += 1
            release_claim(ctx, wine.id)
        return False
    if outcome.evicted is not None:
        ctx.stats.evicted += 1
        release_claim(ctx, outcome.evicted.catalog_id)
        ctx.phase_of.pop(outcome.evicted.catalog_id, None)
    ctx.phase_of[wine.id] = phase

    confidence = ctx.confidence_of(result.score)
    link_worthy = bool(candidate.direct_url) and confidence >= ctx.matching.link_worthy_threshold
    if link_worthy:
        ctx.stats.urls_updated += 1
    if not ctx.dry_run:
        ctx.signals.replace(
            wine_id=wine.id,
            rating=round(candidate.rating, 2),
            rating_count=candidate.rating_count,
            confidence_score=confidence,
            source=VIVINO_SOURCE,
        )
        if link_worthy:
            ctx.wines.set_vivino_url(wine.id, candidate.direct_url)
        ctx.session.commit()
    return True


def find_winery(producer_norm: str, directory: dict[str, WineryInfo]) -> WineryInfo | None:
    """
    Locate a producer in the winery directory.

    Tries an exact normalised-name match, then containment either way, then
    the best token overlap of at least 0.5 (tokens longer than two
    characters).

    Args:
        producer_norm: Normalised producer name
        directory: Wineries keyed by normalised name

    Returns:
        WineryInfo or None
    """
    if not producer_norm:
        return None
    exact = directory.get(producer_norm)
    if exact is not None:
        return exact

    for key, winery in directory.items():
        if key and (producer_norm in key or key in producer_norm):
            return winery

    producer_tokens = {t for t in producer_norm.split(" ") if len(t) > 2}
    if not producer_tokens:
        return None
    best: WineryInfo | None = None
    best_overlap = 0.0
    for key, winery in directory.items():
        winery_tokens = {t for t in key.split(" ") if len(t) > 2}
        if not winery_tokens:
            continue
        overlap = len(producer_tokens & winery_tokens) / max(len(producer_tokens), len(winery_tokens))
        if overlap > best_overlap and overlap >= WINERY_TOKEN_OVERLAP_MIN:
            best_overlap = overlap
            best = winery
    return best


def broad_pass(
    ctx: MatchRunContext, catalog: list[CatalogWine], pool: CandidatePool
) -> list[CatalogWine]:
    """
    Match every catalog wine against the explore pool.

    Returns:
        Wines left unmatched, in catalog order
    """
    index = CandidateIndex(pool.candidates)
    unmatched = []
    for position, wine in enumerate(catalog, start=1):
        result = evaluate(ctx, wine, index)
        if result is None or not apply_match(ctx, wine, result, "explore"):
            unmatched.append(wine)
        if position % 1000 == 0:
            logger.info(f"Broad pass: {position}/{len(catalog)} wines")
    return unmatched


async def winery_expansion(
    ctx: MatchRunContext, unmatched: list[CatalogWine], pool: CandidatePool
) -> None:
    """Re-match unmatched known-producer wines against their winery's catalog."""
    groups: dict[str, list[CatalogWine]] = defaultdict(list)
    for wine in unmatched:
        if wine.producer is None:
            continue
        key = normalise(wine.producer)
        if key:
            groups[key].append(wine)
    logger.info(f"Winery expansion: {len(groups)} producers to look up")

    for producer_norm, wines in groups.items():
        winery = find_winery(producer_norm, pool.wineries)
        if winery is None:
            continue
        candidates = await ctx.source.fetch_winery_wines(
            winery, ctx.matching.winery_min_rating_count
        )
        if not candidates:
            continue
        ctx.stats.winery_lookups += 1
        index = CandidateIndex(candidates)
        for wine in wines:
            result = evaluate(ctx, wine, index)
            if result is not None:
                apply_match(ctx, wine, result, "winery")


def _finalize_stats(ctx: MatchRunContext) -> None:
    claims = ctx.arbiter.claims().values()
    ctx.stats.matched = len(claims)
    ctx.stats.matched_explore = sum(1 for p in ctx.phase_of.values() if p == "explore")
    ctx.stats.matched_winery = sum(1 for p in ctx.phase_of.values() if p == "winery")
    for claim in claims:
        if ctx.confidence_of(claim.score) >= ctx.matching.high_confidence_threshold:
            ctx.stats.high_confidence += 1
        else:
            ctx.stats.medium_confidence += 1


async def run_match(
    session: Session,
    source: CandidateSource,
    matching: MatchingConfig | None = None,
    dry_run: bool = False,
    max_pages: int | None = None,
    run_source: str = MATCH_SOURCE,
) -> MatchStats:
    """
    Run a full match run.

    Each accepted match is committed on its own; a crash leaves earlier
    matches in place. Outside dry-run mode the run is recorded in
    ``ingestion_runs``.

    Args:
        session: Database session
        source: Candidate source (explore adapter or the sample adapter)
        matching: Thresholds, defaults to MatchingConfig()
        dry_run: Score and count without writing anything
        max_pages: Explore page limit
        run_source: Source name recorded on the ingestion run

    Returns:
        MatchStats for the run

    Raises:
        FeedUnavailableError: If the candidate pool cannot be fetched
    """
    ctx = MatchRunContext(
        session=session,
        source=source,
        matching=matching or MatchingConfig(),
        dry_run=dry_run,
    )

    pool = await source.fetch_candidate_pool(max_pages)
    catalog = load_catalog(session)
    ctx.stats.candidates = len(pool.candidates)
    ctx.stats.wineries = len(pool.wineries)
    ctx.stats.catalog_wines = len(catalog)

    runs = IngestionRunRepository(session)
    run = None
    if not dry_run:
        run = runs.start(run_source, items_read=len(pool.candidates))
        session.commit()

    try:
        unmatched = broad_pass(ctx, catalog, pool)
        logger.info(
            f"Broad pass matched {len(ctx.arbiter)} of {len(catalog)} wines, "
            f"{len(unmatched)} unmatched"
        )
        await winery_expansion(ctx, unmatched, pool)
    except Exception as e:
        session.rollback()
        logger.exception(f"Match run failed after {len(ctx.arbiter)} matches")
        if run is not None:
            runs.fail(run, len(ctx.arbiter), str(e) or "Unknown match failure")
            session.commit()
        raise

    _finalize_stats(ctx)
    if run is not None:
        runs.complete(run, ctx.stats.matched)
        session.commit()

    logger.info(
        f"Match run: {ctx.stats.matched}/{ctx.stats.catalog_wines} matched "
        f"({ctx.stats.high_confidence} high, {ctx.stats.medium_confidence} medium), "
        f"{ctx.stats.vetoed} vetoed, {ctx.stats.lost_claim} lost claims, "
        f"{ctx.stats.urls_updated} links updated"
    )
    return ctx.stats
