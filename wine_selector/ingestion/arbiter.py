"""
Match Arbiter Module
====================

Keeps matches one-to-one: a ratings-site wine backs at most one catalog wine
per match run. When two catalog wines claim the same candidate, the higher
score wins and the loser is left unmatched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

CONFIDENCE_FLOOR = 0.55
CONFIDENCE_CEILING = 0.95


class ClaimStatus(str, Enum):
    """Outcome of proposing a claim."""

    ACCEPTED = "accepted"  # candidate was unclaimed
    REPLACED = "replaced"  # candidate taken from a weaker claim
    REJECTED = "rejected"  # existing claim is at least as strong


@dataclass
class MatchClaim:
    """The catalog wine currently holding a candidate."""

    catalog_id: str
    catalog_name: str
    score: float


@dataclass
class ClaimOutcome:
    """Result of :meth:`ClaimArbiter.propose`."""

    status: ClaimStatus
    evicted: MatchClaim | None = None

    @property
    def accepted(self) -> bool:
        return self.status != ClaimStatus.REJECTED


class ClaimArbiter:
    """
    Run-scoped claim map keyed by the candidate's full display name.

    Shared by every pass of a match run so a later pass can still lose to a
    stronger claim made earlier.
    """

    def __init__(self) -> None:
        self._claims: dict[str, MatchClaim] = {}

    def __len__(self) -> int:
        return len(self._claims)

    def __contains__(self, candidate_key: str) -> bool:
        return candidate_key in self._claims

    def claim_for(self, candidate_key: str) -> MatchClaim | None:
        return self._claims.get(candidate_key)

    def claims(self) -> dict[str, MatchClaim]:
        """Snapshot of the current claims."""
        return dict(self._claims)

    def propose(
        self,
        candidate_key: str,
        catalog_id: str,
        catalog_name: str,
        score: float,
    ) -> ClaimOutcome:
        """
        Propose that ``catalog_id`` claims the candidate ``candidate_key``.

        Args:
            candidate_key: Candidate identity (its full display name)
            catalog_id: Catalog wine making the claim
            catalog_name: Catalog wine name, for logging
            score: Match score of the claim

        Returns:
            ClaimOutcome; ``evicted`` is set when a weaker claim was displaced
        """
        existing = self._claims.get(candidate_key)

        if existing is not None and existing.catalog_id == catalog_id:
            existing.score = max(existing.score, score)
            return ClaimOutcome(status=ClaimStatus.ACCEPTED)

        if existing is not None and existing.score >= score:
            logger.debug(
                f"'{catalog_name}' ({score:.2f}) lost '{candidate_key}' to "
                f"'{existing.catalog_name}' ({existing.score:.2f})"
            )
            return ClaimOutcome(status=ClaimStatus.REJECTED)

        self._claims[candidate_key] = MatchClaim(
            catalog_id=catalog_id,
            catalog_name=catalog_name,
            score=score,
        )
        if existing is None:
            return ClaimOutcome(status=ClaimStatus.ACCEPTED)

        logger.info(
            f"'{catalog_name}' ({score:.2f}) took '{candidate_key}' from "
            f"'{existing.catalog_name}' ({existing.score:.2f})"
        )
        return ClaimOutcome(status=ClaimStatus.REPLACED, evicted=existing)


def to_confidence(
    score: float,
    floor: float = CONFIDENCE_FLOOR,
    ceiling: float = CONFIDENCE_CEILING,
) -> float:
    """Clamp a raw match score into the persisted confidence range."""
    return max(floor, min(ceiling, score))
