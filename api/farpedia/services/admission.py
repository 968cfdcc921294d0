"""Reputation gate for article creation.

A proposer needs a Neynar score strictly above the configured threshold.
No score, no user, or a provider failure all count as 0.0: the gate fails
closed. Profiles may be served from a TTL cache to avoid a provider call on
every attempt.
"""

from typing import Optional

import structlog

from farpedia.errors import QualityTooLow, Unavailable
from farpedia.metrics import admission_decisions, reputation_lookups
from farpedia.services.cache import TTLCache
from farpedia.services.neynar import NeynarClient, NeynarUser

log = structlog.get_logger(__name__)

MIN_SCORE = 0.0


class AdmissionGate:
    def __init__(
        self,
        neynar: NeynarClient,
        threshold: float,
        profile_cache: Optional[TTLCache[NeynarUser]] = None,
    ) -> None:
        self.neynar = neynar
        self.threshold = threshold
        self.profile_cache = profile_cache

    async def score_for(self, fid: str) -> float:
        """Return fid's score, MIN_SCORE when none can be obtained."""
        try:
            user = await self._fetch(fid)
        except Unavailable as exc:
            log.warning("admission_score_unavailable", fid=fid, error=exc.detail)
            return MIN_SCORE
        if user is None or user.score is None:
            return MIN_SCORE
        return user.score

    async def evaluate(self, fid: str) -> float:
        """Admit fid or raise QualityTooLow. Returns the accepted score."""
        score = await self.score_for(fid)
        if score > self.threshold:
            admission_decisions.labels(decision="admitted").inc()
            log.info("admission_granted", fid=fid, score=score, threshold=self.threshold)
            return score

        admission_decisions.labels(decision="rejected").inc()
        log.info("admission_rejected", fid=fid, score=score, threshold=self.threshold)
        raise QualityTooLow(score=score, threshold=self.threshold)

    async def _fetch(self, fid: str) -> Optional[NeynarUser]:
        if self.profile_cache is None:
            return await self.neynar.fetch_user(fid)
        cached = self.profile_cache.get(fid)
        if cached is not None:
            reputation_lookups.labels(status="cached").inc()
            return cached
        return await self.profile_cache.get_or_load(fid, lambda: self.neynar.fetch_user(fid))
