"""Neynar client: Farcaster profiles and the reputation score.

GET {base}/v2/farcaster/user/bulk?fids={fid} with the api_key header.
Transient failures (network, timeout, 429, 5xx) are retried with
exponential backoff; other 4xx fail immediately since they point at a bad
key or request.

The quality score has lived under several field names across provider
versions, so extract_quality_score probes SCORE_FIELD_PATHS in order
instead of assuming one schema.
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from farpedia.config import Settings
from farpedia.errors import Unavailable
from farpedia.metrics import reputation_lookup_duration, reputation_lookups
from farpedia.services.retry import call_with_retry, is_transient_http_error

log = structlog.get_logger(__name__)

SCORE_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("score",),
    ("neynar_score",),
    ("experimental", "neynar_user_score"),
    ("data", "score"),
    ("result", "score"),
)


def _coerce_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def extract_quality_score(payload: Any) -> Optional[float]:
    """Return the first numeric score found along SCORE_FIELD_PATHS, else None."""
    if not isinstance(payload, dict):
        return None
    for path in SCORE_FIELD_PATHS:
        node: Any = payload
        for key in path:
            if not isinstance(node, dict) or key not in node:
                node = None
                break
            node = node[key]
        score = _coerce_score(node)
        if score is not None:
            return score
    return None


class NeynarUser(BaseModel):
    """The subset of the Neynar user object this service reads."""

    model_config = ConfigDict(extra="ignore")

    fid: int
    username: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None
    custody_address: Optional[str] = None
    follower_count: int = 0
    following_count: int = 0
    active_status: Optional[str] = None
    verified_addresses: Optional[dict] = None
    score: Optional[float] = None


class NeynarClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.neynar.com",
        timeout: float = 5.0,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.25,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "NeynarClient":
        return cls(
            api_key=app_settings.neynar_api_key,
            base_url=app_settings.neynar_base_url,
            timeout=app_settings.http_timeout_seconds,
            max_attempts=app_settings.neynar_max_attempts,
            backoff_base_seconds=app_settings.neynar_backoff_base_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_user(self, fid: str) -> Optional[NeynarUser]:
        """Fetch one profile. Returns None when Neynar has no user for fid.

        Raises:
            Unavailable: retryable=True after exhausting retries on transient
                failures; retryable=False for missing key, 4xx or a payload
                that does not parse.
        """
        if not self.api_key:
            raise Unavailable("Neynar API key not configured", retryable=False)

        async def _get() -> Any:
            response = await self._client.get(
                "/v2/farcaster/user/bulk",
                params={"fids": fid},
                headers={"api_key": self.api_key},
            )
            response.raise_for_status()
            return response.json()

        start = time.monotonic()
        try:
            payload = await call_with_retry(
                _get,
                max_attempts=self.max_attempts,
                base_delay=self.backoff_base_seconds,
                is_retryable=is_transient_http_error,
                sleep=self._sleep,
                operation="neynar_user_bulk",
            )
        except httpx.HTTPStatusError as exc:
            reputation_lookups.labels(status="error").inc()
            status = exc.response.status_code
            log.warning("neynar_http_error", fid=fid, status_code=status)
            raise Unavailable(
                f"Neynar returned HTTP {status}",
                retryable=is_transient_http_error(exc),
            ) from exc
        except httpx.TransportError as exc:
            reputation_lookups.labels(status="error").inc()
            log.warning("neynar_unreachable", fid=fid, error=str(exc))
            raise Unavailable("Neynar unreachable") from exc
        except ValueError as exc:
            reputation_lookups.labels(status="error").inc()
            raise Unavailable("Neynar returned a non-JSON body", retryable=False) from exc
        finally:
            reputation_lookup_duration.observe(time.monotonic() - start)

        users = payload.get("users") if isinstance(payload, dict) else None
        if not users:
            reputation_lookups.labels(status="not_found").inc()
            return None

        raw = users[0]
        try:
            user = NeynarUser.model_validate(raw)
        except ValidationError as exc:
            reputation_lookups.labels(status="error").inc()
            raise Unavailable("Neynar user payload did not parse", retryable=False) from exc

        user.score = extract_quality_score(raw)
        reputation_lookups.labels(status="ok").inc()
        return user
