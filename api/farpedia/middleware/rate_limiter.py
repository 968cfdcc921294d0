"""Token bucket rate limiter backed by Redis Lua script.

Uses a token bucket algorithm implemented atomically in Lua to prevent
race conditions on the Redis side. One bucket per fid and bucket type.

Key format: rl:{fid}:{bucket_type}
Bucket types: "write" (reads are unauthenticated and not limited)
"""
import time
from typing import Annotated

import redis.asyncio as aioredis
import structlog
from fastapi import Depends, HTTPException
from redis.exceptions import RedisError

from farpedia.config import Settings
from farpedia.dependencies import AppSettings, CurrentFid, RedisClient
from farpedia.errors import Unavailable

log = structlog.get_logger(__name__)

# KEYS[1] = rate limit key (e.g. "rl:{fid}:{bucket_type}")
# ARGV[1] = max_tokens (integer capacity of the bucket)
# ARGV[2] = refill_rate (tokens per second, float)
# ARGV[3] = now (current Unix timestamp, float)
#
# Returns: 1 if allowed (token consumed), 0 if rejected (bucket empty)
RATE_LIMIT_LUA = """
local key = KEYS[1]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local data = redis.call('HGETALL', key)
local tokens = max_tokens
local last_refill = now

if #data > 0 then
    for i = 1, #data, 2 do
        if data[i] == 'tokens' then
            tokens = tonumber(data[i+1])
        elseif data[i] == 'last_refill' then
            last_refill = tonumber(data[i+1])
        end
    end
end

local elapsed = now - last_refill
local new_tokens = tokens + elapsed * refill_rate
if new_tokens > max_tokens then
    new_tokens = max_tokens
end

local allowed = 0
if new_tokens >= 1 then
    new_tokens = new_tokens - 1
    allowed = 1
end

-- 120s TTL (2x the refill window)
redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
redis.call('EXPIRE', key, 120)

return allowed
"""


async def check_rate_limit(
    fid: str,
    redis_client: aioredis.Redis,
    bucket_type: str,
    app_settings: Settings,
) -> None:
    """Consume a token from fid's bucket or raise HTTP 429 with Retry-After.

    A Redis failure raises a retryable Unavailable (503).
    """
    key = f"rl:{fid}:{bucket_type}"

    max_tokens = app_settings.rate_limit_write_per_minute

    # Bucket refills fully in 60 seconds
    refill_rate = max_tokens / 60.0

    try:
        allowed = await redis_client.eval(
            RATE_LIMIT_LUA,
            1,
            key,
            max_tokens,
            refill_rate,
            time.time(),
        )
    except RedisError as exc:
        log.error("rate_limiter_unavailable", fid=fid, bucket=bucket_type, error=str(exc))
        raise Unavailable("Rate limiter unavailable") from exc

    if not allowed:
        log.info("rate_limited", fid=fid, bucket=bucket_type)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": "60"},
        )


def require_write_limit():
    """FastAPI dependency factory for write-path rate limiting."""

    async def _check(
        fid: CurrentFid,
        redis_client: RedisClient,
        app_settings: AppSettings,
    ) -> None:
        await check_rate_limit(fid, redis_client, "write", app_settings)

    return _check


WriteRateLimit = Annotated[None, Depends(require_write_limit())]
