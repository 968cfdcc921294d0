import asyncio
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from farpedia.config import settings
from farpedia.errors import FarpediaError, Internal, Unavailable
from farpedia.logging_config import configure_logging
from farpedia.metrics import metrics_endpoint
from farpedia.middleware.logging_middleware import RequestLoggingMiddleware
from farpedia.routers import articles, auth, edits, moderation, reactions, users
from farpedia.services.admission import AdmissionGate
from farpedia.services.cache import TTLCache
from farpedia.services.identity import QuickAuthVerifier
from farpedia.services.neynar import NeynarClient

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    app.state.redis = aioredis.from_url(
        settings.redis_url, encoding="utf-8", decode_responses=True
    )
    app.state.verifier = QuickAuthVerifier.from_settings(settings)
    app.state.neynar = NeynarClient.from_settings(settings)
    app.state.admission_gate = AdmissionGate(
        app.state.neynar,
        threshold=settings.admission_score_threshold,
        profile_cache=TTLCache(settings.profile_cache_ttl_seconds),
    )
    app.state.user_cache = TTLCache(settings.user_cache_ttl_seconds)
    try:
        yield
    finally:
        await app.state.neynar.aclose()
        await app.state.verifier.aclose()
        await app.state.redis.aclose()


app = FastAPI(title="Farpedia API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(FarpediaError)
async def farpedia_error_handler(request: Request, exc: FarpediaError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("request_error", error=exc.code, detail=exc.detail, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    log.warning("integrity_error", error=str(exc.orig))
    return JSONResponse(
        status_code=409,
        content={"error": "conflict", "detail": "Conflicting write"},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("database_error", error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": "unavailable", "detail": "Database unavailable", "retryable": True},
    )


# asyncpg connect and command timeouts surface as asyncio.TimeoutError
@app.exception_handler(asyncio.TimeoutError)
@app.exception_handler(TimeoutError)
async def timeout_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = Unavailable("Upstream timed out")
    log.error("upstream_timeout", path=request.url.path)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_error")
    return JSONResponse(status_code=500, content=Internal("Unexpected error").to_dict())


app.include_router(auth.router)
app.include_router(articles.router)
app.include_router(edits.router)
app.include_router(reactions.router)
app.include_router(users.router)
app.include_router(moderation.router)

app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
