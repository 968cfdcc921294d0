"""Shared fixtures: in-memory SQLite database, seeded rows, and an app client.

Endpoint tests run the real routers against SQLite through aiosqlite. The
QuickAuth verifier, Neynar client and Redis are replaced with in-process
fakes on app.state; the fake verifier treats the bearer token as the fid.
"""

from collections.abc import AsyncIterator
from typing import Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from farpedia.config import Settings
from farpedia.database import get_db
from farpedia.dependencies import get_settings
from farpedia.errors import InvalidToken
from farpedia.main import app
from farpedia.models import Account, Article, ArticleEdit, Base
from farpedia.services.admission import AdmissionGate
from farpedia.services.cache import TTLCache
from farpedia.services.neynar import NeynarUser


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        _env_file=None,
        admin_fids="",
        neynar_api_key="test-key",
        admission_score_threshold=0.5,
        auto_admin_trusted_fids="",
        edit_proposal_max_age_days=None,
    )


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


async def make_article(
    db: AsyncSession,
    *,
    slug: str = "acme-token",
    author_fid: str = "100",
    title: str = "Acme Token",
    body: str = "v1",
    published: bool = False,
    category: Optional[str] = "token",
) -> Article:
    article = Article(
        slug=slug,
        title=title,
        body=body,
        author_fid=author_fid,
        metadata_json={"category": category} if category else {},
        published=published,
        vetted=published,
    )
    db.add(article)
    await db.commit()
    await db.refresh(article)
    return article


async def make_edit(
    db: AsyncSession,
    article: Article,
    *,
    author_fid: str = "200",
    body: str = "v2",
    title: Optional[str] = None,
    summary: Optional[str] = None,
) -> ArticleEdit:
    edit = ArticleEdit(
        article_id=article.id,
        author_fid=author_fid,
        body=body,
        title=title,
        summary=summary,
    )
    db.add(edit)
    await db.commit()
    await db.refresh(edit)
    return edit


async def make_account(
    db: AsyncSession,
    fid: str,
    *,
    is_admin: bool = False,
    is_reviewer: bool = False,
) -> Account:
    account = Account(fid=fid, is_admin=is_admin, is_reviewer=is_reviewer)
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


# ---------------------------------------------------------------------------
# Fakes for the app.state clients
# ---------------------------------------------------------------------------


class FakeRedis:
    """Answers the rate limiter's EVAL with a fixed decision, or raises error."""

    def __init__(self, allowed: bool = True, error: Optional[Exception] = None) -> None:
        self.allowed = allowed
        self.error = error
        self.keys: list[str] = []

    async def eval(self, script, numkeys, key, *args):
        self.keys.append(key)
        if self.error is not None:
            raise self.error
        return 1 if self.allowed else 0

    async def aclose(self) -> None:
        pass


class FakeVerifier:
    async def verify(self, token: str, domain: str) -> str:
        if token.startswith("bad"):
            raise InvalidToken("Invalid QuickAuth token")
        return token


class FakeNeynar:
    def __init__(self, profiles: Optional[dict[str, NeynarUser]] = None) -> None:
        self.profiles = profiles or {}
        self.calls: list[str] = []

    async def fetch_user(self, fid: str) -> Optional[NeynarUser]:
        self.calls.append(fid)
        return self.profiles.get(fid)

    async def aclose(self) -> None:
        pass


def neynar_user(fid: str, score: Optional[float] = None, **fields) -> NeynarUser:
    return NeynarUser(fid=int(fid), username=f"user{fid}", score=score, **fields)


@pytest.fixture
def fake_neynar() -> FakeNeynar:
    return FakeNeynar(
        {
            "100": neynar_user("100", score=0.9),
            "200": neynar_user("200", score=0.8),
            "300": neynar_user("300", score=0.5),
        }
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
async def client(session_factory, app_settings, fake_neynar, fake_redis) -> AsyncIterator[httpx.AsyncClient]:
    """ASGI client over the real app with the database and clients swapped out."""

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: app_settings

    app.state.redis = fake_redis
    app.state.verifier = FakeVerifier()
    app.state.neynar = fake_neynar
    app.state.admission_gate = AdmissionGate(
        fake_neynar, threshold=app_settings.admission_score_threshold
    )
    app.state.user_cache = TTLCache(60)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://farpedia.test") as c:
        yield c

    app.dependency_overrides.clear()


def auth(fid: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {fid}"}
