from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from farpedia.config import Settings, settings


def engine_options(app_settings: Settings) -> dict[str, Any]:
    """Engine keyword arguments that bound every store round trip.

    asyncpg raises TimeoutError when a connect or a statement overruns;
    pool_timeout bounds the wait for a free connection.
    """
    options: dict[str, Any] = {"echo": app_settings.debug, "pool_pre_ping": True}
    if app_settings.database_url.startswith("postgresql+asyncpg"):
        options["pool_timeout"] = app_settings.db_timeout_seconds
        options["connect_args"] = {
            "timeout": app_settings.db_timeout_seconds,
            "command_timeout": app_settings.db_timeout_seconds,
        }
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db():
    """FastAPI dependency: yields AsyncSession per request."""
    async with async_session_factory() as session:
        yield session
