"""Database Connection and Session Management"""

import re
import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict

from fastapi import Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from rental_ledger.config import Settings
from rental_ledger.core.exceptions import ConflictError, StorageError, DUPLICATE_ENTRY
from rental_ledger.core.logging import get_logger

logger = get_logger(__name__)

# Base class for declarative models
Base = declarative_base()


def normalize_database_url(url: str) -> tuple[str, Dict[str, Any]]:
    """Return an async driver URL and the matching connect_args."""
    # Convert postgresql:// to postgresql+asyncpg:// for async support
    database_url = url.replace("postgresql://", "postgresql+asyncpg://")
    if database_url.startswith("sqlite:///"):
        database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

    # asyncpg uses ssl=SSLContext or True, not sslmode; strip sslmode from URL (asyncpg#737, SQLAlchemy#6275)
    connect_args: Dict[str, Any] = {}
    if re.search(r"[?&]sslmode=(require|required|verify-full)", database_url, re.I):
        _ssl_ctx = ssl.create_default_context()
        _ssl_ctx.check_hostname = False
        _ssl_ctx.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = _ssl_ctx
        database_url = re.sub(r"[?&]sslmode=[^&]+", "", database_url, flags=re.I)
        database_url = re.sub(r"\?&", "?", database_url).rstrip("?")
    if "?&" in database_url:
        database_url = database_url.replace("?&", "?")
    return database_url, connect_args


class Database:
    """
    Owns the async engine and the session factory.

    Built once by the application lifespan (or by a test fixture), stored on
    ``app.state.database`` and disposed at shutdown.
    """

    def __init__(self, url: str, echo: bool = False, **pool_options: Any):
        database_url, connect_args = normalize_database_url(url)
        engine_options: Dict[str, Any] = {"echo": echo, "future": True}

        if database_url.startswith("sqlite"):
            # One shared connection, otherwise every session sees its own empty :memory: db
            if ":memory:" in database_url:
                engine_options["poolclass"] = StaticPool
            connect_args["check_same_thread"] = False
        else:
            # pool_pre_ping detects stale connections
            engine_options["pool_pre_ping"] = True
            engine_options.update(pool_options)

        self.url = database_url
        self.engine = create_async_engine(
            database_url,
            connect_args=connect_args,
            **engine_options,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self) -> None:
        """Create tables from the models (development and tests only)"""
        # Register every mapped table on Base.metadata
        import rental_ledger.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close database connections"""
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.

    Yields:
        AsyncSession: Database session bound to the application's Database

    Example:
        ```python
        @router.get("/invoices")
        async def list_invoices(db: AsyncSession = Depends(get_db)):
            ...
        ```
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a read-validate-write sequence as one transaction.

    Commits when the block exits cleanly. Any failure, cancellation included,
    rolls everything back so partial effects are never visible. Database
    errors are translated into the service error taxonomy.
    """
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Constraint violation", extra={"error": str(exc.orig)})
        raise ConflictError(
            "The operation conflicts with an existing record",
            code=DUPLICATE_ENTRY,
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Database error", exc_info=True)
        raise StorageError("Database operation failed") from exc
    except BaseException:
        await db.rollback()
        raise
