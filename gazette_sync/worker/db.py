"""Worker-specific database sessions without connection pool issues.

Each task runs in its own event loop (see tasks.run_async), so it gets a
fresh engine; pooled connections from a previous loop would fail with
"Future attached to different loop".
"""
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from gazette_sync.core.config import settings


@asynccontextmanager
async def worker_session_factory():
    """Session factory bound to a throwaway engine, disposed on exit"""
    engine = create_async_engine(
        settings.database_url_async,
        echo=False,
        poolclass=NullPool,  # No pooling across event loops
    )

    try:
        yield async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    finally:
        await engine.dispose()


@asynccontextmanager
async def get_worker_session():
    """Create a fresh database session for worker tasks"""
    async with worker_session_factory() as factory:
        session = factory()
        try:
            yield session
        finally:
            await session.close()
