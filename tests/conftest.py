"""Shared fixtures: isolated SQLite databases and a fake DJEN API"""
import os
import tempfile

import pytest

# Configure the app BEFORE importing it: scratch database, no background scheduler
_db_dir = tempfile.mkdtemp(prefix="gazette_sync_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'app.db')}"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "testing"

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gazette_sync.db.session import Base
from gazette_sync.db import models  # noqa: F401
from gazette_sync.services.gazette_client import GazetteClient

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0)


def make_session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    """Frozen clock so date windows are deterministic"""
    return lambda: FIXED_NOW


@pytest.fixture
def djen_item():
    """Factory for raw DJEN API items"""
    def _make(
        hash_: Optional[str] = "hash-a",
        process: str = "0001234-56.2026.8.26.0100",
        masked: bool = True,
        date: str = "2026-10-10",
        texto: str = "Intimação para manifestação no prazo de 15 dias.",
        tipo: str = "Intimação",
        tribunal: str = "TJSP",
        **extra: Any,
    ) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "data_disponibilizacao": date,
            "siglaTribunal": tribunal,
            "tipoComunicacao": tipo,
            "nomeOrgao": "1ª Vara Cível",
            "texto": texto,
            "meio": "D",
            "link": "https://comunica.pje.jus.br/consulta",
        }
        if hash_ is not None:
            item["hash"] = hash_
        if masked:
            item["numeroprocessocommascara"] = process
        else:
            item["numero_processo"] = "".join(ch for ch in process if ch.isdigit())
        item.update(extra)
        return item

    return _make


class FakeDjen:
    """
    In-memory DJEN API served through httpx.MockTransport.

    pages maps an attorney name to the list of item lists returned for
    pagina=1, 2, ...; pages past the end come back empty.
    """

    def __init__(self):
        self.pages: Dict[str, List[List[Dict[str, Any]]]] = {}
        self.requests: List[httpx.Request] = []
        self.status_overrides: Dict[str, int] = {}

    def set_pages(self, attorney: str, *pages: List[Dict[str, Any]]) -> None:
        self.pages[attorney] = list(pages)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        attorney = request.url.params.get("nomeAdvogado")
        if attorney in self.status_overrides:
            return httpx.Response(self.status_overrides[attorney], text="unavailable")

        page = int(request.url.params.get("pagina", "1"))
        pages = self.pages.get(attorney, [])
        items = pages[page - 1] if page <= len(pages) else []
        return httpx.Response(
            200,
            json={"status": "success", "count": sum(len(p) for p in pages), "items": items},
        )

    def requests_for(self, attorney: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.params.get("nomeAdvogado") == attorney]

    def client_factory(self, page_size: int = 2) -> Callable:
        """client_factory for GazetteSyncEngine, with no real backoff sleeps"""
        async def no_sleep(_seconds: float) -> None:
            return None

        def factory(config) -> GazetteClient:
            return GazetteClient(
                timeout=config.api_timeout_seconds,
                max_retries=config.max_retries,
                page_size=page_size,
                transport=httpx.MockTransport(self.handler),
                sleep=no_sleep,
            )

        return factory


@pytest.fixture
def fake_djen():
    return FakeDjen()


@pytest.fixture
def api_client(tmp_path, fake_djen, clock):
    """
    TestClient wired to a per-test database and the fake DJEN API.

    Everything async runs on the client's own event loop (client.portal), so
    seed data with api_client.portal.call(async_fn, ...).
    """
    from fastapi.testclient import TestClient

    from gazette_sync.db.session import get_db
    from gazette_sync.main import app
    from gazette_sync.services.sync_engine import GazetteSyncEngine

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    factory = make_session_factory(engine)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def override_get_db():
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as client:
            client.portal.call(create_tables)
            app.state.sync_engine = GazetteSyncEngine(
                factory,
                client_factory=fake_djen.client_factory(),
                clock=clock,
            )
            client.session_factory = factory
            yield client

            current = app.state.sync_engine.current
            if current is not None:
                client.portal.call(current.wait)
            client.portal.call(engine.dispose)
    finally:
        app.dependency_overrides.clear()
