"""
Ovenly Backend: Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set before the first `ovenly` import so the
       settings singleton is built for tests (development mode, quiet logs,
       uploads under a throwaway directory).

Fixture Hierarchy:
    Session-scoped:
    └── app: create_app() with every feature route registered once
             (the shared router binds a route to one app only)

    Function-scoped:
    ├── uploads_root: settings.storage_root pointed at tmp_path
    ├── fake_collection: Motor collection stand-in behind db_connection
    ├── make_upload: builds Starlette UploadFile parts from bytes
    └── client: HTTPX AsyncClient against the shared app
"""

import importlib
import io
import os
import tempfile
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

os.environ["APP_ENV"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["API_PREFIX"] = "api"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="ovenly_test_")

from starlette.datastructures import Headers, UploadFile  # noqa: E402

from ovenly.config import settings  # noqa: E402
from ovenly.database import db_connection  # noqa: E402

ROUTE_MODULES = (
    "ovenly.modules.general.routes",
    "ovenly.modules.file_uploads.routes",
    "ovenly.modules.users.routes",
)


# ══════════════════════════════════════════════════════════════════════════
# Session-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    from ovenly.core.router import router
    from ovenly.main import create_app

    for module in ROUTE_MODULES:
        importlib.import_module(module)

    application = create_app()
    router.scan(application)
    return application


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def uploads_root(tmp_path, monkeypatch):
    """Point uploads at tmp_path; returns the (not yet created) uploads dir."""
    monkeypatch.setattr(settings, "storage_root", str(tmp_path))
    return (tmp_path / "uploads").resolve()


@pytest.fixture
def fake_collection(monkeypatch):
    """
    A MagicMock collection returned for every db_connection.collection() call.

    Usage:
        fake_collection.find_one.return_value = {"_id": ..., "email": ...}
    """
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    monkeypatch.setattr(db_connection, "collection", lambda name: collection)
    return collection


@pytest.fixture
def make_upload():
    def _make(content: bytes, filename: str = "photo.png", content_type: str = "image/png") -> UploadFile:
        return UploadFile(
            file=io.BytesIO(content),
            size=len(content),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )

    return _make


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient wired to the shared app through ASGITransport.

    The lifespan is not run, so no database connection is attempted.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
