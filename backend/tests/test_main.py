"""
Ovenly Backend: Application Factory & Lifespan Tests
=======================================================

What:  Operating modes (development awaits initialization, production starts
       it in the background behind the init guard), general endpoints and
       the request ID header.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI

from ovenly import main
from ovenly.config import settings
from ovenly.exceptions import DatabaseError
from ovenly.middleware.init_guard import InitGuardMiddleware


@pytest.fixture
def quiet_lifespan(monkeypatch):
    """Keep lifespan from reconfiguring logging or touching the database."""
    monkeypatch.setattr(main, "setup_logging", lambda: None)
    disconnect = AsyncMock()
    monkeypatch.setattr(main, "disconnect_from_db", disconnect)
    return disconnect


class TestLifespan:

    @pytest.mark.asyncio
    async def test_development_awaits_initialization(self, quiet_lifespan, monkeypatch):
        initialize = AsyncMock()
        monkeypatch.setattr(main.app_initializer, "initialize", initialize)
        app = FastAPI()

        async with main.lifespan(app):
            initialize.assert_awaited_once_with(app)

        quiet_lifespan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_development_failure_propagates(self, quiet_lifespan, monkeypatch):
        monkeypatch.setattr(main.app_initializer, "initialize", AsyncMock(side_effect=DatabaseError()))
        monkeypatch.setattr(main, "STARTUP_FAILURE_FLUSH_SECONDS", 0)

        with pytest.raises(DatabaseError):
            async with main.lifespan(FastAPI()):
                pass

    @pytest.mark.asyncio
    async def test_production_starts_in_background(self, quiet_lifespan, monkeypatch):
        monkeypatch.setattr(settings, "app_env", "production")
        start = MagicMock()
        initialize = AsyncMock()
        monkeypatch.setattr(main.app_initializer, "start", start)
        monkeypatch.setattr(main.app_initializer, "initialize", initialize)
        app = FastAPI()

        async with main.lifespan(app):
            start.assert_called_once_with(app)
            initialize.assert_not_awaited()


class TestCreateApp:

    def test_guard_only_outside_development(self, monkeypatch):
        dev = main.create_app()
        monkeypatch.setattr(settings, "app_env", "production")
        prod = main.create_app()

        def middleware_classes(app):
            return [m.cls for m in app.user_middleware]

        assert InitGuardMiddleware not in middleware_classes(dev)
        assert InitGuardMiddleware in middleware_classes(prod)


class TestGeneralEndpoints:

    @pytest.mark.asyncio
    async def test_index(self, client):
        response = await client.get("/api")
        assert response.status_code == 200
        assert response.json() == {"message": "Ovenly backend API"}

    @pytest.mark.asyncio
    async def test_health_without_database(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/api", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client):
        response = await client.get("/api")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_unknown_route_is_404(self, client):
        response = await client.get("/api/nope")
        assert response.status_code == 404
