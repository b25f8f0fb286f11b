"""
Ovenly Backend: Initialization & Init Guard Tests
====================================================

What:  The one-shot initialization task and the middleware that gates
       requests on it in production mode.
How:   AppInitializer gets AsyncMock collaborators; the database connect
       step can be held open on an asyncio.Event to keep many requests in
       flight while initialization is still running.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from ovenly.core.app_init import AppInitializer, InitPhase
from ovenly.core.router import RouteRegistry
from ovenly.exceptions import DatabaseError
from ovenly.middleware.init_guard import InitGuardMiddleware


def ping(http):
    return {"pong": True}


def make_initializer(connect=None):
    connection = MagicMock()
    connection.connect = connect or AsyncMock()
    discovery = MagicMock()
    discovery.discover_and_import_routes = AsyncMock(return_value=[])
    registry = RouteRegistry(prefix="api")
    registry.get("/ping", ping)
    return AppInitializer(connection=connection, registry=registry, discovery=discovery)


def guarded_app(initializer):
    app = FastAPI()
    app.add_middleware(InitGuardMiddleware, initializer=initializer)
    return app


class TestAppInitializer:

    @pytest.mark.asyncio
    async def test_initialize_runs_steps_in_order(self):
        order = []
        init = make_initializer(connect=AsyncMock(side_effect=lambda: order.append("connect")))
        init.discovery.discover_and_import_routes.side_effect = lambda: order.append("discover")
        app = FastAPI()

        await init.initialize(app)

        assert order == ["connect", "discover"]
        assert init.registry.app is app
        assert all(r.registered for r in init.registry.get_routes())
        assert init.phase is InitPhase.READY

    @pytest.mark.asyncio
    async def test_initialize_failure_reraises(self):
        init = make_initializer(connect=AsyncMock(side_effect=DatabaseError()))
        with pytest.raises(DatabaseError):
            await init.initialize(FastAPI())
        assert init.is_initialized is False
        init.discovery.discover_and_import_routes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        init = make_initializer()
        app = FastAPI()
        assert init.phase is InitPhase.NOT_STARTED

        first = init.start(app)
        second = init.start(app)

        assert first is second
        await init.wait()
        assert init.connection.connect.await_count == 1
        assert init.phase is InitPhase.READY

    @pytest.mark.asyncio
    async def test_wait_before_start_raises(self):
        with pytest.raises(RuntimeError, match="not started"):
            await make_initializer().wait()

    @pytest.mark.asyncio
    async def test_failed_start_reports_failed_phase(self):
        init = make_initializer(connect=AsyncMock(side_effect=DatabaseError("db down")))
        init.start(FastAPI())

        with pytest.raises(DatabaseError):
            await init.wait()
        assert init.phase is InitPhase.FAILED

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_initialization(self):
        gate = asyncio.Event()

        async def slow_connect():
            await gate.wait()

        init = make_initializer(connect=AsyncMock(side_effect=slow_connect))
        init.start(FastAPI())

        waiter = asyncio.create_task(init.wait())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        gate.set()
        await init.wait()
        assert init.is_initialized is True


class TestInitGuard:

    @pytest.mark.asyncio
    async def test_not_started_returns_500(self):
        init = make_initializer()
        app = guarded_app(init)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/ping")

        assert response.status_code == 500
        assert response.json() == {"error": "Application initialization not started"}

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_initialization(self):
        gate = asyncio.Event()

        async def slow_connect():
            await gate.wait()

        init = make_initializer(connect=AsyncMock(side_effect=slow_connect))
        app = guarded_app(init)
        init.start(app)

        async def release():
            await asyncio.sleep(0.05)
            assert init.phase is InitPhase.IN_PROGRESS
            gate.set()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            results = await asyncio.gather(
                *(client.get("/api/ping") for _ in range(8)),
                release(),
            )

        responses = results[:8]
        assert [r.status_code for r in responses] == [200] * 8
        assert all(r.json() == {"pong": True} for r in responses)
        assert init.connection.connect.await_count == 1
        assert init.discovery.discover_and_import_routes.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_initialization_returns_500_with_message(self):
        init = make_initializer(connect=AsyncMock(side_effect=DatabaseError("db down")))
        app = guarded_app(init)
        init.start(app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            first = await client.get("/api/ping")
            second = await client.get("/api/ping")

        for response in (first, second):
            assert response.status_code == 500
            assert response.json() == {
                "error": "Application initialization failed",
                "message": "db down",
            }
        assert init.connection.connect.await_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_initialization_returns_500_with_message(self):
        gate = asyncio.Event()

        async def slow_connect():
            await gate.wait()

        init = make_initializer(connect=AsyncMock(side_effect=slow_connect))
        app = guarded_app(init)
        init.start(app)
        init.task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await init.task
        assert init.phase is InitPhase.FAILED

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/ping")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Application initialization failed",
            "message": "Application initialization was cancelled",
        }

    @pytest.mark.asyncio
    async def test_ready_passes_through(self):
        init = make_initializer()
        app = guarded_app(init)
        await init.initialize(app)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/ping")

        assert response.status_code == 200
