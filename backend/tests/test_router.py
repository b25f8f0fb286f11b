"""
Ovenly Backend: Route Registry Tests
=======================================

What:  Deferred registration, idempotent scanning, the fluent builder and
       the composed endpoint (middleware short-circuit, completion log).
How:   Each test builds its own RouteRegistry and a bare FastAPI app, so the
       process-wide router used by the feature modules is never touched.
"""

import logging

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.responses import JSONResponse

from ovenly.core.router import Route, RouteMethod, RouteRegistry
from ovenly.exceptions import NotFoundError
from ovenly.main import register_exception_handlers


def ok(http):
    return {"ok": True}


def count_routes(app: FastAPI, path: str, method: str) -> int:
    return sum(
        1
        for r in app.router.routes
        if getattr(r, "path", None) == path and method in getattr(r, "methods", ())
    )


@pytest.fixture
def registry():
    return RouteRegistry(prefix="api")


@pytest.fixture
def bare_app():
    app = FastAPI()
    register_exception_handlers(app)
    return app


@pytest_asyncio.fixture
async def bare_client(bare_app):
    async with AsyncClient(transport=ASGITransport(app=bare_app), base_url="http://test") as c:
        yield c


class TestDeclaration:

    def test_prefix_normalized(self):
        assert RouteRegistry(prefix="/api/").prefix == "/api"
        assert RouteRegistry(prefix="").prefix == ""

    def test_full_path_with_and_without_prefix(self, registry):
        route = Route(path="/users", method=RouteMethod.GET, handlers=(ok,))
        assert registry.full_path(route) == "/api/users"
        assert RouteRegistry(prefix="").full_path(route) == "/users"
        assert registry.full_path(Route(path="", method=RouteMethod.GET, handlers=(ok,))) == "/api"

    def test_route_without_handlers_is_rejected(self, registry, caplog):
        with caplog.at_level(logging.ERROR, logger="ovenly.core.router"):
            assert registry.add_route("GET", "/empty", []) is None
        assert registry.get_routes() == []
        assert "at least one handler" in caplog.text

    def test_lowercase_method_accepted(self, registry):
        route = registry.add_route("post", "/things", [ok])
        assert route.method is RouteMethod.POST

    def test_builder_chains_methods_on_one_path(self, registry):
        registry.route("/uploads").post(ok).delete(ok).get("/{name}", ok)

        declared = [(r.method, r.path) for r in registry.get_routes()]
        assert declared == [
            (RouteMethod.POST, "/uploads"),
            (RouteMethod.DELETE, "/uploads"),
            (RouteMethod.GET, "/uploads/{name}"),
        ]

    def test_routes_keep_insertion_order(self, registry):
        registry.get("/b", ok).get("/a", ok).post("/c", ok)
        assert [r.path for r in registry.get_routes()] == ["/b", "/a", "/c"]


class TestRegistration:

    def test_route_declared_before_app_waits_for_scan(self, registry, bare_app):
        route = registry.add_route(RouteMethod.GET, "/pending", [ok])
        assert route.registered is False
        assert count_routes(bare_app, "/api/pending", "GET") == 0

        registry.scan(bare_app)

        assert route.registered is True
        assert count_routes(bare_app, "/api/pending", "GET") == 1

    def test_scan_twice_registers_once(self, registry, bare_app):
        registry.get("/once", ok)
        registry.scan(bare_app)
        registry.scan(bare_app)
        assert count_routes(bare_app, "/api/once", "GET") == 1

    def test_route_added_after_scan_registers_immediately(self, registry, bare_app):
        registry.scan(bare_app)
        route = registry.add_route(RouteMethod.PUT, "/late", [ok])
        assert route.registered is True
        assert count_routes(bare_app, "/api/late", "PUT") == 1

    def test_register_route_without_app_defers(self, registry, caplog):
        route = Route(path="/x", method=RouteMethod.GET, handlers=(ok,))
        with caplog.at_level(logging.ERROR, logger="ovenly.core.router"):
            registry.register_route(route)
        assert route.registered is False
        assert "App not set" in caplog.text

    def test_register_route_with_no_handlers_is_skipped(self, registry, bare_app):
        registry.scan(bare_app)
        route = Route(path="/bare", method=RouteMethod.GET, handlers=())
        registry.register_route(route)
        assert route.registered is False
        assert count_routes(bare_app, "/api/bare", "GET") == 0


class TestEndpoint:

    @pytest.mark.asyncio
    async def test_terminal_result_serialized_as_json(self, registry, bare_app, bare_client):
        registry.get("/hello", ok)
        registry.scan(bare_app)

        response = await bare_client.get("/api/hello")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_middleware_response_stops_chain(self, registry, bare_app, bare_client):
        calls = []

        def deny(http):
            calls.append("deny")
            return JSONResponse(status_code=403, content={"error": "forbidden"})

        def terminal(http):
            calls.append("terminal")
            return {"ok": True}

        registry.get("/guarded", deny, terminal)
        registry.scan(bare_app)

        response = await bare_client.get("/api/guarded")

        assert response.status_code == 403
        assert calls == ["deny"]

    @pytest.mark.asyncio
    async def test_middlewares_share_context_with_terminal(self, registry, bare_app, bare_client):
        async def attach_user(http):
            http.set_user({"name": "ada"})

        def whoami(http):
            return {"user": http.user["name"], "handler": http.handler.__name__}

        registry.get("/me", attach_user, whoami)
        registry.scan(bare_app)

        response = await bare_client.get("/api/me")

        assert response.json() == {"user": "ada", "handler": "whoami"}

    @pytest.mark.asyncio
    async def test_completion_logged_with_status(self, registry, bare_app, bare_client, caplog):
        registry.get("/logged", ok)
        registry.scan(bare_app)

        with caplog.at_level(logging.INFO, logger="ovenly.access"):
            await bare_client.get("/api/logged")

        records = [r for r in caplog.records if r.name == "ovenly.access"]
        assert len(records) == 1
        assert records[0].levelno == logging.INFO
        assert records[0].status == 200
        assert records[0].path == "/api/logged"

    @pytest.mark.asyncio
    async def test_failed_terminal_logged_at_warning(self, registry, bare_app, bare_client, caplog):
        def missing(http):
            raise NotFoundError(resource="thing", resource_id="42")

        registry.get("/missing", missing)
        registry.scan(bare_app)

        with caplog.at_level(logging.INFO, logger="ovenly.access"):
            response = await bare_client.get("/api/missing")

        assert response.status_code == 404
        records = [r for r in caplog.records if r.name == "ovenly.access"]
        assert [r.levelno for r in records] == [logging.WARNING]
        assert records[0].status == 404
