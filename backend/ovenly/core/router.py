"""
Ovenly Backend: Route Registry
=================================

What:  Process-wide list of (method, path, handlers) declarations that are
       bound to the FastAPI application lazily.
Why:   Feature modules declare their routes at import time, which can happen
       before the application object is ready (it is only handed over once
       the database has connected). The registry buffers declarations and
       flushes them on scan(app).
How:   Each route becomes one FastAPI endpoint. Every handler except the
       last runs directly as a middleware step; the last one is timed and
       its completion is logged.

Route Lifecycle:
    add_route()  →  Route(registered=False)
                       │
          app bound? ──┤── no  → stays pending until scan(app)
                       └── yes → register_route() → app.add_api_route()
                                                    Route(registered=True)

Usage (inside a feature module's routes.py):
    from ovenly.core.router import router

    router.route("/users").get(get_users).post(validate_request(UserIn), create_user)
    router.get("/health", health_check)
"""

import functools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

from fastapi import FastAPI
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ovenly.config import settings
from ovenly.core.http import HttpContext, RouteHandler, call_handler
from ovenly.exceptions import OvenlyError

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("ovenly.access")


class RouteMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class Route:
    path: str
    method: RouteMethod
    handlers: Tuple[RouteHandler, ...]
    registered: bool = False


def log_route_completion(method: str, path: str, status_code: int, started: float) -> None:
    """
    Log one finished request.

    Level follows the status code:
        5xx → ERROR, 4xx → WARNING, everything else → INFO
    """
    duration_ms = (time.perf_counter() - started) * 1000
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO

    access_logger.log(
        level,
        "%s %s %d %.1fms",
        method,
        path,
        status_code,
        duration_ms,
        extra={
            "method": method,
            "path": path,
            "status": status_code,
            "duration_ms": round(duration_ms, 2),
        },
    )


def _on_finish(response: Response, callback: BackgroundTask) -> None:
    """Run `callback` once the response has been sent, after any existing background work."""
    if response.background is None:
        response.background = callback
        return
    tasks = BackgroundTasks()
    tasks.add_task(response.background)
    tasks.add_task(callback)
    response.background = tasks


def _as_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    return JSONResponse(content=result)


def _status_for(exc: Exception) -> int:
    if isinstance(exc, (OvenlyError, HTTPException)):
        return exc.status_code
    return 500


class RouteBuilder:
    """
    Fluent declarations sharing one base path.

        router.route("/uploads").post(upload_any(), upload_files).delete(remove_files)
        router.route("/users").get(list_users).get("/{user_id}", get_user)

    Each verb accepts either handlers only (base path) or a sub-path followed
    by handlers; both forms end up in add().
    """

    def __init__(self, base_path: str, registry: "RouteRegistry"):
        self.base_path = base_path
        self._registry = registry

    def add(
        self,
        method: RouteMethod,
        handlers: Sequence[RouteHandler],
        path: str = "",
    ) -> "RouteBuilder":
        full_path = f"{self.base_path}{path}" if path else self.base_path
        self._registry.add_route(method, full_path, handlers)
        return self

    def _add(
        self,
        method: RouteMethod,
        path_or_handler: Union[str, RouteHandler],
        handlers: Tuple[RouteHandler, ...],
    ) -> "RouteBuilder":
        if isinstance(path_or_handler, str):
            return self.add(method, handlers, path_or_handler)
        return self.add(method, (path_or_handler, *handlers))

    def get(self, path_or_handler: Union[str, RouteHandler], *handlers: RouteHandler) -> "RouteBuilder":
        return self._add(RouteMethod.GET, path_or_handler, handlers)

    def post(self, path_or_handler: Union[str, RouteHandler], *handlers: RouteHandler) -> "RouteBuilder":
        return self._add(RouteMethod.POST, path_or_handler, handlers)

    def put(self, path_or_handler: Union[str, RouteHandler], *handlers: RouteHandler) -> "RouteBuilder":
        return self._add(RouteMethod.PUT, path_or_handler, handlers)

    def patch(self, path_or_handler: Union[str, RouteHandler], *handlers: RouteHandler) -> "RouteBuilder":
        return self._add(RouteMethod.PATCH, path_or_handler, handlers)

    def delete(self, path_or_handler: Union[str, RouteHandler], *handlers: RouteHandler) -> "RouteBuilder":
        return self._add(RouteMethod.DELETE, path_or_handler, handlers)


class RouteRegistry:
    """
    Ordered route declarations plus the (optional) bound application.

    Insertion order is kept for logging only; dispatch precedence is
    FastAPI's. A route is bound to the application at most once, so
    scanning again (or scanning a new app) never double-registers.
    """

    def __init__(self, prefix: Optional[str] = None):
        raw = settings.api_prefix if prefix is None else prefix
        raw = raw.strip("/")
        self.prefix = f"/{raw}" if raw else ""
        self._routes: List[Route] = []
        self._app: Optional[FastAPI] = None

    @property
    def app(self) -> Optional[FastAPI]:
        return self._app

    def get_routes(self) -> List[Route]:
        return list(self._routes)

    def full_path(self, route: Route) -> str:
        return f"{self.prefix}{route.path}" or "/"

    # ── Declaration ───────────────────────────────────────────────────────

    def add_route(
        self,
        method: Union[RouteMethod, str],
        path: str,
        handlers: Sequence[RouteHandler],
    ) -> Optional[Route]:
        method = RouteMethod(method.upper() if isinstance(method, str) else method)
        if not handlers:
            logger.error("Route %s %s must have at least one handler", method.value, path)
            return None

        route = Route(path=path, method=method, handlers=tuple(handlers))
        self._routes.append(route)

        if self._app is not None:
            self.register_route(route)
        return route

    def route(self, path: str) -> RouteBuilder:
        return RouteBuilder(path, self)

    def get(self, path: str, *handlers: RouteHandler) -> "RouteRegistry":
        self.add_route(RouteMethod.GET, path, handlers)
        return self

    def post(self, path: str, *handlers: RouteHandler) -> "RouteRegistry":
        self.add_route(RouteMethod.POST, path, handlers)
        return self

    def put(self, path: str, *handlers: RouteHandler) -> "RouteRegistry":
        self.add_route(RouteMethod.PUT, path, handlers)
        return self

    def patch(self, path: str, *handlers: RouteHandler) -> "RouteRegistry":
        self.add_route(RouteMethod.PATCH, path, handlers)
        return self

    def delete(self, path: str, *handlers: RouteHandler) -> "RouteRegistry":
        self.add_route(RouteMethod.DELETE, path, handlers)
        return self

    # ── Registration ──────────────────────────────────────────────────────

    def scan(self, app: FastAPI) -> None:
        """Bind `app` and register every route still pending, in insertion order."""
        self._app = app
        for route in self._routes:
            if not route.registered:
                self.register_route(route)
        logger.info("Registered %d route(s)", sum(1 for r in self._routes if r.registered))

    def register_route(self, route: Route) -> None:
        if self._app is None:
            logger.error(
                "App not set yet, %s %s will be registered on scan",
                route.method.value,
                route.path,
            )
            return

        if route.registered:
            return

        if not route.handlers:
            logger.error("Route %s %s has no handlers", route.method.value, route.path)
            return

        full_path = self.full_path(route)
        self._app.add_api_route(
            full_path,
            self._build_endpoint(route),
            methods=[route.method.value],
            name=f"{route.method.value} {full_path}",
        )
        route.registered = True
        logger.debug("Bound %s %s", route.method.value, full_path)

    def _build_endpoint(self, route: Route):
        """
        Compose the route's handlers into one FastAPI endpoint.

        Middleware handlers run first, untouched; returning a Response stops
        the chain. The terminal handler runs through HttpContext.execute and
        its completion is logged once the response has been sent.
        """
        middlewares = route.handlers[:-1]
        terminal = route.handlers[-1]
        method = route.method.value
        full_path = self.full_path(route)

        async def endpoint(request: Request):
            http = await HttpContext.from_request(request)
            request.state.http = http

            for handler in middlewares:
                early = await call_handler(handler, http)
                if early is not None:
                    return _as_response(early)

            started = time.perf_counter()
            try:
                response = _as_response(await http.execute(terminal))
            except Exception as exc:
                log_route_completion(method, full_path, _status_for(exc), started)
                raise

            _on_finish(
                response,
                BackgroundTask(
                    functools.partial(
                        log_route_completion, method, full_path, response.status_code, started
                    )
                ),
            )
            return response

        endpoint.__name__ = getattr(terminal, "__name__", "endpoint")
        return endpoint


# Singleton instance, feature modules register against this registry
router = RouteRegistry()
