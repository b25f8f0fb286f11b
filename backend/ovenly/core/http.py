"""
Ovenly Backend: Per-Request Execution Context
================================================

What:  Convenience accessors over the current request, shared by every
       handler registered for a route.
Why:   Handlers receive one object instead of (request, response, next);
       middleware handlers attach data (uploaded files, validated payloads,
       the authenticated user) that the terminal handler reads back.
How:   The route registry builds one HttpContext per request, stores it on
       request.state.http and passes it to each handler in order.

Lookup precedence for input():
    body → path params → query string → fallback
"""

import inspect
import logging
from json import JSONDecodeError
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from starlette.requests import Request
from starlette.responses import Response

from ovenly.core.uploaded_file import UploadedFile
from ovenly.exceptions import ValidationError

logger = logging.getLogger(__name__)

HandlerResult = Optional[Union[Response, Any]]
RouteHandler = Callable[["HttpContext"], Union[HandlerResult, Awaitable[HandlerResult]]]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HttpContext:
    """
    Request wrapper handed to route handlers.

    Attributes:
        request:   The Starlette request
        handler:   The terminal handler being executed (set by execute())
        user:      Authenticated user document, if a middleware set one
        validated: Pydantic model produced by the validation middleware
        uploads:   UploadedFile records produced by the form-data middleware
    """

    def __init__(self, request: Request, body: Optional[Dict[str, Any]] = None):
        self.request = request
        self.handler: Optional[RouteHandler] = None
        self.user: Optional[Dict[str, Any]] = None
        self.validated: Any = None
        self.uploads: List[UploadedFile] = []
        self._body: Dict[str, Any] = body or {}

    @classmethod
    async def from_request(cls, request: Request) -> "HttpContext":
        """
        Build the context and parse JSON / urlencoded bodies once.

        Multipart bodies are left untouched: the form-data middleware parses
        them so it can validate parts before anything is written to disk.
        """
        return cls(request, body=await _read_body(request))

    async def execute(self, handler: RouteHandler) -> HandlerResult:
        self.handler = handler
        return await call_handler(handler, self)

    def set_user(self, user: Dict[str, Any]) -> "HttpContext":
        self.user = user
        return self

    def merge_body(self, data: Dict[str, Any]) -> None:
        """Add fields parsed later in the chain (multipart text fields)."""
        self._body.update(data)

    # ── Request Data ──────────────────────────────────────────────────────

    def body(self) -> Dict[str, Any]:
        return dict(self._body)

    def params(self) -> Dict[str, Any]:
        return dict(self.request.path_params)

    def query(self) -> Dict[str, Any]:
        return dict(self.request.query_params)

    def all_data(self) -> Dict[str, Any]:
        """Body, path params and query merged; later sources win on conflict."""
        return {**self.body(), **self.params(), **self.query()}

    def input(self, key: str, fallback: Any = None) -> Any:
        for source in (self._body, self.request.path_params, self.request.query_params):
            value = source.get(key)
            if value is not None and value != "":
                return value
        return fallback

    def number(self, key: str, fallback: Union[int, float] = 0) -> Union[int, float]:
        value = self.input(key, fallback)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(message=f"'{key}' must be a number", field=key)

    def boolean(self, key: str, fallback: bool = False) -> bool:
        value = self.input(key, fallback)
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    def files(self, field_name: Optional[str] = None) -> List[UploadedFile]:
        """Uploaded files, optionally only those sent under `field_name`."""
        if field_name is None:
            return list(self.uploads)
        return [f for f in self.uploads if f.field_name == field_name]


async def call_handler(handler: RouteHandler, http: HttpContext) -> HandlerResult:
    """Invoke a sync or async handler with the request context."""
    result = handler(http)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _read_body(request: Request) -> Dict[str, Any]:
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return {}

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPE):
        form = await request.form()
        return dict(form)

    if "json" not in content_type:
        return {}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = await request.json()
    except (JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(message="Request body is not valid JSON", context={"error": str(e)})
    if not isinstance(data, dict):
        raise ValidationError(message="Request body must be a JSON object")
    return data
