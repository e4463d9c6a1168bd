import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from cms.common.config import get_settings
from cms.infra.observability.metrics import LATENCY, REQUESTS

MAX_TRACE_BODY_CHARS = 2048

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "confirmpassword",
        "confirm_password",
        "password_hash",
        "secret",
        "token",
        "access_token",
        "session",
        "authorization",
        "cookie",
    }
)

_TEXT_PATTERNS = (
    re.compile(
        r"(?i)(token|secret|password|authorization|cookie)\s*[:=]\s*[^\s&]+"
    ),
    re.compile(r"(?i)authorization\s*:\s*bearer\s+[A-Za-z0-9\-_.]+"),
)

logger = logging.getLogger("http")


def mask_mapping(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: "***"
            if isinstance(k, str) and k.lower() in SENSITIVE_KEYS
            else mask_mapping(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [mask_mapping(x) for x in obj]
    return obj


def mask_text(text: str) -> str:
    masked = text
    for pattern in _TEXT_PATTERNS:
        masked = pattern.sub(
            lambda m: re.split(r"[:=]", m.group(0), maxsplit=1)[0] + ": ***",
            masked,
        )
    return masked


def render_body(raw: bytes, content_type: str | None = None) -> str | None:
    """Masked, truncated rendering of a request/response body for tracing."""
    if not raw:
        return None
    if content_type and content_type.startswith("multipart/"):
        return f"<multipart {len(raw)} bytes>"
    decoded = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(decoded)
    except ValueError:
        rendered = mask_text(decoded)
    else:
        rendered = json.dumps(mask_mapping(parsed), ensure_ascii=False)
    if len(rendered) > MAX_TRACE_BODY_CHARS:
        rendered = rendered[:MAX_TRACE_BODY_CHARS] + "...<truncated>"
    return rendered


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    return request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request metrics, request-id propagation and structured access logs."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        client_ip = _client_ip(request)
        trace_http = get_settings().TRACE_HTTP

        request_body: str | None = None
        if trace_http:
            raw_body = await request.body()
            request_body = render_body(raw_body, request.headers.get("content-type"))

            async def receive():
                return {"type": "http.request", "body": raw_body, "more_body": False}

            request._receive = receive

        payload: dict[str, Any] = {
            "method": request.method,
            "query": request.url.query,
            "request_id": request_id,
            "client_ip": client_ip,
            "user_agent": request.headers.get("User-Agent"),
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 3)
            payload.update(
                route=request.url.path,
                status=500,
                duration_ms=elapsed_ms,
                exception=repr(exc),
            )
            logger.exception(
                "request_error method=%s route=%s status=500 duration_ms=%.3f request_id=%s",
                request.method,
                request.url.path,
                elapsed_ms,
                request_id,
                extra={"extra": payload},
            )
            raise

        elapsed = time.perf_counter() - start
        route = _route_label(request)
        status_code = response.status_code

        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        payload.update(
            route=route, status=status_code, duration_ms=round(elapsed * 1000, 3)
        )
        if trace_http:
            response_bytes = b""
            async for chunk in response.body_iterator:
                response_bytes += chunk
            response.body_iterator = iterate_in_threadpool(iter([response_bytes]))
            payload["request_body"] = request_body
            payload["response_body"] = render_body(
                response_bytes, response.headers.get("content-type")
            )

        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s client_ip=%s query=%s",
            request.method,
            route,
            status_code,
            payload["duration_ms"],
            request_id,
            client_ip or "-",
            request.url.query or "-",
            extra={"extra": payload},
        )
        return response
