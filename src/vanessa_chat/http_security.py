from __future__ import annotations

import asyncio
import re
import secrets as secrets_module
import uuid

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,128}$")

_API_PREFIX = "/api/"
_ADMIN_PATHS = ("/api/ai/train",)


def coerce_request_id(value: str | None) -> str:
    if value and _REQUEST_ID_RE.fullmatch(value):
        return value
    return uuid.uuid4().hex


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2:
        return None
    scheme, token = parts[0].strip(), parts[1].strip()
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def constant_time_equals(a: str, b: str) -> bool:
    return secrets_module.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def _is_api_path(path: str) -> bool:
    return path.startswith(_API_PREFIX)


def _is_admin_path(path: str) -> bool:
    return path in _ADMIN_PATHS


def install_middlewares(app, *, cfg) -> None:
    """Install request-id, header, body-size, concurrency and admin-auth middleware."""
    from fastapi.responses import JSONResponse
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.requests import Request

    import structlog

    from .api_models import ErrorResponse

    def _error(status_code: int, error: str, message: str, headers: dict[str, str] | None = None):
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=error, message=message).model_dump(),
            headers=headers,
        )

    class RequestIdMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            request_id = coerce_request_id(request.headers.get("x-request-id"))
            request.state.request_id = request_id
            structlog.contextvars.bind_contextvars(request_id=request_id)
            try:
                response = await call_next(request)
            finally:
                structlog.contextvars.clear_contextvars()
            response.headers.setdefault("X-Request-Id", request_id)
            return response

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            response = await call_next(request)
            response.headers.setdefault("X-Content-Type-Options", "nosniff")
            response.headers.setdefault("X-Frame-Options", "DENY")
            response.headers.setdefault("Referrer-Policy", "no-referrer")
            if not cfg.enable_api_docs:
                response.headers.setdefault("X-Robots-Tag", "noindex, nofollow")
            if _is_api_path(request.url.path):
                response.headers.setdefault("Cache-Control", "no-store")
            return response

    class MaxBodySizeMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            limit = int(cfg.max_request_body_bytes or 0)
            if limit > 0 and request.method in ("POST", "PUT", "PATCH") and _is_api_path(request.url.path):
                content_length = request.headers.get("content-length")
                if content_length and content_length.isdigit() and int(content_length) > limit:
                    return _error(413, "payload_too_large", "Request body too large.")
                body = await request.body()
                if len(body) > limit:
                    return _error(413, "payload_too_large", "Request body too large.")
            return await call_next(request)

    class ConcurrencyLimitMiddleware(BaseHTTPMiddleware):
        def __init__(self, app_):
            super().__init__(app_)
            self._sem = asyncio.Semaphore(max(1, int(cfg.max_inflight_requests or 1)))

        async def dispatch(self, request: Request, call_next):
            if not _is_api_path(request.url.path):
                return await call_next(request)
            if self._sem.locked():
                return _error(429, "server_busy", "Server is busy. Try again later.")
            async with self._sem:
                return await call_next(request)

    class AdminAuthMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            if not _is_admin_path(request.url.path) or request.method == "OPTIONS":
                return await call_next(request)

            expected = cfg.admin_auth_token
            if not expected:
                return _error(403, "forbidden", "Admin endpoints are disabled (set ADMIN_AUTH_TOKEN).")

            token = parse_bearer_token(request.headers.get("authorization")) or request.headers.get(
                "x-api-key"
            )
            if not token or not constant_time_equals(token, expected):
                return _error(
                    401,
                    "unauthorized",
                    "Missing or invalid admin token.",
                    headers={"WWW-Authenticate": 'Bearer realm="vanessa-chat"'},
                )
            return await call_next(request)

    app.add_middleware(MaxBodySizeMiddleware)
    app.add_middleware(ConcurrencyLimitMiddleware)
    app.add_middleware(AdminAuthMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    # Outermost so `X-Request-Id` is set even when inner middleware short-circuits.
    app.add_middleware(RequestIdMiddleware)

    if cfg.allowed_hosts:
        from starlette.middleware.trustedhost import TrustedHostMiddleware

        app.add_middleware(TrustedHostMiddleware, allowed_hosts=list(cfg.allowed_hosts))

    if cfg.cors_allow_origins:
        from fastapi.middleware.cors import CORSMiddleware

        if cfg.cors_allow_credentials and "*" in cfg.cors_allow_origins:
            raise ValueError("CORS_ALLOW_ORIGINS cannot include '*' when CORS_ALLOW_CREDENTIALS=true.")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cfg.cors_allow_origins),
            allow_credentials=cfg.cors_allow_credentials,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Request-Id", "X-API-Key"],
            max_age=600,
        )
