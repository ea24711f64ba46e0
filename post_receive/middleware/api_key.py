"""API key middleware guarding the post-receive endpoints."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from post_receive.config import settings

# Prefixes reachable without an API key
_EXEMPT_PREFIXES = ("/healthz",)


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require a valid X-API-Key header from the transport layer.

    Behaviour:
    - When ``settings.api_key`` is empty the middleware is a no-op (local dev).
    - ``/healthz`` is always exempt.
    - ``/hooks/*`` must include a matching ``X-API-Key`` header.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.api_key or request.url.path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        if request.headers.get("X-API-Key") != settings.api_key:
            return JSONResponse(
                status_code=401, content={"detail": "Invalid or missing API key"}
            )

        return await call_next(request)
