from __future__ import annotations

import logging
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from src.api.middleware.paths import classify_path, is_api_path, is_excluded, requires_auth
from src.security.errors import TokenError
from src.security.tokens import AuthPrincipal, extract_from_header, get_token_config, verify_auth_token

logger = logging.getLogger(__name__)

SESSION_COOKIE = "auth-token"
LOGIN_PATH = "/login"


def session_token_from_request(request: Request) -> str | None:
    return extract_from_header(request.headers.get("authorization")) or request.cookies.get(SESSION_COOKIE)


def _deny(request: Request, reason: str) -> Response:
    path = request.url.path
    if is_api_path(path):
        return JSONResponse(status_code=401, content={"success": False, "message": reason})
    return RedirectResponse(url=f"{LOGIN_PATH}?{urlencode({'redirect': path})}", status_code=307)


class AccessGateMiddleware(BaseHTTPMiddleware):
    """Enforce the public / private / auth-flow policy before any handler runs.

    Paths missing from every table are treated as private.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if is_excluded(path):
            return await call_next(request)

        kind = classify_path(path)
        request.state.path_kind = kind.value
        if not requires_auth(kind):
            return await call_next(request)

        token = session_token_from_request(request)
        if token is None:
            logger.info(
                "Denied %s %s: no session token",
                request.method,
                path,
                extra={"event_type": "access.denied", "ops_payload": {"path": path, "reason": "missing"}},
            )
            return _deny(request, "Authentication required")

        try:
            principal: AuthPrincipal = verify_auth_token(token, config=get_token_config())
        except TokenError as exc:
            logger.info(
                "Denied %s %s: %s",
                request.method,
                path,
                exc.code,
                extra={"event_type": "access.denied", "ops_payload": {"path": path, "reason": exc.code}},
            )
            return _deny(request, "Invalid or expired session")

        request.state.principal = principal
        return await call_next(request)
