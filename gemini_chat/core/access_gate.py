import secrets
from abc import ABC, abstractmethod

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from gemini_chat.core.exceptions import AuthenticationError

logger = structlog.get_logger()

# Exact paths and path prefixes behind the gate
GATED_PATHS = {"/"}
GATED_PREFIXES = ("/api/chat",)


def is_gated(path: str) -> bool:
    return path in GATED_PATHS or path.startswith(GATED_PREFIXES)


class Authenticator(ABC):
    @abstractmethod
    def authenticate(self, request: Request) -> bool:
        """Return True when the request may reach a gated route."""
        ...


class CookieAuthenticator(Authenticator):
    """Single shared-secret gate: a fixed cookie value issued by the access route."""

    def __init__(self, cookie_name: str, expected_value: str):
        self.cookie_name = cookie_name
        self.expected_value = expected_value

    def authenticate(self, request: Request) -> bool:
        provided = request.cookies.get(self.cookie_name, "")
        return bool(provided) and secrets.compare_digest(provided, self.expected_value)


class AccessGateMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated requests to the chat page and chat API.

    The decision is delegated to an Authenticator so the cookie gate can be
    replaced (e.g. per-user auth) without touching the relay.
    """

    def __init__(self, app: ASGIApp, authenticator: Authenticator):
        super().__init__(app)
        self.authenticator = authenticator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not is_gated(request.url.path):
            return await call_next(request)

        if not self.authenticator.authenticate(request):
            logger.warning("access_gate_denied", path=request.url.path)
            error = AuthenticationError()
            return JSONResponse(status_code=error.status, content=error.to_dict())

        return await call_next(request)
