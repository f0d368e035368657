from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response


class ChatError(Exception):
    """Base exception for relay API errors."""

    plain_text = False

    def __init__(
        self,
        code: str,
        message: str,
        status: int = 500,
        details: str | None = None,
    ):
        self.code = code
        self.message = message
        self.status = status
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        result = {"error": self.message}
        if self.details:
            result["details"] = self.details
        return result


class InvalidTurnError(ChatError):
    plain_text = True

    def __init__(self, message: str = "Message or images are required"):
        super().__init__(code="invalid_turn", message=message, status=400)


class AuthenticationError(ChatError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(code="authentication_required", message=message, status=401)


class UpstreamError(ChatError):
    """The model provider failed before a stream could be opened."""

    def __init__(self, details: str, message: str = "Internal Server Error"):
        super().__init__(code="upstream_error", message=message, status=500, details=details)


async def chat_error_handler(request: Request, exc: ChatError) -> Response:
    """Global exception handler for ChatError and subclasses."""
    if exc.plain_text:
        return PlainTextResponse(exc.message, status_code=exc.status)
    return JSONResponse(status_code=exc.status, content=exc.to_dict())
