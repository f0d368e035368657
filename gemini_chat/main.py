from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gemini_chat.api.router import api_router
from gemini_chat.config import settings
from gemini_chat.core.access_gate import AccessGateMiddleware, CookieAuthenticator
from gemini_chat.core.exceptions import ChatError, chat_error_handler
from gemini_chat.core.middleware import RequestLoggingMiddleware
from gemini_chat.services.provider.gemini_client import GeminiProvider

_NAME_TO_LEVEL = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "warn": 30,
    "error": 40,
    "critical": 50,
}

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _NAME_TO_LEVEL.get(settings.chat_log_level.lower(), 20)
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    if not settings.gemini_api_key:
        logger.warning("gemini_api_key_missing", hint="Set GEMINI_API_KEY; provider calls will be rejected")

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.chat_http_connect_timeout,
            read=settings.chat_http_read_timeout,
            write=5.0,
            pool=5.0,
        )
    )
    provider = GeminiProvider(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        api_version=settings.gemini_api_version,
        http_client=http_client,
    )
    app.state.provider = provider

    logger.info(
        "chat_relay_starting",
        gemini_url=settings.gemini_base_url,
        default_model=settings.chat_default_model,
        environment=settings.chat_environment,
    )
    yield

    await provider.close()
    logger.info("chat_relay_stopping")


app = FastAPI(
    title="Gemini Chat Relay",
    description="Streaming relay between the chat client and the Gemini API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(ChatError, chat_error_handler)

# Middleware (Starlette: last-added = outermost. Execution order top to bottom.)
# 1. RequestLogging (outermost): logs all requests including gate rejections
# 2. CORS: handles preflight before the gate
# 3. AccessGate: auth cookie check on the chat page and chat API
app.add_middleware(
    AccessGateMiddleware,
    authenticator=CookieAuthenticator(settings.chat_auth_cookie_name, settings.chat_auth_cookie_value),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.chat_cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/")
async def root():
    return {"service": "gemini-chat", "version": "0.1.0"}
