from fastapi import APIRouter

from gemini_chat.api.access import build_access_router
from gemini_chat.api.chat import router as chat_router
from gemini_chat.api.health import router as health_router
from gemini_chat.config import settings

api_router = APIRouter()

api_router.include_router(chat_router, tags=["Chat"])
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(build_access_router(settings.chat_access_path), tags=["Access"])
