from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from gemini_chat.config import settings
from gemini_chat.dependencies import get_provider
from gemini_chat.schemas.chat import ChatTurnRequest
from gemini_chat.schemas.events import PROTOCOL_VERSION
from gemini_chat.services.provider.base import GenerativeProvider
from gemini_chat.services.relay import open_relay

router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Stream-Protocol": str(PROTOCOL_VERSION),
}


@router.post("/api/chat")
async def chat(
    turn: ChatTurnRequest,
    provider: GenerativeProvider = Depends(get_provider),
):
    """Relay one chat turn to the model provider as a framed text stream."""
    frames = await open_relay(provider, turn, default_model=settings.chat_default_model)
    return StreamingResponse(frames, media_type="text/event-stream", headers=STREAM_HEADERS)
