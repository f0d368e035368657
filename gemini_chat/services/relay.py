"""Relay: turns a chat turn into a Gemini request and re-frames the reply stream."""

from collections.abc import AsyncIterator

import structlog

from gemini_chat.core.exceptions import ChatError, InvalidTurnError, UpstreamError
from gemini_chat.schemas.chat import ChatTurnRequest, GenerationSettings, ImageAttachment
from gemini_chat.schemas.events import DoneEvent, ErrorEvent, TextEvent, encode_frame
from gemini_chat.services.provider.base import GenerationStream, GenerativeProvider

logger = structlog.get_logger()

HISTORY_WINDOW = 10

_ROLE_MAP = {"user": "user", "assistant": "model"}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


def build_content(role: str, text: str | None, images: list[ImageAttachment] | None) -> dict | None:
    """Build one provider content block: images first, then text. None if it has no parts."""
    parts = [
        {"inlineData": {"mimeType": image.mime_type, "data": image.data}}
        for image in images or []
    ]
    if text:
        parts.append({"text": text})
    if not parts:
        return None
    return {"role": _ROLE_MAP[role], "parts": parts}


def build_contents(turn: ChatTurnRequest) -> list[dict]:
    """Last HISTORY_WINDOW history entries, oldest first, followed by the current turn."""
    contents = []
    for entry in turn.history[-HISTORY_WINDOW:]:
        content = build_content(entry.role, entry.content, entry.images)
        if content is None:
            logger.debug("relay_history_entry_skipped", role=entry.role)
            continue
        contents.append(content)

    current = build_content("user", turn.message, turn.images)
    if current is not None:
        contents.append(current)
    return contents


def build_tools(settings: GenerationSettings) -> list[dict]:
    tools = []
    if settings.enable_google_search:
        tools.append({"googleSearch": {}})
    return tools


def build_payload(turn: ChatTurnRequest) -> dict:
    settings = turn.settings
    generation_config = {
        "temperature": settings.temperature,
        "maxOutputTokens": settings.max_output_tokens,
    }
    budget = settings.effective_thinking_budget
    if budget is not None:
        generation_config["thinkingConfig"] = {"thinkingBudget": budget}

    payload = {
        "contents": build_contents(turn),
        "systemInstruction": {"parts": [{"text": settings.system_instruction}]},
        "generationConfig": generation_config,
        "safetySettings": SAFETY_SETTINGS,
    }

    # Omit the field entirely when no capability is enabled
    tools = build_tools(settings)
    if tools:
        payload["tools"] = tools
    return payload


def extract_text_parts(chunk: dict) -> list[str]:
    """Non-empty text parts of the first candidate; anything else yields nothing."""
    candidates = chunk.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return [part["text"] for part in content.get("parts") or [] if part.get("text")]


def _describe(exc: Exception) -> str:
    if isinstance(exc, ChatError) and exc.details:
        return exc.details
    return str(exc) or type(exc).__name__


async def relay_frames(stream: GenerationStream) -> AsyncIterator[str]:
    """Re-emit each text fragment as a frame, then the terminal sentinel.

    A failure after streaming has started ends the body with an error frame and
    no sentinel.
    """
    fragments = 0
    try:
        async for chunk in stream.chunks():
            for text in extract_text_parts(chunk):
                fragments += 1
                yield encode_frame(TextEvent(content=text))
    except Exception as exc:
        error = _describe(exc)
        logger.error("relay_stream_failed", error=error, fragments=fragments, exc_info=True)
        yield encode_frame(ErrorEvent(message=error))
        return
    finally:
        await stream.aclose()

    logger.info("relay_stream_completed", fragments=fragments)
    yield encode_frame(DoneEvent())


async def open_relay(
    provider: GenerativeProvider,
    turn: ChatTurnRequest,
    default_model: str,
) -> AsyncIterator[str]:
    """Validate the turn and open the provider stream.

    Everything that can fail before streaming raises here, so the caller can
    answer with an error response instead of a stream.
    """
    if turn.is_empty:
        raise InvalidTurnError()

    model = turn.settings.model or default_model
    payload = build_payload(turn)
    logger.info(
        "relay_stream_opening",
        model=model,
        history=len(turn.history),
        forwarded=len(payload["contents"]),
        images=len(turn.images),
        tools=len(payload.get("tools", [])),
    )
    try:
        stream = await provider.open_stream(model, payload)
    except ChatError:
        raise
    except Exception as exc:
        logger.error("relay_open_failed", model=model, error=str(exc), exc_info=True)
        raise UpstreamError(_describe(exc))
    return relay_frames(stream)
