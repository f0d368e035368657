"""Client-side chat session: owns the message list and runs turns against the relay."""

from collections.abc import Callable

import httpx
import structlog

from gemini_chat.client.consumer import MessageObserver, StreamConsumer
from gemini_chat.client.exceptions import (
    RelayHTTPError,
    SessionBusyError,
    StreamFailedError,
    TurnValidationError,
)
from gemini_chat.client.images import MAX_IMAGES_PER_TURN
from gemini_chat.schemas.chat import ChatMessage, GenerationSettings, ImageAttachment

logger = structlog.get_logger()

IMAGES_ONLY_PROMPT = "Please analyze these images."

FLASH_MODEL = "gemini-2.5-flash"
PRO_MODEL = "gemini-2.5-pro"

DEFAULT_THINKING_BUDGET = 5625


def default_settings(model: str = FLASH_MODEL) -> GenerationSettings:
    """Settings a new chat starts with: search and reasoning on."""
    return GenerationSettings(
        model=model,
        enable_thinking=True,
        thinking_budget=DEFAULT_THINKING_BUDGET,
        enable_google_search=True,
    )


def _error_reply(error: str) -> ChatMessage:
    return ChatMessage(
        role="assistant",
        content=f"Sorry, I encountered an error while processing your request: {error}\n\nPlease try again.",
        complete=True,
    )


class ChatSession:
    """One conversation with a single turn in flight at a time.

    ``on_update`` is called after every change to the message list or to the
    assistant message being streamed; ``on_error`` receives a short text for
    each failed turn.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: GenerationSettings | None = None,
        endpoint: str = "/api/chat",
        on_update: MessageObserver | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self._client = http_client
        self.settings = settings or default_settings()
        self.endpoint = endpoint
        self.on_update = on_update
        self.on_error = on_error
        self.messages: list[ChatMessage] = []
        self.busy = False

    async def send(self, text: str, images: list[ImageAttachment] | None = None) -> ChatMessage:
        """Append a user message and stream the assistant reply."""
        if self.busy:
            raise SessionBusyError("A response is already being generated.")
        images = images or []
        if not text.strip() and not images:
            raise TurnValidationError("Message or images are required.")
        if len(images) > MAX_IMAGES_PER_TURN:
            raise TurnValidationError(f"You can upload up to {MAX_IMAGES_PER_TURN} images at once.")

        history = list(self.messages)
        user_message = ChatMessage(
            role="user",
            content=text or IMAGES_ONLY_PROMPT,
            images=images or None,
            complete=True,
        )
        self._add(user_message)
        return await self._run_turn(user_message.content, user_message.images, history)

    async def regenerate(self, index: int) -> ChatMessage:
        """Drop the assistant message at ``index`` and everything after it, then ask again."""
        if self.busy:
            raise SessionBusyError("A response is already being generated.")
        if index < 0:
            raise TurnValidationError("Message index must not be negative.")
        target = self.messages[index]
        if target.role != "assistant" or not target.complete:
            raise TurnValidationError("Only a completed assistant message can be regenerated.")
        if index < 1 or self.messages[index - 1].role != "user":
            raise TurnValidationError("No user message precedes this response.")

        user_message = self.messages[index - 1]
        self.messages = self.messages[:index]
        logger.info("chat_regenerate", index=index, remaining=len(self.messages))
        return await self._run_turn(user_message.content, user_message.images, self.messages[:-1])

    def clear(self) -> None:
        self.messages = []

    def switch_model(self) -> str:
        """Toggle between the flash and pro models; returns the new model id."""
        model = PRO_MODEL if self.settings.model != PRO_MODEL else FLASH_MODEL
        self.settings = self.settings.model_copy(update={"model": model})
        return model

    async def _run_turn(
        self,
        text: str,
        images: list[ImageAttachment] | None,
        history: list[ChatMessage],
    ) -> ChatMessage:
        """Single streaming path shared by send and regenerate."""
        self.busy = True
        try:
            body = {
                "message": text,
                "images": [image.model_dump(by_alias=True) for image in images or []],
                "history": [message.to_history() for message in history],
                "settings": self.settings.model_dump(by_alias=True, exclude_none=True),
            }
            async with self._client.stream("POST", self.endpoint, json=body) as response:
                if response.is_error:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise RelayHTTPError(response.status_code, error_text)

                assistant_message = ChatMessage(role="assistant")
                self._add(assistant_message)
                await StreamConsumer().consume(response.aiter_bytes(), assistant_message, self.on_update)
                return assistant_message
        except (StreamFailedError, httpx.HTTPError) as exc:
            error = str(exc) or type(exc).__name__
            logger.warning("chat_turn_failed", error=error, error_type=type(exc).__name__)
            if self.on_error:
                self.on_error(error)
            reply = _error_reply(error)
            self._add(reply)
            return reply
        finally:
            self.busy = False

    def _add(self, message: ChatMessage) -> None:
        self.messages.append(message)
        if self.on_update:
            self.on_update(message)
