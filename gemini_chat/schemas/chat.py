import math
import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful assistant."
DEFAULT_TEMPERATURE = 1.0
DEFAULT_MAX_OUTPUT_TOKENS = 30000
DEFAULT_THINKING_BUDGET = 0

TEMPERATURE_RANGE = (0.0, 2.0)
MAX_OUTPUT_TOKENS_RANGE = (1000, 40000)
THINKING_BUDGET_RANGE = (0, 10000)


def clamp(value, low: float, high: float, default: float) -> float:
    """Clamp any client-supplied value into [low, high].

    None, booleans, NaN and non-numeric input fall back to the default; integers
    too large for a float clamp to the nearest bound.
    """
    if value is None or isinstance(value, bool):
        number = default
    else:
        try:
            number = float(value)
        except OverflowError:
            number = math.inf if value > 0 else -math.inf
        except (TypeError, ValueError):
            number = default
        if math.isnan(number):
            number = default
    return min(max(number, low), high)


class ImageAttachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    data: str  # base64
    mime_type: str = Field(alias="mimeType")


class HistoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant"]
    content: str = ""
    images: list[ImageAttachment] | None = None
    complete: bool | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _none_content(cls, value):
        return "" if value is None else value


class GenerationSettings(BaseModel):
    """Per-turn generation settings. Numeric fields are always re-clamped."""

    model_config = ConfigDict(populate_by_name=True)

    model: str | None = None
    system_instruction: str = Field(default=DEFAULT_SYSTEM_INSTRUCTION, alias="systemInstruction")
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = Field(default=DEFAULT_MAX_OUTPUT_TOKENS, alias="maxOutputTokens")
    enable_thinking: bool = Field(default=False, alias="enableThinking")
    thinking_budget: int = Field(default=DEFAULT_THINKING_BUDGET, alias="thinkingBudget")
    enable_google_search: bool = Field(default=False, alias="enableGoogleSearch")

    @field_validator("system_instruction", mode="before")
    @classmethod
    def _default_instruction(cls, value):
        return value or DEFAULT_SYSTEM_INSTRUCTION

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, value):
        return clamp(value, *TEMPERATURE_RANGE, DEFAULT_TEMPERATURE)

    @field_validator("max_output_tokens", mode="before")
    @classmethod
    def _clamp_max_output_tokens(cls, value):
        return int(clamp(value, *MAX_OUTPUT_TOKENS_RANGE, DEFAULT_MAX_OUTPUT_TOKENS))

    @field_validator("thinking_budget", mode="before")
    @classmethod
    def _clamp_thinking_budget(cls, value):
        return int(clamp(value, *THINKING_BUDGET_RANGE, DEFAULT_THINKING_BUDGET))

    @field_validator("enable_thinking", "enable_google_search", mode="before")
    @classmethod
    def _none_is_off(cls, value):
        return False if value is None else value

    @property
    def effective_thinking_budget(self) -> int | None:
        """Budget to send, or None when reasoning is off or has no budget."""
        if self.enable_thinking and self.thinking_budget > 0:
            return self.thinking_budget
        return None


class ChatTurnRequest(BaseModel):
    """Body of POST /api/chat."""

    message: str | None = None
    images: list[ImageAttachment] = []
    history: list[HistoryEntry] = []
    settings: GenerationSettings = Field(default_factory=GenerationSettings)

    @field_validator("images", "history", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return [] if value is None else value

    @field_validator("settings", mode="before")
    @classmethod
    def _none_is_default(cls, value):
        return {} if value is None else value

    @property
    def is_empty(self) -> bool:
        return not self.message and not self.images


class ChatMessage(HistoryEntry):
    """A message in the client's conversation; assistant replies are assembled from stream frames."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    complete: bool = False

    def append(self, fragment: str) -> None:
        self.content += fragment

    def mark_complete(self) -> None:
        self.complete = True

    def to_history(self) -> dict:
        """Wire form sent back to the relay as a history entry."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
