"""Scripted in-process provider for relay tests."""

from collections.abc import AsyncIterator

from gemini_chat.services.provider.base import GenerationStream, GenerativeProvider


def text_chunk(*texts: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": t} for t in texts]}}]}


class ScriptedStream(GenerationStream):
    def __init__(self, chunks: list[dict], fail_after: int | None = None, error: Exception | None = None):
        self._chunks = chunks
        self._fail_after = fail_after
        self._error = error or RuntimeError("provider connection reset")
        self.closed = False

    async def chunks(self) -> AsyncIterator[dict]:
        for i, chunk in enumerate(self._chunks):
            if i == self._fail_after:
                raise self._error
            yield chunk
        if self._fail_after is not None and self._fail_after >= len(self._chunks):
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


class FakeProvider(GenerativeProvider):
    def __init__(
        self,
        chunks: list[dict] | None = None,
        open_error: Exception | None = None,
        fail_after: int | None = None,
        healthy: bool = True,
    ):
        self.chunks = chunks if chunks is not None else [text_chunk("Hello"), text_chunk("!")]
        self.open_error = open_error
        self.fail_after = fail_after
        self.healthy = healthy
        self.calls: list[tuple[str, dict]] = []
        self.streams: list[ScriptedStream] = []

    async def open_stream(self, model: str, payload: dict) -> ScriptedStream:
        self.calls.append((model, payload))
        if self.open_error is not None:
            raise self.open_error
        stream = ScriptedStream(self.chunks, fail_after=self.fail_after)
        self.streams.append(stream)
        return stream

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        pass
