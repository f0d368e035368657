import pytest

from gemini_chat.core.exceptions import InvalidTurnError, UpstreamError
from gemini_chat.schemas.chat import ChatTurnRequest, GenerationSettings, HistoryEntry, ImageAttachment
from gemini_chat.services.relay import (
    HISTORY_WINDOW,
    build_content,
    build_contents,
    build_payload,
    extract_text_parts,
    open_relay,
    relay_frames,
)
from tests.mocks.fake_provider import FakeProvider, ScriptedStream, text_chunk

PNG = ImageAttachment(data="iVBORw0KGgo=", mime_type="image/png")


def _history(n: int) -> list[HistoryEntry]:
    return [
        HistoryEntry(role="user" if i % 2 == 0 else "assistant", content=f"m{i}")
        for i in range(n)
    ]


async def _collect(frames) -> list[str]:
    return [frame async for frame in frames]


class TestBuildContents:
    def test_images_before_text(self):
        content = build_content("user", "what is this?", [PNG])
        assert content == {
            "role": "user",
            "parts": [
                {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}},
                {"text": "what is this?"},
            ],
        }

    def test_assistant_maps_to_model_role(self):
        assert build_content("assistant", "hi", None)["role"] == "model"

    def test_entry_without_parts_is_dropped(self):
        assert build_content("assistant", "", None) is None

    def test_history_window_keeps_latest_in_order(self):
        turn = ChatTurnRequest(message="now", history=_history(15))
        contents = build_contents(turn)
        history_texts = [c["parts"][0]["text"] for c in contents[:-1]]
        assert len(history_texts) == HISTORY_WINDOW
        assert history_texts == [f"m{i}" for i in range(5, 15)]
        assert contents[-1] == {"role": "user", "parts": [{"text": "now"}]}

    def test_short_history_forwarded_whole(self):
        contents = build_contents(ChatTurnRequest(message="now", history=_history(3)))
        assert [c["role"] for c in contents] == ["user", "model", "user", "user"]

    def test_history_images_forwarded(self):
        history = [HistoryEntry(role="user", content="see", images=[PNG])]
        contents = build_contents(ChatTurnRequest(message="and?", history=history))
        assert "inlineData" in contents[0]["parts"][0]
        assert contents[0]["parts"][1] == {"text": "see"}


class TestBuildPayload:
    def test_defaults(self):
        payload = build_payload(ChatTurnRequest(message="hi"))
        assert payload["generationConfig"] == {"temperature": 1.0, "maxOutputTokens": 30000}
        assert payload["systemInstruction"] == {"parts": [{"text": "You are a helpful assistant."}]}
        assert len(payload["safetySettings"]) == 4
        assert "tools" not in payload

    def test_search_adds_tool(self):
        settings = GenerationSettings(enable_google_search=True)
        payload = build_payload(ChatTurnRequest(message="news?", settings=settings))
        assert payload["tools"] == [{"googleSearch": {}}]

    def test_thinking_config_only_when_enabled(self):
        off = build_payload(ChatTurnRequest(message="hi", settings=GenerationSettings(thinking_budget=800)))
        assert "thinkingConfig" not in off["generationConfig"]

        on = build_payload(
            ChatTurnRequest(message="hi", settings=GenerationSettings(enable_thinking=True, thinking_budget=800))
        )
        assert on["generationConfig"]["thinkingConfig"] == {"thinkingBudget": 800}

    def test_client_bounds_are_not_trusted(self):
        turn = ChatTurnRequest.model_validate(
            {"message": "hi", "settings": {"temperature": 5, "maxOutputTokens": 1, "enableThinking": True, "thinkingBudget": 50000}}
        )
        config = build_payload(turn)["generationConfig"]
        assert config["temperature"] == 2.0
        assert config["maxOutputTokens"] == 1000
        assert config["thinkingConfig"] == {"thinkingBudget": 10000}


class TestExtractTextParts:
    def test_multiple_parts(self):
        assert extract_text_parts(text_chunk("a", "b")) == ["a", "b"]

    @pytest.mark.parametrize(
        "chunk",
        [
            {},
            {"candidates": []},
            {"candidates": [{"finishReason": "STOP"}]},
            {"candidates": [{"content": {"role": "model"}}]},
            {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
            {"candidates": [{"content": {"parts": [{"functionCall": {"name": "x"}}]}}]},
        ],
    )
    def test_chunks_without_text_yield_nothing(self, chunk):
        assert extract_text_parts(chunk) == []


class TestRelayFrames:
    async def test_frames_then_sentinel(self):
        stream = ScriptedStream([text_chunk("Hello"), {"candidates": []}, text_chunk("!")])
        frames = await _collect(relay_frames(stream))
        assert frames == [
            'data: {"type":"text","content":"Hello"}\n\n',
            'data: {"type":"text","content":"!"}\n\n',
            "data: [DONE]\n\n",
        ]
        assert stream.closed

    async def test_empty_provider_stream_still_terminates(self):
        assert await _collect(relay_frames(ScriptedStream([]))) == ["data: [DONE]\n\n"]

    async def test_mid_stream_failure_ends_without_sentinel(self):
        stream = ScriptedStream([text_chunk("partial"), text_chunk("never")], fail_after=1)
        frames = await _collect(relay_frames(stream))
        assert frames[0] == 'data: {"type":"text","content":"partial"}\n\n'
        assert frames[-1] == 'data: {"type":"error","message":"provider connection reset"}\n\n'
        assert "data: [DONE]\n\n" not in frames
        assert stream.closed

    async def test_upstream_error_details_reach_the_client(self):
        error = UpstreamError("Gemini stream interrupted: connection reset")
        stream = ScriptedStream([text_chunk("a")], fail_after=1, error=error)
        frames = await _collect(relay_frames(stream))
        assert frames[-1] == (
            'data: {"type":"error","message":"Gemini stream interrupted: connection reset"}\n\n'
        )


class TestOpenRelay:
    async def test_empty_turn_rejected_before_provider_call(self):
        provider = FakeProvider()
        with pytest.raises(InvalidTurnError):
            await open_relay(provider, ChatTurnRequest(message="", images=[]), default_model="gemini-2.5-flash")
        assert provider.calls == []

    async def test_default_model_used_when_unset(self):
        provider = FakeProvider()
        frames = await open_relay(provider, ChatTurnRequest(message="hi"), default_model="gemini-2.5-flash")
        await _collect(frames)
        assert provider.calls[0][0] == "gemini-2.5-flash"

    async def test_requested_model_wins(self):
        provider = FakeProvider()
        turn = ChatTurnRequest(message="hi", settings=GenerationSettings(model="gemini-2.5-pro"))
        await _collect(await open_relay(provider, turn, default_model="gemini-2.5-flash"))
        assert provider.calls[0][0] == "gemini-2.5-pro"

    async def test_open_failure_propagates(self):
        provider = FakeProvider(open_error=UpstreamError("quota exceeded"))
        with pytest.raises(UpstreamError):
            await open_relay(provider, ChatTurnRequest(message="hi"), default_model="gemini-2.5-flash")

    async def test_unexpected_open_failure_becomes_upstream_error(self):
        provider = FakeProvider(open_error=RuntimeError("socket closed"))
        with pytest.raises(UpstreamError) as exc_info:
            await open_relay(provider, ChatTurnRequest(message="hi"), default_model="gemini-2.5-flash")
        assert exc_info.value.status == 500
        assert exc_info.value.details == "socket closed"
