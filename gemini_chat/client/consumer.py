import codecs
from collections.abc import AsyncIterable, Callable

import structlog

from gemini_chat.client.exceptions import IncompleteStreamError, NoDataReceivedError, RelayStreamError
from gemini_chat.schemas.chat import ChatMessage
from gemini_chat.schemas.events import DoneEvent, ErrorEvent, TextEvent, parse_frame

logger = structlog.get_logger()

MessageObserver = Callable[[ChatMessage], None]


class StreamConsumer:
    """Incremental decoder for the relay's frame stream.

    Bytes are decoded with a streaming UTF-8 decoder so multi-byte sequences
    split across reads are held back rather than corrupted. Only complete
    lines are parsed; a trailing partial line waits for the next read. Frame
    bodies are single-line JSON, so a complete line is always a complete frame,
    and lines that still fail to parse are noise and are skipped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.frames_seen = 0

    def feed(self, data: bytes) -> list[TextEvent | ErrorEvent | DoneEvent]:
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def finish(self) -> list[TextEvent | ErrorEvent | DoneEvent]:
        """Flush the decoder and parse a final unterminated line."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines(tail.split("\n"))

    def _parse_lines(self, lines: list[str]) -> list[TextEvent | ErrorEvent | DoneEvent]:
        events = []
        for line in lines:
            line = line.rstrip("\r")
            if not line:
                continue
            event = parse_frame(line)
            if event is None:
                logger.debug("stream_line_skipped", length=len(line))
                continue
            self.frames_seen += 1
            events.append(event)
        return events

    async def consume(
        self,
        byte_stream: AsyncIterable[bytes],
        message: ChatMessage,
        on_update: MessageObserver | None = None,
    ) -> ChatMessage:
        """Fold frames from ``byte_stream`` into ``message`` until the terminal sentinel.

        On failure the message is left in whatever partial state it reached.
        Read errors from the underlying stream propagate unchanged.
        """
        async for data in byte_stream:
            if self._apply(self.feed(data), message, on_update):
                return message

        if self._apply(self.finish(), message, on_update):
            return message

        if self.frames_seen == 0:
            raise NoDataReceivedError()
        raise IncompleteStreamError()

    def _apply(self, events, message: ChatMessage, on_update: MessageObserver | None) -> bool:
        """Apply events in order; True once the sentinel has been seen."""
        for event in events:
            if isinstance(event, DoneEvent):
                message.mark_complete()
                if on_update:
                    on_update(message)
                return True
            if isinstance(event, ErrorEvent):
                raise RelayStreamError(event.message)
            if event.content:
                message.append(event.content)
                if on_update:
                    on_update(message)
        return False
