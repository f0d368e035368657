class StreamFailedError(Exception):
    """A relay turn did not end with the terminal sentinel."""


class NoDataReceivedError(StreamFailedError):
    def __init__(self, message: str = "No data received from server"):
        super().__init__(message)


class IncompleteStreamError(StreamFailedError):
    def __init__(self, message: str = "Stream ended before the response was complete"):
        super().__init__(message)


class RelayStreamError(StreamFailedError):
    """The relay reported a provider failure mid-stream."""


class RelayHTTPError(StreamFailedError):
    """The relay answered with a non-2xx status instead of a stream."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


class SessionBusyError(Exception):
    """A turn is already in flight for this session."""


class TurnValidationError(ValueError):
    """The turn cannot be sent as composed (empty, too many or invalid images)."""
