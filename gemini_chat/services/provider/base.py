from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class GenerationStream(ABC):
    """An opened streaming generation call."""

    @abstractmethod
    def chunks(self) -> AsyncIterator[dict]:
        """Yield provider-native response chunks in arrival order."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying connection."""
        ...


class GenerativeProvider(ABC):
    @abstractmethod
    async def open_stream(self, model: str, payload: dict) -> GenerationStream:
        """Start a streaming generation call.

        Raises UpstreamError if the call fails before any chunk is available.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is reachable with the configured credential."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
