import json
from collections.abc import AsyncIterator
from urllib.parse import quote

import httpx
import structlog

from gemini_chat.core.exceptions import UpstreamError
from gemini_chat.services.provider.base import GenerationStream, GenerativeProvider

logger = structlog.get_logger()


def _error_message(body: str) -> str:
    """Pull the human-readable message out of a Gemini error body."""
    try:
        return json.loads(body)["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return body[:500]


class GeminiStream(GenerationStream):
    """Server-sent chunk stream from ``streamGenerateContent?alt=sse``."""

    def __init__(self, response: httpx.Response):
        self._response = response

    async def chunks(self) -> AsyncIterator[dict]:
        try:
            async for line in self._response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                body = line.removeprefix("data:").strip()
                if not body:
                    continue
                try:
                    yield json.loads(body)
                except json.JSONDecodeError:
                    logger.warning("gemini_chunk_unparseable", length=len(body))
        except httpx.HTTPError as e:
            raise UpstreamError(f"Gemini stream interrupted: {e}")

    async def aclose(self) -> None:
        await self._response.aclose()


class GeminiProvider(GenerativeProvider):
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        api_version: str = "v1beta",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self._headers = {"x-goog-api-key": api_key} if api_key else {}
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=120.0, write=5.0, pool=5.0)
        )

    async def open_stream(self, model: str, payload: dict) -> GeminiStream:
        """Send the generation request and check its status before any chunk is read."""
        # Model ids come from the client; keep them inside one path segment
        model_segment = quote(model, safe="")
        url = f"{self.base_url}/{self.api_version}/models/{model_segment}:streamGenerateContent"
        request = self._client.build_request(
            "POST", url, params={"alt": "sse"}, json=payload, headers=self._headers
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.ConnectError as e:
            raise UpstreamError(f"Cannot connect to Gemini at {self.base_url}: {e}")
        except httpx.TimeoutException:
            raise UpstreamError("Gemini request timed out.")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Gemini request failed: {e}")

        if response.is_error:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise UpstreamError(f"Gemini returned error {response.status_code}: {_error_message(body)}")

        return GeminiStream(response)

    async def health_check(self) -> bool:
        """Check that the models listing is reachable with our key."""
        try:
            response = await self._client.get(
                f"{self.base_url}/{self.api_version}/models", headers=self._headers
            )
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
