import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from app.common.errors import UpstreamProviderError
from app.insights.application.ports import TextGenerationProvider
from app.insights.application.prompts import Prompt

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:500]}"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return f"HTTP {response.status_code}: {response.text[:500]}"


def parse_sse_line(line: str) -> Optional[str]:
    """Return the content delta carried by one SSE line, '' when it carries none.

    Returns None for the ``[DONE]`` terminator.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return ""
    payload = line[len("data:"):].strip()
    if payload == "[DONE]":
        return None
    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        raise UpstreamProviderError(f"Malformed stream event: {e}")
    if event.get("error"):
        error = event["error"]
        raise UpstreamProviderError(error.get("message", str(error)) if isinstance(error, dict) else str(error))
    choices = event.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("delta") or {}).get("content") or ""


class GroqTextGenerationProvider(TextGenerationProvider):
    """Chat completions against Groq's OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-oss-20b",
        base_url: str = "https://api.groq.com/openai/v1",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )

    def _payload(self, prompt: Prompt, stream: bool) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "stream": stream,
        }

    async def generate(self, prompt: Prompt) -> str:
        try:
            async with self._client() as client:
                response = await client.post("/chat/completions", json=self._payload(prompt, stream=False))
        except httpx.HTTPError as e:
            logger.error(f"Groq request failed: {e}")
            raise UpstreamProviderError(f"Text generation request failed: {e}")

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"Groq returned {response.status_code}: {message}")
            raise UpstreamProviderError(message)

        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamProviderError(f"Unexpected response from text generation provider: {e}")

    async def stream(self, prompt: Prompt) -> AsyncIterator[str]:
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", "/chat/completions", json=self._payload(prompt, stream=True)
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        message = _error_message(response)
                        logger.error(f"Groq returned {response.status_code}: {message}")
                        raise UpstreamProviderError(message)

                    async for line in response.aiter_lines():
                        fragment = parse_sse_line(line)
                        if fragment is None:
                            break
                        if fragment:
                            yield fragment
        except httpx.HTTPError as e:
            logger.error(f"Groq stream failed: {e}")
            raise UpstreamProviderError(f"Text generation stream failed: {e}")
