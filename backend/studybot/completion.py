"""Client for the external chat-completion API.

`CompletionGateway` sends a single OpenAI-compatible
`/chat/completions` request and returns the generated text. Transport
failures raise `UpstreamUnavailable`; non-success responses raise
`UpstreamError` with the status code while the response body only goes
to the log. No retries are attempted.
"""

import logging
from typing import Optional
import httpx
from .config import settings
from .errors import UpstreamError, UpstreamUnavailable

logger = logging.getLogger("studybot.completion")


class CompletionGateway:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout if timeout is not None else settings.OPENAI_TIMEOUT_SECONDS
        self._transport = transport

    def complete(self, prompt: str, *, system: str, max_tokens: int, temperature: float, model: Optional[str] = None) -> str:
        """Return the assistant message content for `prompt`."""
        if not self.api_key:
            raise UpstreamUnavailable("OpenAI API key not configured")
        payload = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("completion request failed: %s", exc)
            raise UpstreamUnavailable(f"Completion API unavailable: {exc.__class__.__name__}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            logger.error("completion API error %s: %s", resp.status_code, resp.text)
            raise UpstreamError(resp.status_code)
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.error("unexpected completion payload: %s", resp.text[:2000])
            raise UpstreamError(resp.status_code, "Completion API returned no content")
        if not isinstance(content, str):
            raise UpstreamError(resp.status_code, "Completion API returned no content")
        logger.info("completion ok model=%s chars=%d", payload["model"], len(content))
        return content


def get_completion_gateway() -> CompletionGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return CompletionGateway()
