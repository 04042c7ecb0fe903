"""HTTP client for the language model provider (Anthropic Messages API).

Shares the provider_http transport with the OCR client: httpx with explicit
timeouts and tenacity retry on rate limiting, overload and connection errors.
"""

import logging
from typing import Any

import httpx

from config import settings
from provider_http import call_with_retry, post_json

logger = logging.getLogger(__name__)


class LLMServiceUnavailable(Exception):
    """Language model is temporarily unavailable (retryable: 429, 5xx/529, connection error)."""


class LLMServiceError(Exception):
    """Language model rejected the request (non-retryable)."""


class LLMClient:
    """Messages API client with retry and backoff."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        retry_backoff: float | None = None,
    ):
        self._base_url = (base_url or settings.LLM_API_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self._model = model or settings.LLM_MODEL
        self._max_tokens = max_tokens if max_tokens is not None else settings.LLM_MAX_TOKENS
        self._retry_attempts = retry_attempts if retry_attempts is not None else settings.LLM_RETRY_ATTEMPTS
        self._retry_delay = retry_delay if retry_delay is not None else settings.LLM_RETRY_DELAY
        self._retry_backoff = retry_backoff if retry_backoff is not None else settings.LLM_RETRY_BACKOFF

        read_timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.LLM_CONNECT_TIMEOUT

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": settings.LLM_API_VERSION,
                "content-type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def close(self):
        await self._client.aclose()

    async def complete(self, prompt: str) -> str:
        """Send a single-turn prompt and return the concatenated text reply.

        Raises LLMServiceUnavailable (after retries) or LLMServiceError,
        including when a 200 body is not a Messages API reply.
        """
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._complete_with_retry(payload)
        if not isinstance(data, dict):
            raise _malformed("body is not an object")

        content = data.get("content") or []
        if not isinstance(content, list):
            raise _malformed("content is not a list")

        parts = []
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            text = block.get("text", "")
            if not isinstance(text, str):
                raise _malformed("text block without a string text")
            parts.append(text)
        return "".join(parts)

    async def _complete_with_retry(self, payload: dict) -> Any:
        return await call_with_retry(
            lambda: self._send_messages(payload),
            unavailable=LLMServiceUnavailable,
            attempts=self._retry_attempts,
            delay=self._retry_delay,
            backoff=self._retry_backoff,
            label="Language model",
        )

    async def _send_messages(self, payload: dict) -> Any:
        """Send a single Messages API request."""
        return await post_json(
            self._client,
            "/v1/messages",
            unavailable=LLMServiceUnavailable,
            error=LLMServiceError,
            label="Language model",
            json=payload,
        )

    async def health(self) -> str:
        return "configured" if self.configured else "not_configured"


def _malformed(reason: str) -> LLMServiceError:
    logger.error("Language model returned a malformed body: %s", reason)
    return LLMServiceError(f"Language model returned a malformed body: {reason}")
