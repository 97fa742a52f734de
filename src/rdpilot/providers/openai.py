"""OpenAI-compatible chat provider (OpenAI and Azure OpenAI).

Implements the LLMProvider protocol over plain HTTPS with:
- Retry with exponential backoff for transient failures
- JSON-mode requests for structured command output
- Extraction of JSON wrapped in markdown fences
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
import tenacity

from rdpilot.config import LIMITS, TIMEOUTS
from rdpilot.errors import (
    ConfigurationError,
    LLMConnectionError,
    LLMError,
    LLMResponseError,
    LLMTimeoutError,
)

from .base import ProviderHealth

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
AZURE_API_VERSION = "2024-02-15-preview"
USER_AGENT = "rdpilot/0.1"
DEFAULT_TEMPERATURE = 0.3


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


_retry_transient = tenacity.retry(
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=4),
    retry=tenacity.retry_if_exception(_is_retryable),
    before_sleep=lambda rs: logger.debug(
        "Retrying model request (attempt %d)", rs.attempt_number + 1
    ),
    reraise=True,
)


# =============================================================================
# Provider
# =============================================================================


class OpenAIChatProvider:
    """Chat-completions client for OpenAI or an Azure OpenAI deployment.

    Example:
        provider = OpenAIChatProvider(api_key="sk-...", model="gpt-4o-mini")
        raw = provider.chat_json(system=SYSTEM_PROMPT, user="list sessions")
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        endpoint: str | None = None,
        azure: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if azure and not endpoint:
            raise ConfigurationError(
                "Azure OpenAI requires an endpoint",
                setting="AZURE_OPENAI_ENDPOINT",
            )
        self._api_key = api_key
        self._model = model
        self._azure = azure
        self._endpoint = (endpoint or OPENAI_CHAT_URL).rstrip("/")
        self._transport = transport

    @property
    def provider_type(self) -> str:
        return "azure-openai" if self._azure else "openai"

    @property
    def model(self) -> str:
        return self._model

    @property
    def url(self) -> str:
        if self._azure:
            return f"{self._endpoint}/openai/deployments/{self._model}/chat/completions"
        return self._endpoint

    def chat_text(
        self,
        *,
        system: str,
        user: str,
        timeout_seconds: float = TIMEOUTS.HTTP_REQUEST,
        temperature: float | None = None,
    ) -> str:
        payload = self._build_payload(system=system, user=user, temperature=temperature)
        return self._post_chat(payload, timeout_seconds)

    def chat_json(
        self,
        *,
        system: str,
        user: str,
        timeout_seconds: float = TIMEOUTS.HTTP_REQUEST,
        temperature: float | None = None,
    ) -> str:
        """Request JSON output and return the JSON text.

        Handles models that wrap JSON in markdown code blocks.
        """
        payload = self._build_payload(system=system, user=user, temperature=temperature)
        payload["response_format"] = {"type": "json_object"}
        return extract_json(self._post_chat(payload, timeout_seconds))

    def check_health(self) -> ProviderHealth:
        """Send a one-token request to confirm credentials and reachability."""
        try:
            payload = self._build_payload(system="Reply with OK.", user="ping", temperature=0.0)
            payload["max_tokens"] = 1
            self._post_chat(payload, TIMEOUTS.HEALTH_CHECK)
        except LLMError as exc:
            return ProviderHealth(reachable=False, error=exc.message, current_model=self._model)
        return ProviderHealth(reachable=True, current_model=self._model)

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
        if self._azure:
            headers["api-key"] = self._api_key
        else:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_payload(
        self,
        *,
        system: str,
        user: str,
        temperature: float | None,
    ) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": LIMITS.MAX_MODEL_TOKENS,
            "temperature": DEFAULT_TEMPERATURE if temperature is None else float(temperature),
        }

    @_retry_transient
    def _send(self, payload: dict[str, Any], timeout_seconds: float) -> dict[str, Any]:
        params = {"api-version": AZURE_API_VERSION} if self._azure else None
        with httpx.Client(timeout=timeout_seconds, transport=self._transport) as client:
            res = client.post(self.url, json=payload, headers=self._headers(), params=params)
            res.raise_for_status()
            return res.json()

    def _post_chat(self, payload: dict[str, Any], timeout_seconds: float) -> str:
        """Send a chat request and return the first choice's content."""
        try:
            data = self._send(payload, timeout_seconds)

        except httpx.ConnectError as e:
            raise LLMConnectionError(
                f"Cannot connect to {self.provider_type} at {self._endpoint}",
                provider=self.provider_type,
                url=self._endpoint,
            ) from e

        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"{self.provider_type} request timed out after {timeout_seconds}s",
                provider=self.provider_type,
                timeout_seconds=timeout_seconds,
            ) from e

        except httpx.HTTPStatusError as e:
            raise LLMResponseError(
                f"{self.provider_type} HTTP error: {e.response.status_code}",
                provider=self.provider_type,
                status_code=e.response.status_code,
            ) from e

        except (httpx.HTTPError, ValueError) as e:
            raise LLMError(f"{self.provider_type} request failed: {e}", provider=self.provider_type) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(
                "Unexpected response: missing choices[0].message.content",
                provider=self.provider_type,
            ) from e

        if not isinstance(content, str):
            raise LLMResponseError("Unexpected response: content is not text", provider=self.provider_type)
        return content.strip()


def extract_json(response: str) -> str:
    """Extract JSON from a response that might be wrapped in markdown."""
    stripped = response.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        return stripped

    json_block = re.search(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", response)
    if json_block:
        return json_block.group(1).strip()

    json_match = re.search(r"(\{[\s\S]*\})", response)
    if json_match:
        return json_match.group(1).strip()

    return response
