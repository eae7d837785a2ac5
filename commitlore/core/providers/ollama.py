"""Ollama local inference server client."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx

from commitlore.core.availability import availability_hint
from commitlore.core.config import ProviderDescriptor
from commitlore.core.errors import ProviderUnavailableError
from commitlore.core.providers.base import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    DEFAULT_REQUEST_TIMEOUT,
    TextGenerator,
    call_with_timeout_and_retries,
    config_float,
    config_int,
)
from commitlore.core.providers.error_mapping import map_connection_error, map_http_status
from commitlore.core.providers.errors import ProviderApiError, ProviderEmptyResponseError
from commitlore.utils.log import get_logger

logger = get_logger()

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3"


def _extract_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return response.text or f"HTTP {response.status_code}"


class OllamaClient(TextGenerator):
    """Chat with a model served by a local Ollama daemon."""

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
        model: str = DEFAULT_OLLAMA_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        provider_id: str = "ollama",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.provider_id = provider_id
        self._transport = transport

    @classmethod
    def from_descriptor(cls, descriptor: ProviderDescriptor) -> "OllamaClient":
        config = descriptor.config
        endpoint = (config.get("endpoint") or "").strip()
        if not endpoint:
            raise ProviderUnavailableError(descriptor.id, availability_hint(descriptor))
        return cls(
            endpoint=endpoint,
            model=config.get("model") or DEFAULT_OLLAMA_MODEL,
            max_tokens=config_int(config, "max_tokens", DEFAULT_MAX_TOKENS),
            request_timeout=config_float(config, "request_timeout", DEFAULT_REQUEST_TIMEOUT),
            max_retries=config_int(config, "max_retries", DEFAULT_MAX_RETRIES),
            provider_id=descriptor.id,
        )

    async def generate_with_system(self, system_prompt: str, prompt: str) -> str:
        start_time = time.time()
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"num_predict": self.max_tokens},
        }
        url = f"{self.endpoint}/api/chat"
        logger.info(
            "[ollama_client] Generating content",
            extra={"model": self.model, "url": url, "user_prompt_length": len(prompt)},
        )

        async with httpx.AsyncClient(
            timeout=self.request_timeout, transport=self._transport
        ) as client:

            async def _request() -> httpx.Response:
                try:
                    return await client.post(url, json=payload)
                except httpx.TimeoutException as exc:
                    raise map_connection_error(f"timed out: {exc}") from exc
                except httpx.HTTPError as exc:
                    raise map_connection_error(str(exc) or type(exc).__name__) from exc

            response = await call_with_timeout_and_retries(
                _request, self.request_timeout, self.max_retries
            )

        if response.status_code >= 400:
            raise map_http_status(response.status_code, _extract_error_message(response))

        try:
            parsed = response.json()
        except ValueError as exc:
            raise ProviderApiError(f"Malformed Ollama response: {exc}") from exc

        message = parsed.get("message") if isinstance(parsed, dict) else None
        text = message.get("content", "") if isinstance(message, dict) else ""
        if not text:
            raise ProviderEmptyResponseError("Ollama chat returned empty content")

        logger.info(
            "[ollama_client] Generated content",
            extra={
                "model": self.model,
                "response_length": len(text),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return text
