"""OpenAI chat completions client."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import openai
from openai import AsyncOpenAI

from commitlore.core.availability import api_key_env_name, availability_hint
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
from commitlore.core.providers.error_mapping import (
    map_api_status_error,
    map_bad_request_error,
    map_connection_error,
    map_permission_denied_error,
    run_with_exception_mapper,
)
from commitlore.core.providers.errors import (
    BackendFailure,
    ProviderAuthenticationError,
    ProviderEmptyResponseError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
)
from commitlore.utils.log import get_logger

logger = get_logger()

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.7


def _map_openai_error(exc: Exception) -> Exception:
    """Translate OpenAI SDK exceptions into backend failures."""
    if isinstance(exc, BackendFailure):
        return exc
    exc_msg = str(exc)
    if isinstance(exc, openai.AuthenticationError):
        return ProviderAuthenticationError(f"Authentication failed: {exc_msg}")
    if isinstance(exc, openai.PermissionDeniedError):
        return map_permission_denied_error(exc_msg)
    if isinstance(exc, openai.NotFoundError):
        return ProviderModelNotFoundError(f"Model not found: {exc_msg}")
    if isinstance(exc, openai.BadRequestError):
        return map_bad_request_error(exc_msg)
    if isinstance(exc, openai.RateLimitError):
        return ProviderRateLimitError(f"Rate limit exceeded: {exc_msg}")
    if isinstance(exc, openai.APIConnectionError):
        return map_connection_error(exc_msg)
    if isinstance(exc, openai.APIStatusError):
        return map_api_status_error(exc_msg, getattr(exc, "status_code", "unknown"))
    return exc


def _build_messages(system_prompt: str, prompt: str) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIClient(TextGenerator):
    """GPT models via the hosted chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        provider_id: str = "openai-api",
        client_factory: Optional[Callable[[Dict[str, Any]], AsyncOpenAI]] = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.provider_id = provider_id
        self._client_factory = client_factory

    @classmethod
    def from_descriptor(
        cls, descriptor: ProviderDescriptor, environ: Optional[Mapping[str, str]] = None
    ) -> "OpenAIClient":
        env = os.environ if environ is None else environ
        env_var = api_key_env_name(descriptor)
        api_key = env.get(env_var, "") if env_var else ""
        if not api_key:
            raise ProviderUnavailableError(descriptor.id, availability_hint(descriptor))
        config = descriptor.config
        return cls(
            api_key,
            model=config.get("model") or DEFAULT_OPENAI_MODEL,
            base_url=config.get("base_url") or None,
            max_tokens=config_int(config, "max_tokens", DEFAULT_MAX_TOKENS),
            temperature=config_float(config, "temperature", DEFAULT_TEMPERATURE),
            request_timeout=config_float(config, "request_timeout", DEFAULT_REQUEST_TIMEOUT),
            max_retries=config_int(config, "max_retries", DEFAULT_MAX_RETRIES),
            provider_id=descriptor.id,
        )

    def _client(self) -> AsyncOpenAI:
        kwargs: Dict[str, Any] = {"api_key": self._api_key, "max_retries": 0}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self._client_factory:
            return self._client_factory(kwargs)
        return AsyncOpenAI(**kwargs)

    async def generate_with_system(self, system_prompt: str, prompt: str) -> str:
        start_time = time.time()
        logger.info(
            "[openai_client] Generating content",
            extra={
                "model": self.model,
                "system_prompt_length": len(system_prompt),
                "user_prompt_length": len(prompt),
            },
        )
        async with self._client() as client:
            async def _request() -> Any:
                return await run_with_exception_mapper(
                    lambda: client.chat.completions.create(
                        model=self.model,
                        messages=_build_messages(system_prompt, prompt),
                        max_tokens=self.max_tokens,
                        temperature=self.temperature,
                    ),
                    _map_openai_error,
                )

            try:
                response = await call_with_timeout_and_retries(
                    _request, self.request_timeout, self.max_retries
                )
            except asyncio.CancelledError:
                raise
            except BackendFailure as exc:
                logger.error(
                    "[openai_client] API call failed",
                    extra={
                        "model": self.model,
                        "error_code": exc.error_code,
                        "error_message": str(exc),
                        "duration_ms": round((time.time() - start_time) * 1000, 2),
                    },
                )
                raise

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderEmptyResponseError("OpenAI API returned no choices")
        message = getattr(choices[0], "message", None)
        text = (getattr(message, "content", None) or "") if message is not None else ""
        if not text:
            raise ProviderEmptyResponseError("OpenAI API returned an empty message")

        usage = getattr(response, "usage", None)
        logger.info(
            "[openai_client] Generated content",
            extra={
                "model": self.model,
                "response_length": len(text),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "response_id": getattr(response, "id", None),
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
            },
        )
        return text
