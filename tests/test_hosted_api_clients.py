"""Tests for the Anthropic and OpenAI backends with fake SDK clients."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import openai
import pytest

from commitlore.core.config import ProviderDescriptor, ProviderFamily
from commitlore.core.errors import ProviderUnavailableError
from commitlore.core.providers.anthropic import AnthropicClient, _map_anthropic_error
from commitlore.core.providers.errors import (
    ProviderAuthenticationError,
    ProviderEmptyResponseError,
    ProviderRateLimitError,
    ProviderRequestTimeoutError,
)
from commitlore.core.providers.openai import OpenAIClient, _map_openai_error


def _status_response(status: int, url: str) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", url))


class _FakeCreate:
    def __init__(self, result: Any = None, exc: Exception | None = None) -> None:
        self.result = result
        self.exc = exc
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return self.result


class _FakeSDKClient:
    """Stands in for AsyncAnthropic / AsyncOpenAI, including the async context."""

    instances: list["_FakeSDKClient"] = []

    def __init__(self, create: Any) -> None:
        self.messages = SimpleNamespace(create=create)
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=create))
        self.closed = False
        _FakeSDKClient.instances.append(self)

    async def __aenter__(self) -> "_FakeSDKClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_fake_clients():
    _FakeSDKClient.instances = []
    yield


def _anthropic_factory(create: Any, seen_kwargs: list[dict[str, Any]]):
    def _factory(kwargs: dict[str, Any]) -> Any:
        seen_kwargs.append(kwargs)
        return _FakeSDKClient(create)

    return _factory


def _openai_factory(create: Any):
    def _factory(kwargs: dict[str, Any]) -> Any:
        return _FakeSDKClient(create)

    return _factory


def _anthropic_reply(*texts: str) -> SimpleNamespace:
    return SimpleNamespace(
        id="msg_1",
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=3, output_tokens=5),
    )


def _openai_reply(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        id="cmpl_1",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=5),
    )


@pytest.mark.asyncio
async def test_anthropic_sends_system_only_when_present() -> None:
    create = _FakeCreate(result=_anthropic_reply("Hello", " world"))
    seen_kwargs: list[dict[str, Any]] = []
    client = AnthropicClient(
        "sk-ant",
        model="claude-test",
        base_url="https://proxy.local",
        max_tokens=100,
        client_factory=_anthropic_factory(create, seen_kwargs),
    )

    assert await client.generate("hi") == "Hello world"
    assert await client.generate_with_system("be terse", "hi") == "Hello world"

    assert "system" not in create.calls[0]
    assert create.calls[1]["system"] == "be terse"
    assert create.calls[1]["messages"] == [{"role": "user", "content": "hi"}]
    assert create.calls[1]["model"] == "claude-test"
    assert create.calls[1]["max_tokens"] == 100
    assert seen_kwargs[0] == {"api_key": "sk-ant", "max_retries": 0, "base_url": "https://proxy.local"}


@pytest.mark.asyncio
async def test_anthropic_empty_text_is_empty_response() -> None:
    create = _FakeCreate(result=_anthropic_reply())
    client = AnthropicClient("sk-ant", client_factory=_anthropic_factory(create, []))
    with pytest.raises(ProviderEmptyResponseError):
        await client.generate("hi")


@pytest.mark.asyncio
async def test_anthropic_sdk_errors_are_mapped() -> None:
    url = "https://api.anthropic.com/v1/messages"
    exc = anthropic.AuthenticationError(
        "invalid x-api-key", response=_status_response(401, url), body=None
    )
    client = AnthropicClient(
        "sk-ant", client_factory=_anthropic_factory(_FakeCreate(exc=exc), [])
    )
    with pytest.raises(ProviderAuthenticationError) as exc_info:
        await client.generate("hi")
    assert exc_info.value.error_code == "authentication_error"


def test_map_anthropic_rate_limit() -> None:
    url = "https://api.anthropic.com/v1/messages"
    exc = anthropic.RateLimitError("slow down", response=_status_response(429, url), body=None)
    assert isinstance(_map_anthropic_error(exc), ProviderRateLimitError)


@pytest.mark.asyncio
async def test_anthropic_request_timeout_after_retries(monkeypatch) -> None:
    monkeypatch.setattr("commitlore.core.providers.base._retry_delay_seconds", lambda attempt: 0)

    class _Hang:
        calls = 0

        async def __call__(self, **kwargs: Any) -> Any:
            type(self).calls += 1
            await asyncio.sleep(1)

    hang = _Hang()
    client = AnthropicClient(
        "sk-ant",
        request_timeout=0.01,
        max_retries=1,
        client_factory=_anthropic_factory(hang, []),
    )
    with pytest.raises(ProviderRequestTimeoutError):
        await client.generate("hi")
    assert _Hang.calls == 2


def test_anthropic_from_descriptor_reads_config() -> None:
    descriptor = ProviderDescriptor(
        id="claude-api",
        name="Claude API",
        family=ProviderFamily.HOSTED_API,
        config={
            "api_key_env": "MY_KEY",
            "model": "claude-x",
            "max_tokens": "256",
            "request_timeout": "12.5",
            "max_retries": "not-a-number",
        },
    )
    client = AnthropicClient.from_descriptor(descriptor, environ={"MY_KEY": "sk"})
    assert client.model == "claude-x"
    assert client.max_tokens == 256
    assert client.request_timeout == 12.5
    assert client.max_retries == 2
    assert client.provider_id == "claude-api"

    with pytest.raises(ProviderUnavailableError) as exc_info:
        AnthropicClient.from_descriptor(descriptor, environ={"MY_KEY": ""})
    assert exc_info.value.hint == "Set environment variable MY_KEY"


@pytest.mark.asyncio
async def test_openai_builds_messages() -> None:
    create = _FakeCreate(result=_openai_reply("done"))
    client = OpenAIClient("sk-oai", model="gpt-test", client_factory=_openai_factory(create))

    assert await client.generate_with_system("sys", "user") == "done"
    assert await client.generate("only user") == "done"

    assert create.calls[0]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "user"},
    ]
    assert create.calls[1]["messages"] == [{"role": "user", "content": "only user"}]
    assert create.calls[0]["model"] == "gpt-test"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        SimpleNamespace(id="x", choices=[], usage=None),
        _openai_reply(None),
        _openai_reply(""),
    ],
)
async def test_openai_empty_replies(reply) -> None:
    client = OpenAIClient("sk-oai", client_factory=_openai_factory(_FakeCreate(result=reply)))
    with pytest.raises(ProviderEmptyResponseError):
        await client.generate("hi")


@pytest.mark.asyncio
async def test_openai_sdk_errors_are_mapped() -> None:
    url = "https://api.openai.com/v1/chat/completions"
    exc = openai.RateLimitError("quota", response=_status_response(429, url), body=None)
    client = OpenAIClient("sk-oai", client_factory=_openai_factory(_FakeCreate(exc=exc)))
    with pytest.raises(ProviderRateLimitError):
        await client.generate("hi")


def test_map_openai_connection_error() -> None:
    exc = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com"))
    assert _map_openai_error(exc).error_code == "connection_error"


def test_openai_from_descriptor_requires_key() -> None:
    descriptor = ProviderDescriptor(
        id="openai-api",
        name="OpenAI API",
        family=ProviderFamily.HOSTED_API,
        config={"api_key_env": "OPENAI_API_KEY", "base_url": "https://gw.local/v1"},
    )
    client = OpenAIClient.from_descriptor(descriptor, environ={"OPENAI_API_KEY": "sk"})
    assert client.base_url == "https://gw.local/v1"
    assert client.model == "gpt-4o"

    with pytest.raises(ProviderUnavailableError):
        OpenAIClient.from_descriptor(descriptor, environ={})


@pytest.mark.asyncio
async def test_sdk_clients_are_closed_after_each_call() -> None:
    anthropic_client = AnthropicClient(
        "sk-ant", client_factory=_anthropic_factory(_FakeCreate(result=_anthropic_reply("a")), [])
    )
    openai_client = OpenAIClient(
        "sk-oai", client_factory=_openai_factory(_FakeCreate(result=_openai_reply("b")))
    )

    assert await anthropic_client.generate("hi") == "a"
    assert await openai_client.generate("hi") == "b"

    assert len(_FakeSDKClient.instances) == 2
    assert all(instance.closed for instance in _FakeSDKClient.instances)


@pytest.mark.asyncio
async def test_sdk_client_closed_when_call_fails() -> None:
    url = "https://api.openai.com/v1/chat/completions"
    exc = openai.AuthenticationError("bad key", response=_status_response(401, url), body=None)
    client = OpenAIClient("sk-oai", client_factory=_openai_factory(_FakeCreate(exc=exc)))

    with pytest.raises(ProviderAuthenticationError):
        await client.generate("hi")

    assert [instance.closed for instance in _FakeSDKClient.instances] == [True]
