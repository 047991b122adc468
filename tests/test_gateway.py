import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from agents.gateway import (
    GatewayConfig,
    ImagePart,
    OpenAIGateway,
    SimulatedGateway,
    TextPart,
    create_default_gateway,
)
from core.errors import AuthError, GatewayError, NetworkError, RateLimitOrServerError

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status: int):
    return cls("failure", response=httpx.Response(status, request=_REQUEST), body=None)


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


@pytest.mark.asyncio
async def test_text_completion_sends_json_mode():
    create = AsyncMock(return_value=_completion('{"ok": true}'))
    gateway = OpenAIGateway(_client(create), GatewayConfig(chat_model="chat-model"))

    text = await gateway.complete_text("system", "user", max_tokens=1500, json_mode=True)

    assert text == '{"ok": true}'
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "chat-model"
    assert kwargs["max_tokens"] == 1500
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}


@pytest.mark.asyncio
async def test_vision_completion_encodes_images_as_data_urls():
    create = AsyncMock(return_value=_completion("answer"))
    gateway = OpenAIGateway(_client(create))

    await gateway.complete_vision(
        "system", [TextPart("look"), ImagePart(b"\x89PNG")], max_tokens=4096
    )

    content = create.await_args.kwargs["messages"][1]["content"]
    assert content[0] == {"type": "text", "text": "look"}
    assert content[1]["type"] == "image_url"
    assert content[1]["image_url"]["url"] == "data:image/png;base64,iVBORw=="
    assert "response_format" not in create.await_args.kwargs


@pytest.mark.asyncio
async def test_empty_content_becomes_empty_string():
    gateway = OpenAIGateway(_client(AsyncMock(return_value=_completion(None))))
    assert await gateway.complete_text("s", "u", max_tokens=10) == ""


@pytest.mark.asyncio
async def test_transcription_passes_named_file():
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="hello"))
    gateway = OpenAIGateway(client)

    assert await gateway.transcribe_audio(b"bytes") == "hello"
    kwargs = client.audio.transcriptions.create.await_args.kwargs
    assert kwargs["file"] == ("recording.webm", b"bytes")
    assert kwargs["model"] == "whisper-1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (_status_error(openai.AuthenticationError, 401), AuthError),
        (_status_error(openai.RateLimitError, 429), RateLimitOrServerError),
        (_status_error(openai.InternalServerError, 503), RateLimitOrServerError),
        (_status_error(openai.BadRequestError, 400), GatewayError),
        (openai.APIConnectionError(request=_REQUEST), NetworkError),
        (openai.APITimeoutError(request=_REQUEST), NetworkError),
    ],
)
async def test_sdk_errors_are_translated(error, expected):
    create = AsyncMock(side_effect=error)
    gateway = OpenAIGateway(_client(create))

    with pytest.raises(expected) as exc_info:
        await gateway.complete_text("s", "u", max_tokens=10)

    assert exc_info.value.__cause__ is error
    assert not getattr(exc_info.value, "cancelled", False)
    assert create.await_count == 1


@pytest.mark.asyncio
async def test_simulated_gateway_routes_by_prompt():
    gateway = SimulatedGateway(wait_ms=0)

    problem = json.loads(await gateway.complete_vision("Extract the task", [], max_tokens=1))
    debug = json.loads(await gateway.complete_vision("Expert at debugging", [], max_tokens=1))
    solution = json.loads(await gateway.complete_text("Solve", "it", max_tokens=1, json_mode=True))

    assert problem["type"] == "leetcode_problem"
    assert "debug_analysis" in debug
    assert "solution" in solution
    assert await gateway.transcribe_audio(b"") != ""


def test_dev_test_env_selects_simulated_gateway(monkeypatch):
    monkeypatch.setenv("SCREENSOLVE_DEV_TEST", "true")
    monkeypatch.setenv("SCREENSOLVE_MOCK_WAIT_MS", "10")
    assert isinstance(create_default_gateway(), SimulatedGateway)


def test_default_gateway_reads_models_from_env(monkeypatch):
    monkeypatch.delenv("SCREENSOLVE_DEV_TEST", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("SCREENSOLVE_VISION_MODEL", "vision-x")
    monkeypatch.setenv("SCREENSOLVE_REQUEST_TIMEOUT", "12.5")

    gateway = create_default_gateway()

    assert isinstance(gateway, OpenAIGateway)
    assert gateway._config.vision_model == "vision-x"
    assert gateway._config.timeout == 12.5
    assert gateway._client.max_retries == 0
