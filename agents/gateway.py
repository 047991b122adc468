from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Union

import openai
from openai import AsyncOpenAI

from core.errors import (
    AuthError,
    GatewayError,
    NetworkError,
    RateLimitOrServerError,
)

logger = logging.getLogger(__name__)


@dataclass
class TextPart:
    text: str


@dataclass
class ImagePart:
    data: bytes
    mime_type: str = "image/png"

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


ContentPart = Union[TextPart, ImagePart]


class CompletionGateway(ABC):
    """
    The three call shapes the pipeline needs from the hosted model.

    Implementations make exactly one request per call and never retry. They
    raise AuthError, NetworkError, RateLimitOrServerError or GatewayError.
    """

    @abstractmethod
    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        pass

    @abstractmethod
    async def complete_vision(
        self,
        system_prompt: str,
        parts: Sequence[ContentPart],
        max_tokens: int,
    ) -> str:
        pass

    @abstractmethod
    async def transcribe_audio(self, audio: bytes, filename: str = "recording.webm") -> str:
        pass


@dataclass
class GatewayConfig:
    """
    Configuration for the OpenAI-backed gateway.

    Attributes:
        chat_model: Model used for text-only completions.
        vision_model: Model used for completions with screenshots attached.
        transcription_model: Speech-to-text model.
        timeout: Per-request deadline in seconds; None keeps the SDK default.
        temperature: Sampling temperature; None keeps the model default.
    """

    chat_model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o-mini"
    transcription_model: str = "whisper-1"
    timeout: Optional[float] = None
    temperature: Optional[float] = None


def _translate_error(exc: Exception) -> Exception:
    if isinstance(exc, openai.AuthenticationError):
        return AuthError(str(exc))
    if isinstance(exc, openai.APIConnectionError):
        # Also covers APITimeoutError.
        return NetworkError(str(exc))
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status == 401:
            return AuthError(str(exc))
        if status == 429 or status >= 500:
            return RateLimitOrServerError(str(exc), status_code=status)
        return GatewayError(str(exc), status_code=status)
    return exc


class OpenAIGateway(CompletionGateway):
    def __init__(self, client: AsyncOpenAI, config: Optional[GatewayConfig] = None) -> None:
        self._client = client
        self._config = config or GatewayConfig()

    async def _request(self, call: Awaitable[Any], label: str) -> Any:
        logger.info("Sending %s request to OpenAI", label)
        try:
            return await call
        except openai.OpenAIError as exc:
            translated = _translate_error(exc)
            if translated is exc:
                raise
            raise translated from exc

    def _sampling(self) -> Dict[str, Any]:
        if self._config.temperature is None:
            return {}
        return {"temperature": self._config.temperature}

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        kwargs = self._sampling()
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._request(
            self._client.chat.completions.create(
                model=self._config.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                **kwargs,
            ),
            "text completion",
        )
        return _message_text(response)

    async def complete_vision(
        self,
        system_prompt: str,
        parts: Sequence[ContentPart],
        max_tokens: int,
    ) -> str:
        content: List[Dict[str, Any]] = []
        for part in parts:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            else:
                content.append({"type": "image_url", "image_url": {"url": part.data_url()}})

        response = await self._request(
            self._client.chat.completions.create(
                model=self._config.vision_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": content},
                ],
                max_tokens=max_tokens,
                **self._sampling(),
            ),
            "vision completion",
        )
        return _message_text(response)

    async def transcribe_audio(self, audio: bytes, filename: str = "recording.webm") -> str:
        transcription = await self._request(
            self._client.audio.transcriptions.create(
                file=(filename, audio),
                model=self._config.transcription_model,
            ),
            "transcription",
        )
        return transcription.text or ""


def _message_text(response: Any) -> str:
    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Simulated gateway for development without network access
# ---------------------------------------------------------------------------

_SIMULATED_PROBLEM = {
    "type": "leetcode_problem",
    "problem_statement": "Sample problem statement",
    "input_format": {
        "description": "Sample input description",
        "parameters": [
            {"name": "n", "type": "number", "subtype": "integer"},
            {"name": "arr", "type": "array", "subtype": "integer"},
        ],
    },
    "output_format": {
        "description": "Sample output description",
        "type": "number",
        "subtype": "integer",
    },
    "constraints": [
        {"description": "1 <= n <= 1000", "parameter": "n", "range": {"min": 1, "max": 1000}}
    ],
    "test_cases": [{"input": {"args": [5, [1, 2, 3, 4, 5]]}, "output": {"result": 15}}],
}

_SIMULATED_SOLUTION = {
    "solution": {
        "explanation": "This is an example solution. We iterate through the array and sum up all elements.",
        "complexity": {"time": "O(n)", "space": "O(1)"},
        "code": {
            "javascript": "function solution(n, arr) {\n  let sum = 0;\n  for (let i = 0; i < n; i++) {\n    sum += arr[i];\n  }\n  return sum;\n}",
            "python": "def solution(n, arr):\n    return sum(arr)",
        },
    },
    "alternative_solutions": [
        {
            "explanation": "This is an alternative solution using reduce.",
            "complexity": {"time": "O(n)", "space": "O(1)"},
            "code": {
                "javascript": "function solution(n, arr) {\n  return arr.reduce((acc, val) => acc + val, 0);\n}",
                "python": "from functools import reduce\n\ndef solution(n, arr):\n    return reduce(lambda x, y: x + y, arr, 0)",
            },
        }
    ],
}

_SIMULATED_DEBUG = {
    "debug_analysis": "This is a simulated debug analysis.",
    "improved_solution": {
        "explanation": "This is an improved solution after debugging.",
        "complexity": {"time": "O(n)", "space": "O(1)"},
        "code": {
            "javascript": "function improvedSolution(n, arr) {\n  return arr.reduce((acc, val) => acc + val, 0);\n}",
            "python": "def improved_solution(n, arr):\n    return sum(arr)",
        },
    },
    "enhanced_requirements": [],
    "ui_ux_considerations": [],
    "additional_specifications": [],
}


class SimulatedGateway(CompletionGateway):
    """
    Canned responses after a fixed delay.

    Lets the whole pipeline run without an API key. The response is picked
    from the system prompt: debugging/enhancement prompts get the sample
    refinement, structuring prompts get the sample problem, and JSON-mode
    text calls get the sample solution.
    """

    def __init__(self, wait_ms: int = 500) -> None:
        self._wait_s = wait_ms / 1000.0

    async def _delay(self, label: str) -> None:
        logger.info("Simulating %s delay of %dms", label, int(self._wait_s * 1000))
        await asyncio.sleep(self._wait_s)

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        await self._delay("text completion")
        if "structured JSON" in system_prompt:
            return json.dumps(_SIMULATED_PROBLEM)
        if not json_mode:
            return "A coding problem: sum the elements of an array of n integers."
        return json.dumps(_SIMULATED_SOLUTION)

    async def complete_vision(
        self,
        system_prompt: str,
        parts: Sequence[ContentPart],
        max_tokens: int,
    ) -> str:
        await self._delay("vision completion")
        if "debug" in system_prompt.lower() or "enhanc" in system_prompt.lower():
            return json.dumps(_SIMULATED_DEBUG)
        return json.dumps(_SIMULATED_PROBLEM)

    async def transcribe_audio(self, audio: bytes, filename: str = "recording.webm") -> str:
        await self._delay("transcription")
        return "Given an array of n integers, return the sum of all elements."


def create_default_gateway() -> CompletionGateway:
    """
    Convenience factory that builds a gateway from environment variables.

    Environment variables:
      - SCREENSOLVE_DEV_TEST: "true" selects the SimulatedGateway.
      - SCREENSOLVE_MOCK_WAIT_MS: simulated delay in milliseconds.
      - SCREENSOLVE_CHAT_MODEL / SCREENSOLVE_VISION_MODEL /
        SCREENSOLVE_TRANSCRIPTION_MODEL: override model names.
      - SCREENSOLVE_REQUEST_TIMEOUT: per-request deadline in seconds.
      - OPENAI_API_KEY: read by the OpenAI SDK.
    """
    if os.getenv("SCREENSOLVE_DEV_TEST", "").lower() == "true":
        wait_ms = int(os.getenv("SCREENSOLVE_MOCK_WAIT_MS", "500") or 500)
        return SimulatedGateway(wait_ms=wait_ms)

    timeout_env = os.getenv("SCREENSOLVE_REQUEST_TIMEOUT")
    config = GatewayConfig(
        chat_model=os.getenv("SCREENSOLVE_CHAT_MODEL", GatewayConfig.chat_model),
        vision_model=os.getenv("SCREENSOLVE_VISION_MODEL", GatewayConfig.vision_model),
        transcription_model=os.getenv(
            "SCREENSOLVE_TRANSCRIPTION_MODEL", GatewayConfig.transcription_model
        ),
        timeout=float(timeout_env) if timeout_env else None,
    )
    client_kwargs: Dict[str, Any] = {"max_retries": 0}
    if config.timeout is not None:
        client_kwargs["timeout"] = config.timeout
    client = AsyncOpenAI(**client_kwargs)
    return OpenAIGateway(client=client, config=config)
