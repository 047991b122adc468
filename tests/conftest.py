"""Shared test fixtures for pytest.

The pipeline never talks to OpenAI in tests: ``FakeGateway`` replays
scripted responses and records every call so tests can assert on prompts,
images and call counts.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from agents.gateway import CompletionGateway, ContentPart
from collaborators.base import EvidenceSource, Screenshot
from collaborators.local import RecordingNotifier
from core.cancellation import CancellationToken, SessionKind
from core.orchestration import ProcessingOrchestrator, create_default_orchestrator

# Placeholder that makes a scripted call block until its token fires.
HANG = object()


LEETCODE_PROBLEM = {
    "type": "leetcode_problem",
    "problem_statement": "Return the sum of the array.",
    "input_format": {
        "description": "An array of integers",
        "parameters": [{"name": "arr", "type": "array", "subtype": "integer"}],
    },
    "output_format": {"description": "The sum", "type": "number", "subtype": "integer"},
    "constraints": [{"description": "1 <= n <= 1000"}],
    "test_cases": [{"input": {"args": [[1, 2, 3]]}, "output": {"result": 6}}],
}

TECHNICAL_PROBLEM = {
    "type": "technical_requirement",
    "project_title": "Todo App",
    "requirements_list": ["Add todos", "Delete todos"],
    "tech_stack": ["React", "Node.js"],
    "optional_features": ["Dark mode"],
}

LEETCODE_SOLUTION = {
    "solution": {
        "explanation": "Add every element.",
        "complexity": {"time": "O(n)", "space": "O(1)"},
        "code": {
            "javascript": "function solve(arr) {\n  return arr.reduce((a, b) => a + b, 0);\n}",
            "python": "def solve(arr):\n    return sum(arr)",
        },
    },
    "alternative_solutions": [
        {
            "explanation": "Explicit loop.",
            "complexity": {"time": "O(n)", "space": "O(1)"},
            "code": {"javascript": "// loop", "python": "# loop"},
        }
    ],
}

TECHNICAL_SOLUTION = {
    "project_plan": {
        "overview": "A todo list",
        "architecture": "SPA with REST backend",
        "tech_stack": {
            "frontend": ["React"],
            "backend": ["Express"],
            "database": ["SQLite"],
            "deployment": ["Docker"],
        },
    },
    "implementation_steps": [{"step": "Scaffold", "details": "Create both apps"}],
    "file_structure": [{"path": "src/App.js", "purpose": "Root", "code_sample": "..."}],
    "key_features": [{"feature": "CRUD", "implementation": "REST endpoints"}],
}

DEBUG_RESPONSE = {
    "debug_analysis": "Off-by-one in the loop bound.",
    "improved_solution": {
        "explanation": "Use the built-in sum.",
        "complexity": {"time": "O(n)", "space": "O(1)"},
        "code": {"javascript": "const solve = a => a.reduce((x, y) => x + y, 0);", "python": "solve = sum"},
    },
}

ENHANCEMENT_RESPONSE = {
    "enhanced_requirements": ["Mark todos done", "Add todos"],
    "ui_ux_considerations": ["Mobile first"],
    "additional_specifications": ["Persist to local storage"],
}


def as_json(value: Any) -> str:
    return json.dumps(value)


class FakeGateway(CompletionGateway):
    """
    Scripted gateway.

    Each queue holds, in order, the responses for one call shape. An item can
    be a string, an exception instance (raised), or ``HANG``.
    """

    def __init__(self) -> None:
        self.text_responses: List[Any] = []
        self.vision_responses: List[Any] = []
        self.transcriptions: List[Any] = []
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for name, call in self.calls if name == kind]

    async def _next(self, queue: List[Any], kind: str, call: Dict[str, Any]) -> str:
        self.calls.append((kind, call))
        await asyncio.sleep(0)
        if not queue:
            raise AssertionError(f"Unexpected {kind} call")
        item = queue.pop(0)
        if item is HANG:
            await asyncio.Event().wait()
        if isinstance(item, BaseException):
            raise item
        return item

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        call = {
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "json_mode": json_mode,
        }
        return await self._next(self.text_responses, "text", call)

    async def complete_vision(
        self,
        system_prompt: str,
        parts: Sequence[ContentPart],
        max_tokens: int,
    ) -> str:
        call = {"system_prompt": system_prompt, "parts": list(parts), "max_tokens": max_tokens}
        return await self._next(self.vision_responses, "vision", call)

    async def transcribe_audio(self, audio: bytes, filename: str = "recording.webm") -> str:
        return await self._next(self.transcriptions, "transcribe", {"audio": audio})


class StaticEvidenceSource(EvidenceSource):
    """In-memory evidence; tests fill the queues directly."""

    def __init__(self) -> None:
        self.queue: List[Screenshot] = []
        self.extra_queue: List[Screenshot] = []
        self.audio: Dict[str, bytes] = {}
        self.clear_count = 0

    def get_queued_screenshots(self) -> List[Screenshot]:
        return list(self.queue)

    def get_extra_queued_screenshots(self) -> List[Screenshot]:
        return list(self.extra_queue)

    def get_audio_file(self, path: str) -> bytes:
        if path not in self.audio:
            raise FileNotFoundError(f"Audio file not found: {path}")
        return self.audio[path]

    def clear_queues(self) -> None:
        self.clear_count += 1
        self.queue.clear()
        self.extra_queue.clear()


async def wait_for_calls(gateway: FakeGateway, count: int) -> None:
    """Yield to the loop until the gateway has seen ``count`` calls."""
    for _ in range(500):
        if len(gateway.calls) >= count:
            return
        await asyncio.sleep(0.001)
    raise AssertionError(f"Gateway saw {len(gateway.calls)} calls, expected {count}")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def evidence() -> StaticEvidenceSource:
    return StaticEvidenceSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def orchestrator(
    evidence: StaticEvidenceSource,
    notifier: RecordingNotifier,
    gateway: FakeGateway,
) -> ProcessingOrchestrator:
    return create_default_orchestrator(evidence, notifier, gateway=gateway)


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken(SessionKind.PRIMARY, 1)


def screenshot(name: str, data: Optional[bytes] = None) -> Screenshot:
    return Screenshot(path=f"/tmp/{name}.png", image=data or name.encode())
