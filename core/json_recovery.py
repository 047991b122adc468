from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Tuple

from core.errors import DecodeError, ResponseValidationError

logger = logging.getLogger(__name__)


class _NoMatch:
    """Sentinel returned by a strategy that could not produce a value.

    ``None`` cannot play this role because ``null`` is valid JSON.
    """

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH: Any = _NoMatch()

Strategy = Callable[[str], Any]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_FENCE = re.compile(r"```([A-Za-z0-9_+-]*)[ \t]*\n?(.*?)```", re.DOTALL)
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)(\s*:)")
_SINGLE_QUOTED_KEY = re.compile(r"([{,]\s*)'([^'\n]*)'(\s*:)")
_SINGLE_QUOTED_VALUE = re.compile(r":\s*'([^'\n]*)'")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _loads(text: str) -> Any:
    # strict=False keeps literal newlines inside strings (code samples).
    try:
        return json.loads(text, strict=False)
    except ValueError:
        return NO_MATCH


# ---------------------------------------------------------------------------
# Strategies, tried in order. Each is pure: text -> value | NO_MATCH.
# ---------------------------------------------------------------------------


def parse_direct(text: str) -> Any:
    return _loads(text.strip())


def parse_fenced(text: str) -> Any:
    """Parse the first ```json fence, falling back to unlabeled fences."""
    fences = [(label.lower(), body) for label, body in _FENCE.findall(text)]
    ordered = [body for label, body in fences if label == "json"]
    ordered += [body for label, body in fences if label == ""]
    for body in ordered:
        value = _loads(body.strip())
        if value is not NO_MATCH:
            return value
    return NO_MATCH


def _matching_brace(text: str, start: int) -> int:
    """Index just past the brace closing ``text[start]``, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return idx + 1
    return -1


def balanced_candidates(text: str) -> Iterator[str]:
    """Yield each top-level balanced ``{...}`` span, in order.

    Nested objects are never yielded on their own. Scanning stops at the
    first ``{`` that never closes, since the rest of the text is truncated.
    """
    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end == -1:
            return
        yield text[start:end]
        start = text.find("{", end)


def parse_balanced_object(text: str) -> Any:
    for candidate in balanced_candidates(text):
        value = _loads(candidate)
        if value is not NO_MATCH:
            return value
    return NO_MATCH


def _requote_value(match: "re.Match[str]") -> str:
    return ": " + json.dumps(match.group(1))


def repair_json(text: str) -> str:
    """Apply the syntax repairs models most often need."""
    repaired = _SINGLE_QUOTED_KEY.sub(r'\1"\2"\3', text)
    repaired = _BARE_KEY.sub(r'\1"\2"\3', repaired)
    repaired = _SINGLE_QUOTED_VALUE.sub(_requote_value, repaired)
    return _TRAILING_COMMA.sub(r"\1", repaired)


def parse_repaired(text: str) -> Any:
    for candidate in balanced_candidates(text):
        value = _loads(repair_json(candidate))
        if value is not NO_MATCH:
            return value
    return _loads(repair_json(text.strip()))


def strip_control_characters(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("direct", parse_direct),
    ("fenced", parse_fenced),
    ("balanced", parse_balanced_object),
    ("repaired", parse_repaired),
)


# ---------------------------------------------------------------------------
# Last-resort field extraction
# ---------------------------------------------------------------------------


@dataclass
class FieldHints:
    """Fragments regex-extracted from text that is not JSON at all."""

    explanation: str = ""
    javascript: str = ""
    python: str = ""


def _first_group(patterns: Tuple[str, ...], text: str, flags: int = 0) -> str:
    for pattern in patterns:
        match = re.search(pattern, text, flags)
        if match:
            return match.group(1).strip()
    return ""


def extract_field_hints(text: str) -> FieldHints:
    return FieldHints(
        explanation=_first_group(
            (r"explanation[\s\S]*?:\s*[\"'](.+?)[\"']",),
            text,
            re.IGNORECASE,
        ),
        javascript=_first_group(
            (
                r"```(?:javascript|js)\s*([\s\S]*?)```",
                r"\"javascript\"\s*:\s*\"(.+?)\"",
            ),
            text,
        ),
        python=_first_group(
            (
                r"```(?:python|py)\s*([\s\S]*?)```",
                r"\"python\"\s*:\s*\"(.+?)\"",
            ),
            text,
        ),
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def decode(text: str, synthesize: Optional[Callable[[str], Any]] = None) -> Any:
    """
    Turn arbitrary model output into a structured value.

    Strategies 1-4 run on the raw text, then again on the text with control
    characters stripped. ``synthesize`` is the call site's opt-in last resort:
    it receives the raw text and must return a minimal structured value.

    Raises DecodeError when nothing works.
    """
    if text is None:
        text = ""

    sanitized = strip_control_characters(text)
    passes = [("raw", text)]
    if sanitized != text:
        passes.append(("sanitized", sanitized))

    for pass_name, candidate_text in passes:
        for name, strategy in STRATEGIES:
            value = strategy(candidate_text)
            if value is not NO_MATCH:
                logger.debug("Decoded model output via %s/%s strategy", pass_name, name)
                return value
            logger.debug("JSON strategy %s/%s found nothing", pass_name, name)

    if synthesize is not None:
        logger.info("Falling back to synthetic reconstruction of model output")
        return synthesize(text)

    raise DecodeError("Could not extract valid JSON from response", raw_text=text)


def drop_nulls(value: Any) -> Any:
    """Remove ``null`` members recursively so schema defaults apply instead."""
    if isinstance(value, dict):
        return {k: drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [drop_nulls(v) for v in value if v is not None]
    return value


def decode_object(
    text: str,
    synthesize: Optional[Callable[[str], Any]] = None,
) -> dict:
    """Decode and require a JSON object."""
    value = decode(text, synthesize=synthesize)
    if not isinstance(value, dict):
        raise ResponseValidationError(
            f"Expected a JSON object, got {type(value).__name__}",
            raw_text=text,
        )
    return value
