from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from agents.gateway import (
    CompletionGateway,
    ContentPart,
    ImagePart,
    TextPart,
    create_default_gateway,
)
from core.cancellation import CancellationToken
from core.errors import ResponseValidationError
from core.json_recovery import decode_object, drop_nulls
from core.models import ProblemInfo, ProblemType
from core.publishing import ResultPublisher

logger = logging.getLogger(__name__)

_PROBLEM_ADAPTER: TypeAdapter = TypeAdapter(ProblemInfo)

_SCHEMA_DESCRIPTION = (
    "Return a JSON object with a 'type' field that is either "
    "'leetcode_problem' or 'technical_requirement'.\n"
    "For LeetCode/coding problems include: problem_statement, input_format "
    "(with description and parameters array), output_format (with description "
    "and type), constraints array, and test_cases array.\n"
    "For technical requirements include: project_title, requirements_list "
    "(array of strings), tech_stack (array of strings), and optional_features "
    "(array of strings)."
)


@dataclass
class ProblemExtractorConfig:
    """
    Token budgets for the extraction calls.

    Attributes:
        vision_max_tokens: Budget for the screenshot extraction call.
        analysis_max_tokens: Budget for summarizing a transcript.
        structure_max_tokens: Budget for turning the summary into JSON.
    """

    vision_max_tokens: int = 4096
    analysis_max_tokens: int = 1024
    structure_max_tokens: int = 1500


def parse_problem_info(raw: Dict[str, Any]) -> ProblemInfo:
    """
    Validate a decoded classification response into a typed ProblemInfo.

    Missing fields get typed defaults. A missing or unknown ``type`` is read
    as ``leetcode_problem``.
    """
    data = drop_nulls(raw)
    problem_type = data.get("type")
    if problem_type not in {t.value for t in ProblemType}:
        logger.warning(
            "Classification returned type %r; treating it as leetcode_problem",
            problem_type,
        )
        data["type"] = ProblemType.LEETCODE_PROBLEM.value

    try:
        return _PROBLEM_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ResponseValidationError(
            f"Classification response has an unexpected shape: {exc.error_count()} errors",
        ) from exc


class ProblemExtractor:
    """
    Turns raw evidence into a typed ProblemInfo.

    Responsibilities:
      - Build the vision request for screenshots, or the three-step
        transcribe / analyze / structure chain for audio.
      - Decode the model output without synthetic fallbacks; a classification
        that cannot be decoded is fatal to the run.
      - Publish the result before returning it.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        publisher: Optional[ResultPublisher] = None,
        config: Optional[ProblemExtractorConfig] = None,
    ) -> None:
        self._gateway = gateway
        self._publisher = publisher
        self._config = config or ProblemExtractorConfig()

    async def extract_from_screenshots(
        self,
        screenshots: Sequence[bytes],
        token: CancellationToken,
    ) -> ProblemInfo:
        system_prompt = (
            "You are an expert at analyzing programming tasks from screenshots. "
            "You can extract both structured LeetCode problems and general "
            "technical requirements. Identify the type of content in the "
            "screenshots and provide an appropriate structured response."
        )
        instruction = (
            "Analyze these screenshot(s) and determine if they contain a "
            "LeetCode/coding problem or general technical requirements (like "
            "building an app). " + _SCHEMA_DESCRIPTION
        )
        parts: List[ContentPart] = [TextPart(instruction)]
        parts.extend(ImagePart(image) for image in screenshots)

        logger.info("Extracting problem from %d screenshot(s)", len(screenshots))
        response = await token.guard(
            self._gateway.complete_vision(
                system_prompt, parts, max_tokens=self._config.vision_max_tokens
            )
        )
        problem = parse_problem_info(decode_object(response))
        self._publish(problem, token)
        return problem

    async def extract_from_audio(
        self,
        audio: bytes,
        token: CancellationToken,
    ) -> ProblemInfo:
        logger.info("Transcribing audio question (%d bytes)", len(audio))
        transcript = await token.guard(self._gateway.transcribe_audio(audio))
        logger.info("Transcript: %s", transcript)

        analysis = await token.guard(
            self._gateway.complete_text(
                system_prompt=(
                    "You are an expert at analyzing programming-related "
                    "questions. Determine whether the transcript contains a "
                    "coding problem or technical requirements for a project, "
                    "and summarize the key information."
                ),
                user_prompt=(
                    "Analyze this transcript from a technical interview and "
                    "determine what type of question it is. If it's a coding "
                    "problem, identify the problem statement, input/output "
                    "format, constraints, and any test cases mentioned. If it "
                    "describes something to build, list the requirements, tech "
                    "stack and optional features.\n\n"
                    f"Transcript: {transcript}"
                ),
                max_tokens=self._config.analysis_max_tokens,
            )
        )
        logger.debug("Transcript analysis: %s", analysis)

        structured = await token.guard(
            self._gateway.complete_text(
                system_prompt=(
                    "You are an expert at structuring programming questions for "
                    "solution generation. Based on the question analysis, extract "
                    "and format the question in a structured JSON format."
                ),
                user_prompt=(
                    f"{_SCHEMA_DESCRIPTION}\n\n"
                    f"Analysis: {analysis}\n\n"
                    f"Transcript: {transcript}"
                ),
                max_tokens=self._config.structure_max_tokens,
                json_mode=True,
            )
        )
        problem = parse_problem_info(decode_object(structured))
        self._publish(problem, token)
        return problem

    def _publish(self, problem: ProblemInfo, token: CancellationToken) -> None:
        if self._publisher is not None:
            self._publisher.publish_problem(problem, token)


def create_default_problem_extractor(
    gateway: Optional[CompletionGateway] = None,
    publisher: Optional[ResultPublisher] = None,
) -> ProblemExtractor:
    """Build a ProblemExtractor on the environment-configured gateway."""
    return ProblemExtractor(gateway=gateway or create_default_gateway(), publisher=publisher)
