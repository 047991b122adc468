from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ValidationError, field_validator

from agents.gateway import (
    CompletionGateway,
    ContentPart,
    ImagePart,
    TextPart,
    create_default_gateway,
)
from core.cancellation import CancellationToken
from core.errors import DecodeError, PreconditionError
from core.json_recovery import decode_object, drop_nulls, extract_field_hints
from core.models import (
    Complexity,
    ImprovedSolution,
    LeetcodeProblem,
    LeetcodeRefinement,
    LeetcodeSolution,
    NO_EXPLANATION,
    NO_JAVASCRIPT,
    NO_PYTHON,
    ProblemInfo,
    RefinedResult,
    RequirementsRefinement,
    Solution,
    TechnicalRequirement,
    as_text_list,
)
from core.publishing import ResultPublisher

logger = logging.getLogger(__name__)


@dataclass
class DebuggerConfig:
    """
    Configuration for the DebuggerAgent.

    Attributes:
        max_tokens: Budget for the single vision call.
    """

    max_tokens: int = 4096


class _DebugPayload(BaseModel):
    debug_analysis: Optional[str] = None
    improved_solution: Optional[ImprovedSolution] = None


class _EnhancementPayload(BaseModel):
    enhanced_requirements: List[str] = []
    ui_ux_considerations: List[str] = []
    additional_specifications: List[str] = []

    @field_validator(
        "enhanced_requirements",
        "ui_ux_considerations",
        "additional_specifications",
        mode="before",
    )
    @classmethod
    def _text_sequence(cls, value: Any) -> List[str]:
        return as_text_list(value)


def _synthesize_debug(text: str) -> Dict[str, Any]:
    """Minimal debug payload rebuilt from fragments of non-JSON output."""
    hints = extract_field_hints(text)
    return {
        "debug_analysis": hints.explanation,
        "improved_solution": {
            "explanation": "Improved solution based on debug information",
            "complexity": {"time": "O(n)", "space": "O(n)"},
            "code": {"javascript": hints.javascript, "python": hints.python},
        },
    }


class DebuggerAgent:
    """
    LLM-assisted refinement of an existing answer.

    Responsibilities:
      - Combine the published problem (and solution, when there is one) with
        new screenshots showing errors, failed tests or extra requirements.
      - Return an improved solution for coding problems, or an enriched
        requirement set for technical projects.
      - Publish the refinement before returning it.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        publisher: Optional[ResultPublisher] = None,
        config: Optional[DebuggerConfig] = None,
    ) -> None:
        self._gateway = gateway
        self._publisher = publisher
        self._config = config or DebuggerConfig()

    async def refine(
        self,
        problem: Optional[ProblemInfo],
        prior_solution: Optional[Solution],
        screenshots: Sequence[bytes],
        token: CancellationToken,
    ) -> RefinedResult:
        """
        Produce a RefinedResult from new evidence.

        Raises:
            PreconditionError: if no problem has been extracted yet.
            DecodeError: if a technical enhancement response cannot be decoded.
        """
        if problem is None:
            raise PreconditionError("No problem info available")

        if isinstance(problem, TechnicalRequirement):
            result: RefinedResult = await self._enhance_requirements(problem, screenshots, token)
        else:
            result = await self._debug_leetcode(problem, prior_solution, screenshots, token)

        if self._publisher is not None:
            self._publisher.publish_refinement(result, token)
        return result

    async def _ask(
        self,
        system_prompt: str,
        instruction: str,
        screenshots: Sequence[bytes],
        token: CancellationToken,
    ) -> str:
        parts: List[ContentPart] = [TextPart(instruction)]
        parts.extend(ImagePart(image) for image in screenshots)
        logger.info("Sending %d screenshot(s) for refinement", len(screenshots))
        return await token.guard(
            self._gateway.complete_vision(
                system_prompt, parts, max_tokens=self._config.max_tokens
            )
        )

    # ------------------------------------------------------------------
    # leetcode_problem
    # ------------------------------------------------------------------

    async def _debug_leetcode(
        self,
        problem: LeetcodeProblem,
        prior_solution: Optional[Solution],
        screenshots: Sequence[bytes],
        token: CancellationToken,
    ) -> LeetcodeRefinement:
        system_prompt = (
            "You are an expert at debugging code and improving solutions for "
            "LeetCode problems. Analyze the screenshots which may contain error "
            "messages, failed test cases, or additional information about the "
            "problem."
        )
        sections = [
            "The user is working on this LeetCode problem:",
            f"Problem Statement:\n{problem.problem_statement}",
            f"Test Cases:\n{json.dumps(problem.test_cases, indent=2, ensure_ascii=False)}",
        ]
        if isinstance(prior_solution, LeetcodeSolution):
            prior_code = prior_solution.code_map.get("python") or prior_solution.code
            sections.append(f"Current Python solution:\n{prior_code}")
        sections.append(
            "They've taken additional screenshots that may show error messages, "
            "failed test cases, or additional considerations. Analyze these "
            "screenshots and provide debugging advice and an improved solution.\n\n"
            "Return your response in JSON format with:\n"
            '1. A "debug_analysis" explaining any issues found\n'
            '2. An "improved_solution" with "explanation", "complexity" '
            '({"time", "space"}) and "code" for both "javascript" and "python"'
        )

        raw = await self._ask(system_prompt, "\n\n".join(sections), screenshots, token)
        data = drop_nulls(decode_object(raw, synthesize=_synthesize_debug))
        try:
            payload = _DebugPayload.model_validate(data)
        except ValidationError as exc:
            logger.warning("Debug response has an unexpected shape, using hints: %s", exc)
            payload = _DebugPayload.model_validate(_synthesize_debug(raw))

        improved = payload.improved_solution or ImprovedSolution()
        prior_code = (
            prior_solution.code_map if isinstance(prior_solution, LeetcodeSolution) else {}
        )
        return LeetcodeRefinement(
            debug_analysis=payload.debug_analysis or "Analysis of debug information",
            improved_solution=ImprovedSolution(
                explanation=improved.explanation or NO_EXPLANATION,
                complexity=Complexity(
                    time=improved.complexity.time or "O(n)",
                    space=improved.complexity.space or "O(n)",
                ),
                code={
                    "javascript": improved.code.get("javascript")
                    or prior_code.get("javascript")
                    or NO_JAVASCRIPT,
                    "python": improved.code.get("python")
                    or prior_code.get("python")
                    or NO_PYTHON,
                },
            ),
        )

    # ------------------------------------------------------------------
    # technical_requirement
    # ------------------------------------------------------------------

    async def _enhance_requirements(
        self,
        problem: TechnicalRequirement,
        screenshots: Sequence[bytes],
        token: CancellationToken,
    ) -> RequirementsRefinement:
        system_prompt = (
            "You are an expert at analyzing technical requirements and enhancing "
            "project plans. Review these additional screenshots which may contain "
            "more project details, specifications, or UI/UX requirements."
        )
        instruction = (
            "The user is building this technical project:\n\n"
            f"Project Title: {problem.project_title}\n\n"
            "Current Requirements: "
            f"{json.dumps(problem.requirements_list, indent=2, ensure_ascii=False)}\n\n"
            "They've taken additional screenshots that may show more specific "
            "details, mockups, or additional requirements. Analyze these "
            "screenshots and provide enhanced project guidance.\n\n"
            "Return your response in JSON format with:\n"
            '1. An "enhanced_requirements" list with any new requirements discovered\n'
            '2. Any "ui_ux_considerations" found in the screenshots\n'
            '3. "additional_specifications" that should be considered'
        )

        raw = await self._ask(system_prompt, instruction, screenshots, token)
        try:
            payload = _EnhancementPayload.model_validate(drop_nulls(decode_object(raw)))
        except (DecodeError, ValidationError) as exc:
            logger.warning("Could not parse technical details: %s", exc)
            raise DecodeError(
                "Failed to process additional project details", raw_text=raw
            ) from exc

        enriched = problem.model_copy(
            update={
                "requirements_list": problem.requirements_list + payload.enhanced_requirements,
                "ui_ux_considerations": payload.ui_ux_considerations,
                "additional_specifications": payload.additional_specifications,
            }
        )
        return RequirementsRefinement(
            problem=enriched,
            enhanced_requirements=payload.enhanced_requirements,
            ui_ux_considerations=payload.ui_ux_considerations,
            additional_specifications=payload.additional_specifications,
        )


def create_default_debugger(
    gateway: Optional[CompletionGateway] = None,
    publisher: Optional[ResultPublisher] = None,
) -> DebuggerAgent:
    """
    Convenience factory that builds a DebuggerAgent using environment variables
    for configuration.

    Environment variables:
      - SCREENSOLVE_DEBUG_MAX_TOKENS: override the vision call budget.
    """
    max_tokens = int(os.getenv("SCREENSOLVE_DEBUG_MAX_TOKENS", DebuggerConfig.max_tokens))
    config = DebuggerConfig(max_tokens=max_tokens)
    return DebuggerAgent(
        gateway=gateway or create_default_gateway(),
        publisher=publisher,
        config=config,
    )
