from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError, field_validator

from agents.gateway import CompletionGateway, create_default_gateway
from core.cancellation import CancellationToken
from core.errors import DecodeError
from core.json_recovery import decode_object, drop_nulls
from core.models import (
    AlternativeSolution,
    Complexity,
    FileEntry,
    ImplementationStep,
    KeyFeature,
    LeetcodeProblem,
    LeetcodeSolution,
    NO_EXPLANATION,
    NO_JAVASCRIPT,
    NO_PYTHON,
    ProblemInfo,
    ProjectPlan,
    Solution,
    TechnicalRequirement,
    TechnicalSolution,
    TechStackByCategory,
)

logger = logging.getLogger(__name__)

RAW_EXCERPT_CHARS = 500


@dataclass
class SolutionGeneratorConfig:
    """
    Configuration for the SolutionGenerator.

    Attributes:
        max_tokens: Budget for the single solution call.
        default_language: Language whose code fills ``Solution.code``.
    """

    max_tokens: int = 4096
    default_language: str = "python"


# Lenient views of the raw model output. Every field is optional so that a
# partially filled response still yields a solution; typed defaults are
# applied when converting to the public models.

class _CodePayload(BaseModel):
    javascript: Optional[str] = None
    python: Optional[str] = None


class _ComplexityPayload(BaseModel):
    time: Optional[str] = None
    space: Optional[str] = None


class _ApproachPayload(BaseModel):
    explanation: Optional[str] = None
    complexity: Optional[_ComplexityPayload] = None
    code: Optional[_CodePayload] = None


class _LeetcodeResponse(BaseModel):
    solution: Optional[_ApproachPayload] = None
    alternative_solutions: List[_ApproachPayload] = []


def _wrap_strings(value: Any, key: str) -> Any:
    # ["Set up repo", ...] -> [{"step": "Set up repo"}, ...]
    if isinstance(value, list):
        return [{key: item} if isinstance(item, str) else item for item in value]
    return value


class _TechnicalResponse(BaseModel):
    project_plan: Optional[ProjectPlan] = None
    implementation_steps: List[ImplementationStep] = []
    file_structure: List[FileEntry] = []
    key_features: List[KeyFeature] = []

    @field_validator("implementation_steps", mode="before")
    @classmethod
    def _steps(cls, value: Any) -> Any:
        return _wrap_strings(value, "step")

    @field_validator("file_structure", mode="before")
    @classmethod
    def _files(cls, value: Any) -> Any:
        return _wrap_strings(value, "path")

    @field_validator("key_features", mode="before")
    @classmethod
    def _features(cls, value: Any) -> Any:
        return _wrap_strings(value, "feature")


class SolutionGenerator:
    """
    LLM-backed solution generation.

    Responsibilities:
      - Request a solution shaped for the problem type.
      - Never fail a run because the response could not be parsed: a
        documented fallback solution is returned instead, visibly marked.
      - Let gateway errors (auth, network, cancellation) propagate.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        config: Optional[SolutionGeneratorConfig] = None,
    ) -> None:
        self._gateway = gateway
        self._config = config or SolutionGeneratorConfig()

    async def generate(self, problem: ProblemInfo, token: CancellationToken) -> Solution:
        if isinstance(problem, TechnicalRequirement):
            return await self._generate_technical(problem, token)
        return await self._generate_leetcode(problem, token)

    # ------------------------------------------------------------------
    # leetcode_problem
    # ------------------------------------------------------------------

    async def _generate_leetcode(
        self,
        problem: LeetcodeProblem,
        token: CancellationToken,
    ) -> LeetcodeSolution:
        system_prompt = (
            "You are a coding expert tasked with generating optimal solutions "
            "for programming problems.\n"
            "Analyze the provided problem carefully and provide the best "
            "solution, with a detailed explanation, time and space complexity "
            "analysis, and elegant code in BOTH JavaScript and Python.\n\n"
            "Format your response as a valid JSON object with this structure:\n"
            "{\n"
            '  "solution": {\n'
            '    "explanation": "Detailed explanation of your approach",\n'
            '    "complexity": {"time": "O(...)", "space": "O(...)"},\n'
            '    "code": {\n'
            '      "javascript": "// JavaScript code with proper line breaks",\n'
            '      "python": "# Python code with proper line breaks"\n'
            "    }\n"
            "  },\n"
            '  "alternative_solutions": [\n'
            "    {\n"
            '      "explanation": "Alternative approach explanation",\n'
            '      "complexity": {"time": "O(...)", "space": "O(...)"},\n'
            '      "code": {"javascript": "...", "python": "..."}\n'
            "    }\n"
            "  ]\n"
            "}\n\n"
            "Ensure your code has proper formatting, indentation, and line "
            "breaks. Do not include any text outside the JSON. The entire "
            "response must be valid JSON."
        )
        user_prompt = (
            "Here's the problem:\n\n"
            f"{json.dumps(problem.model_dump(mode='json'), ensure_ascii=False)}\n\n"
            "Generate an optimal solution with a detailed explanation, and "
            "provide the full code implementation in BOTH JavaScript and Python."
        )

        raw = await token.guard(
            self._gateway.complete_text(
                system_prompt,
                user_prompt,
                max_tokens=self._config.max_tokens,
                json_mode=True,
            )
        )

        try:
            payload = _LeetcodeResponse.model_validate(drop_nulls(decode_object(raw)))
        except (DecodeError, ValidationError) as exc:
            logger.warning("Could not parse leetcode solution, using fallback: %s", exc)
            return self._fallback_leetcode(raw)

        return self._to_leetcode_solution(payload)

    def _to_leetcode_solution(self, payload: _LeetcodeResponse) -> LeetcodeSolution:
        primary = payload.solution or _ApproachPayload()
        code = primary.code or _CodePayload()
        complexity = primary.complexity or _ComplexityPayload()

        code_map = {
            "javascript": code.javascript or NO_JAVASCRIPT,
            "python": code.python or NO_PYTHON,
        }
        explanation = primary.explanation or NO_EXPLANATION

        alternatives: List[AlternativeSolution] = []
        for alt in payload.alternative_solutions:
            alt_code = alt.code or _CodePayload()
            alt_complexity = alt.complexity or _ComplexityPayload()
            alternatives.append(
                AlternativeSolution(
                    explanation=alt.explanation or "",
                    complexity=Complexity(
                        time=alt_complexity.time or "O(n)",
                        space=alt_complexity.space or "O(n)",
                    ),
                    code={
                        "javascript": alt_code.javascript or NO_JAVASCRIPT,
                        "python": alt_code.python or NO_PYTHON,
                    },
                )
            )

        return LeetcodeSolution(
            code=code_map.get(self._config.default_language, code_map["python"]),
            code_map=code_map,
            explanation=explanation,
            thoughts=[explanation]
            + [f"Alternative: {alt.explanation}" for alt in alternatives],
            time_complexity=complexity.time or "O(n)",
            space_complexity=complexity.space or "O(n)",
            alternative_solutions=alternatives,
        )

    def _fallback_leetcode(self, raw: str) -> LeetcodeSolution:
        """
        Placeholder shown when the model's answer could not be parsed.

        The code is a known-good median-of-two-sorted-arrays solution so the
        session stays usable; the thoughts carry the raw output so the user
        can still read what the model said.
        """
        python_code = (
            "# Solution could not be parsed from AI response\n"
            "def findMedianSortedArrays(nums1, nums2):\n"
            "    merged = sorted(nums1 + nums2)\n"
            "    mid = len(merged) // 2\n"
            "    if len(merged) % 2 == 0:\n"
            "        return (merged[mid - 1] + merged[mid]) / 2\n"
            "    else:\n"
            "        return merged[mid]"
        )
        javascript_code = (
            "// Solution could not be parsed from AI response\n"
            "function findMedianSortedArrays(nums1, nums2) {\n"
            "  const merged = [...nums1, ...nums2].sort((a, b) => a - b);\n"
            "  const mid = Math.floor(merged.length / 2);\n"
            "  return merged.length % 2 === 0\n"
            "    ? (merged[mid - 1] + merged[mid]) / 2\n"
            "    : merged[mid];\n"
            "}"
        )
        code_map = {"javascript": javascript_code, "python": python_code}
        notice = (
            "The solution could not be parsed from the AI response. "
            "Here is the beginning of what the model returned:"
        )
        return LeetcodeSolution(
            code=code_map.get(self._config.default_language, python_code),
            code_map=code_map,
            explanation=notice,
            thoughts=[notice, (raw or "")[:RAW_EXCERPT_CHARS] + "..."],
            time_complexity="O(n log n)",
            space_complexity="O(n)",
        )

    # ------------------------------------------------------------------
    # technical_requirement
    # ------------------------------------------------------------------

    async def _generate_technical(
        self,
        problem: TechnicalRequirement,
        token: CancellationToken,
    ) -> TechnicalSolution:
        system_prompt = (
            "You are a full-stack development expert who creates detailed "
            "implementation plans and code examples.\n"
            "You analyze technical requirements and provide structured "
            "solutions with file structures, code snippets, and implementation "
            "steps.\n\n"
            "Format your response as a valid JSON object with this structure:\n"
            "{\n"
            '  "project_plan": {\n'
            '    "overview": "Brief project description",\n'
            '    "architecture": "Description of the architecture",\n'
            '    "tech_stack": {\n'
            '      "frontend": ["..."], "backend": ["..."],\n'
            '      "database": ["..."], "deployment": ["..."]\n'
            "    }\n"
            "  },\n"
            '  "implementation_steps": [{"step": "...", "details": "..."}],\n'
            '  "file_structure": [\n'
            '    {"path": "path/to/file", "purpose": "...", "code_sample": "..."}\n'
            "  ],\n"
            '  "key_features": [{"feature": "...", "implementation": "..."}]\n'
            "}\n\n"
            "Make the plan comprehensive enough to guide implementation of the "
            "entire project. Do not include any text outside the JSON. The "
            "entire response must be valid JSON."
        )
        user_prompt = (
            "Here are the technical requirements:\n\n"
            f"Project Title: {problem.project_title}\n\n"
            f"Requirements: {json.dumps(problem.requirements_list, indent=2)}\n\n"
            f"Tech Stack Preferences: {json.dumps(problem.tech_stack, indent=2)}\n\n"
            f"Optional Features: {json.dumps(problem.optional_features, indent=2)}\n\n"
            "Please provide a complete implementation plan with detailed steps, "
            "file structure, and code examples."
        )

        raw = await token.guard(
            self._gateway.complete_text(
                system_prompt,
                user_prompt,
                max_tokens=self._config.max_tokens,
                json_mode=True,
            )
        )

        try:
            payload = _TechnicalResponse.model_validate(drop_nulls(decode_object(raw)))
        except (DecodeError, ValidationError) as exc:
            logger.warning("Could not parse technical plan, using fallback: %s", exc)
            return self._fallback_technical()

        return TechnicalSolution(
            project_plan=payload.project_plan or ProjectPlan(),
            implementation_steps=payload.implementation_steps,
            file_structure=payload.file_structure,
            key_features=payload.key_features,
        )

    def _fallback_technical(self) -> TechnicalSolution:
        """Minimal two-tier web app plan used when the plan could not be parsed."""
        return TechnicalSolution(
            project_plan=ProjectPlan(
                overview="Could not parse project plan from AI response",
                architecture="Basic React frontend with Node.js backend",
                tech_stack=TechStackByCategory(
                    frontend=["React", "CSS"],
                    backend=["Node.js", "Express"],
                    database=["MongoDB"],
                    deployment=["Vercel", "Heroku"],
                ),
            ),
            implementation_steps=[
                ImplementationStep(
                    step="Set up project structure",
                    details="Initialize frontend and backend repositories",
                ),
                ImplementationStep(
                    step="Implement core features",
                    details="Build the main functionality required",
                ),
                ImplementationStep(
                    step="Add styling and finalize UI",
                    details="Complete the user interface design",
                ),
            ],
            file_structure=[
                FileEntry(
                    path="src/App.js",
                    purpose="Main application component",
                    code_sample=(
                        "import React from 'react';\n\n"
                        "function App() {\n"
                        "  return <div>Sample App</div>;\n"
                        "}\n\n"
                        "export default App;"
                    ),
                )
            ],
            key_features=[
                KeyFeature(feature="Sample Feature", implementation="Implementation details")
            ],
        )


def create_default_solution_generator(
    gateway: Optional[CompletionGateway] = None,
) -> SolutionGenerator:
    """
    Convenience factory that builds a SolutionGenerator using environment
    variables for configuration.

    Environment variables:
      - SCREENSOLVE_SOLUTION_LANGUAGE: language shown in ``Solution.code``.
    """
    language = os.getenv("SCREENSOLVE_SOLUTION_LANGUAGE", SolutionGeneratorConfig.default_language)
    config = SolutionGeneratorConfig(default_language=language)
    return SolutionGenerator(gateway=gateway or create_default_gateway(), config=config)
