# core/models.py

import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


NO_JAVASCRIPT = "// No JavaScript solution available"
NO_PYTHON = "# No Python solution available"
NO_EXPLANATION = "No explanation available"


# --------------------
# Enums
# --------------------

class ProblemType(str, Enum):
    LEETCODE_PROBLEM = "leetcode_problem"
    TECHNICAL_REQUIREMENT = "technical_requirement"


class View(str, Enum):
    QUEUE = "queue"
    SOLUTIONS = "solutions"


# --------------------
# Helpers
# --------------------

def _as_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, (dict, list)):
        return json.dumps(item, ensure_ascii=False)
    return str(item)


def as_text_list(value: Any) -> List[str]:
    """Coerce loosely shaped model output into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        # {"frontend": ["React"], "backend": "Flask"} -> ["React", "Flask"]
        flattened: List[str] = []
        for entry in value.values():
            flattened.extend(as_text_list(entry))
        return flattened
    if isinstance(value, (list, tuple, set)):
        return [_as_text(item) for item in value if item is not None]
    return [_as_text(value)]


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


# --------------------
# Problem info
# --------------------

class InputFormat(BaseModel):
    description: str = "Input parameters"
    parameters: List[Any] = []

    @field_validator("parameters", mode="before")
    @classmethod
    def _parameters_list(cls, value: Any) -> List[Any]:
        return as_list(value)


class OutputFormat(BaseModel):
    description: str = "Output value"
    type: str = "any"
    subtype: Optional[str] = None


class LeetcodeProblem(BaseModel):
    type: Literal["leetcode_problem"] = "leetcode_problem"
    problem_statement: str = ""
    input_format: InputFormat = Field(default_factory=InputFormat)
    output_format: OutputFormat = Field(default_factory=OutputFormat)
    constraints: List[Any] = []
    test_cases: List[Any] = []

    @field_validator("constraints", "test_cases", mode="before")
    @classmethod
    def _sequence(cls, value: Any) -> List[Any]:
        return as_list(value)


class TechnicalRequirement(BaseModel):
    type: Literal["technical_requirement"] = "technical_requirement"
    project_title: str = "Technical Project"
    requirements_list: List[str] = []
    tech_stack: List[str] = []
    optional_features: List[str] = []
    ui_ux_considerations: List[str] = []
    additional_specifications: List[str] = []

    @field_validator(
        "requirements_list",
        "optional_features",
        "ui_ux_considerations",
        "additional_specifications",
        mode="before",
    )
    @classmethod
    def _text_sequence(cls, value: Any) -> List[str]:
        return as_text_list(value)

    @field_validator("tech_stack", mode="before")
    @classmethod
    def _unique_stack(cls, value: Any) -> List[str]:
        # Set semantics, first occurrence wins.
        return list(dict.fromkeys(as_text_list(value)))


ProblemInfo = Annotated[
    Union[LeetcodeProblem, TechnicalRequirement],
    Field(discriminator="type"),
]


# --------------------
# Solutions
# --------------------

class Complexity(BaseModel):
    time: str = "O(n)"
    space: str = "O(n)"


class AlternativeSolution(BaseModel):
    explanation: str = ""
    complexity: Complexity = Field(default_factory=Complexity)
    code: Dict[str, str] = {}


class LeetcodeSolution(BaseModel):
    type: Literal["leetcode_problem"] = "leetcode_problem"
    code: str
    code_map: Dict[str, str]
    explanation: str
    thoughts: List[str]
    time_complexity: str
    space_complexity: str
    alternative_solutions: List[AlternativeSolution] = []


class TechStackByCategory(BaseModel):
    frontend: List[str] = []
    backend: List[str] = []
    database: List[str] = []
    deployment: List[str] = []

    @field_validator("frontend", "backend", "database", "deployment", mode="before")
    @classmethod
    def _category(cls, value: Any) -> List[str]:
        return as_text_list(value)


class ProjectPlan(BaseModel):
    overview: str = "Project overview not available"
    architecture: str = "Architecture details not available"
    tech_stack: TechStackByCategory = Field(default_factory=TechStackByCategory)


class ImplementationStep(BaseModel):
    step: str = ""
    details: str = ""


class FileEntry(BaseModel):
    path: str = ""
    purpose: str = ""
    code_sample: str = ""


class KeyFeature(BaseModel):
    feature: str = ""
    implementation: str = ""


class TechnicalSolution(BaseModel):
    type: Literal["technical_requirement"] = "technical_requirement"
    project_plan: ProjectPlan = Field(default_factory=ProjectPlan)
    implementation_steps: List[ImplementationStep] = []
    file_structure: List[FileEntry] = []
    key_features: List[KeyFeature] = []


Solution = Annotated[
    Union[LeetcodeSolution, TechnicalSolution],
    Field(discriminator="type"),
]


# --------------------
# Debug refinements
# --------------------

class ImprovedSolution(BaseModel):
    explanation: str = ""
    complexity: Complexity = Field(default_factory=Complexity)
    code: Dict[str, str] = {}


class LeetcodeRefinement(BaseModel):
    type: Literal["leetcode_problem"] = "leetcode_problem"
    debug_analysis: str
    improved_solution: ImprovedSolution

    def as_solution(self) -> LeetcodeSolution:
        """Express the improved solution in the shape the Solution slot holds."""
        improved = self.improved_solution
        return LeetcodeSolution(
            code=improved.code.get("python") or NO_PYTHON,
            code_map={
                "javascript": improved.code.get("javascript") or NO_JAVASCRIPT,
                "python": improved.code.get("python") or NO_PYTHON,
            },
            explanation=improved.explanation or NO_EXPLANATION,
            thoughts=[self.debug_analysis, improved.explanation or NO_EXPLANATION],
            time_complexity=improved.complexity.time,
            space_complexity=improved.complexity.space,
        )


class RequirementsRefinement(BaseModel):
    type: Literal["technical_requirement"] = "technical_requirement"
    problem: TechnicalRequirement
    enhanced_requirements: List[str] = []
    ui_ux_considerations: List[str] = []
    additional_specifications: List[str] = []


RefinedResult = Annotated[
    Union[LeetcodeRefinement, RequirementsRefinement],
    Field(discriminator="type"),
]


# --------------------
# Pipeline results
# --------------------

class PipelineResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    cancelled: bool = False

    @classmethod
    def ok(cls, data: Any) -> "PipelineResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, cancelled: bool = False) -> "PipelineResult":
        return cls(success=False, error=error, cancelled=cancelled)
