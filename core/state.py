from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from collaborators.base import EvidenceSource
from core.models import ProblemInfo, RefinedResult, Solution, View
from core.sessions import SessionManager

logger = logging.getLogger(__name__)


class StepLogEntry(BaseModel):
    step_name: str
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    input_summary: Optional[str] = None
    output_summary: Optional[str] = None
    error: Optional[str] = None


class PipelineState(BaseModel):
    """State threaded through the primary pipeline graph for one run."""

    request_id: str
    screenshots: List[bytes] = Field(default_factory=list)
    audio: Optional[bytes] = None

    problem_info: Optional[ProblemInfo] = None
    solution: Optional[Solution] = None

    execution_log: List[StepLogEntry] = Field(default_factory=list)


class AppState:
    """
    Shared application state for one interactive session.

    Owns the view, the published problem/solution slots and the per-kind
    sessions. Passed by reference to everything that reads or publishes.
    """

    def __init__(self, evidence: EvidenceSource) -> None:
        self.evidence = evidence
        self.sessions = SessionManager()
        self.view: View = View.QUEUE
        self.problem_info: Optional[ProblemInfo] = None
        self.solution: Optional[Solution] = None
        self.refinement: Optional[RefinedResult] = None
        self.has_debugged: bool = False

    def get_view(self) -> View:
        return self.view

    def set_view(self, view: View) -> None:
        if view != self.view:
            logger.debug("View %s -> %s", self.view.value, view.value)
        self.view = view

    def get_problem_info(self) -> Optional[ProblemInfo]:
        return self.problem_info

    def set_problem_info(self, problem_info: Optional[ProblemInfo]) -> None:
        self.problem_info = problem_info

    def clear_queues(self) -> None:
        """Drop queued evidence and every published result; back to the initial view."""
        self.evidence.clear_queues()
        self.problem_info = None
        self.solution = None
        self.refinement = None
        self.has_debugged = False
        self.set_view(View.QUEUE)
