from __future__ import annotations

import logging
from typing import Any, Optional

from collaborators.base import PresentationNotifier, ProcessingEvent
from core.cancellation import CancellationToken
from core.errors import RequestCancelled
from core.models import (
    LeetcodeRefinement,
    ProblemInfo,
    RefinedResult,
    RequirementsRefinement,
    Solution,
)
from core.state import AppState

logger = logging.getLogger(__name__)


class ResultPublisher:
    """
    Writes pipeline results into AppState and tells the presentation layer.

    Every write first checks that the run's token still owns its session, so
    a response that arrives after supersession or cancellation is dropped.
    """

    def __init__(self, state: AppState, notifier: PresentationNotifier) -> None:
        self.state = state
        self.notifier = notifier

    def notify(self, event: ProcessingEvent, payload: Optional[Any] = None) -> None:
        try:
            self.notifier.send(event, payload)
        except Exception as exc:
            logger.warning("Notifier failed to deliver %s: %s", event.value, exc)

    def ensure_current(self, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        if not self.state.sessions.is_current(token):
            raise RequestCancelled(
                f"{token.kind.value} request #{token.generation} was superseded"
            )

    def publish_problem(self, problem: ProblemInfo, token: CancellationToken) -> None:
        self.ensure_current(token)
        self.state.set_problem_info(problem)
        self.notify(ProcessingEvent.PROBLEM_EXTRACTED, problem.model_dump(mode="json"))

    def publish_solution(self, solution: Solution, token: CancellationToken) -> None:
        self.ensure_current(token)
        self.state.solution = solution

    def publish_refinement(self, result: RefinedResult, token: CancellationToken) -> None:
        self.ensure_current(token)
        self.state.refinement = result
        self.state.has_debugged = True
        if isinstance(result, LeetcodeRefinement):
            self.state.solution = result.as_solution()
        elif isinstance(result, RequirementsRefinement):
            self.state.set_problem_info(result.problem)
