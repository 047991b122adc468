from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from langgraph.graph import END, START, StateGraph

from agents.debugger import DebuggerAgent, create_default_debugger
from agents.gateway import CompletionGateway, create_default_gateway
from agents.problem_extractor import ProblemExtractor, create_default_problem_extractor
from agents.solution_generator import SolutionGenerator, create_default_solution_generator
from collaborators.base import EvidenceSource, PresentationNotifier, ProcessingEvent, Screenshot
from core.cancellation import CancellationToken, SessionKind
from core.errors import AuthError, NetworkError, PipelineError, PreconditionError
from core.models import PipelineResult, View
from core.publishing import ResultPublisher
from core.sessions import SessionOutcome
from core.state import AppState, PipelineState, StepLogEntry

logger = logging.getLogger(__name__)

PRIMARY_CANCELLED = "Processing was canceled by the user."
DEBUG_CANCELLED = "Extra processing was canceled by the user."
AUDIO_CANCELLED = "Audio processing was canceled by the user."
AUTH_REQUIRED = "Authentication required"

PipelineNode = Callable[[PipelineState], Awaitable[Dict[str, Any]]]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _log_step(
    state: PipelineState,
    step_name: str,
    started_at: datetime,
    input_summary: Optional[str] = None,
    output_summary: Optional[str] = None,
    error: Optional[str] = None,
) -> List[StepLogEntry]:
    """
    Return the execution log with a StepLogEntry for the given step appended.

    The caller is responsible for tracking the start time.
    """
    finished_at = _now_utc()
    duration_ms = max(
        0,
        int((finished_at - started_at).total_seconds() * 1000),
    )

    entry = StepLogEntry(
        step_name=step_name,
        started_at=started_at,
        finished_at=finished_at,
        duration_ms=duration_ms,
        input_summary=input_summary,
        output_summary=output_summary,
        error=error,
    )
    return [*state.execution_log, entry]


# ---------------------------------------------------------------------------
# Pipeline nodes (bound to the agents and to one run's token)
# ---------------------------------------------------------------------------


def make_extract_screenshots_node(
    extractor: ProblemExtractor,
    token: CancellationToken,
) -> PipelineNode:
    async def extract_screenshots(state: PipelineState) -> Dict[str, Any]:
        started_at = _now_utc()
        problem = await extractor.extract_from_screenshots(state.screenshots, token)
        return {
            "problem_info": problem,
            "execution_log": _log_step(
                state,
                "extract_screenshots",
                started_at,
                input_summary=f"{len(state.screenshots)} screenshot(s)",
                output_summary=problem.type,
            ),
        }

    return extract_screenshots


def make_extract_audio_node(
    extractor: ProblemExtractor,
    token: CancellationToken,
) -> PipelineNode:
    async def extract_audio(state: PipelineState) -> Dict[str, Any]:
        started_at = _now_utc()
        if state.audio is None:
            raise PreconditionError("No audio recorded")
        problem = await extractor.extract_from_audio(state.audio, token)
        return {
            "problem_info": problem,
            "execution_log": _log_step(
                state,
                "extract_audio",
                started_at,
                input_summary=f"{len(state.audio)} bytes of audio",
                output_summary=problem.type,
            ),
        }

    return extract_audio


def make_generate_solution_node(
    generator: SolutionGenerator,
    token: CancellationToken,
) -> PipelineNode:
    async def generate_solution(state: PipelineState) -> Dict[str, Any]:
        started_at = _now_utc()
        if state.problem_info is None:
            raise PreconditionError("No problem info available")
        solution = await generator.generate(state.problem_info, token)
        return {
            "solution": solution,
            "execution_log": _log_step(
                state,
                "generate_solution",
                started_at,
                input_summary=state.problem_info.type,
                output_summary=solution.type,
            ),
        }

    return generate_solution


def _route_evidence(state: PipelineState) -> str:
    """Recorded questions go through transcription; everything else is screenshots."""
    if state.audio is not None:
        return "extract_audio"
    return "extract_screenshots"


def build_pipeline_graph(
    extractor: ProblemExtractor,
    generator: SolutionGenerator,
    token: CancellationToken,
) -> StateGraph:
    """
    Build the LangGraph StateGraph for one primary run.

    Control flow:
      START -> extract_screenshots | extract_audio -> generate_solution -> END
    """
    graph: StateGraph = StateGraph(PipelineState)

    graph.add_node("extract_screenshots", make_extract_screenshots_node(extractor, token))
    graph.add_node("extract_audio", make_extract_audio_node(extractor, token))
    graph.add_node("generate_solution", make_generate_solution_node(generator, token))

    graph.add_conditional_edges(
        START,
        _route_evidence,
        {
            "extract_screenshots": "extract_screenshots",
            "extract_audio": "extract_audio",
        },
    )
    graph.add_edge("extract_screenshots", "generate_solution")
    graph.add_edge("extract_audio", "generate_solution")
    graph.add_edge("generate_solution", END)

    return graph


def _final_value(final_state: Any, key: str) -> Any:
    if isinstance(final_state, dict):
        return final_state.get(key)
    return getattr(final_state, key, None)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ProcessingOrchestrator:
    """
    Entry point for every processing request.

    Each run owns a session token for its kind. A new run supersedes the
    running one of the same kind, and results are only published while the
    token is still current. Failures are reported through the notifier and
    returned as a PipelineResult; they never escape to the caller.
    """

    def __init__(
        self,
        state: AppState,
        publisher: ResultPublisher,
        extractor: ProblemExtractor,
        generator: SolutionGenerator,
        debugger: DebuggerAgent,
    ) -> None:
        self.state = state
        self.publisher = publisher
        self.extractor = extractor
        self.generator = generator
        self.debugger = debugger

    # ------------------------------------------------------------------
    # Exposed operations
    # ------------------------------------------------------------------

    async def process_screenshots(self) -> PipelineResult:
        """Solve the queued problem, or debug it once a solution is showing."""
        if self.state.get_view() == View.QUEUE:
            return await self.run_primary_pipeline()
        return await self.run_debug_pipeline()

    async def run_primary_pipeline(self) -> PipelineResult:
        try:
            screenshots = self.state.evidence.get_queued_screenshots()
        except OSError as exc:
            logger.error("Could not read queued screenshots: %s", exc)
            self.publisher.notify(ProcessingEvent.SOLUTION_ERROR, str(exc))
            return PipelineResult.failure(str(exc))

        if not screenshots:
            logger.info("No screenshots to process")
            self.publisher.notify(ProcessingEvent.NO_SCREENSHOTS)
            return PipelineResult.failure("No screenshots to process")

        self.publisher.notify(ProcessingEvent.INITIAL_START)
        self.state.set_view(View.SOLUTIONS)

        async def work(token: CancellationToken) -> Any:
            return await self._solve(token, screenshots=_images(screenshots))

        return await self._execute(
            SessionKind.PRIMARY, ProcessingEvent.SOLUTION_ERROR, PRIMARY_CANCELLED, work
        )

    async def process_audio(self, path: str) -> PipelineResult:
        self.publisher.notify(ProcessingEvent.INITIAL_START)
        self.state.set_view(View.SOLUTIONS)
        logger.info("Processing audio file: %s", path)

        async def work(token: CancellationToken) -> Any:
            audio = self.state.evidence.get_audio_file(path)
            return await self._solve(token, audio=audio)

        return await self._execute(
            SessionKind.PRIMARY, ProcessingEvent.SOLUTION_ERROR, AUDIO_CANCELLED, work
        )

    async def run_debug_pipeline(self) -> PipelineResult:
        try:
            extra = self.state.evidence.get_extra_queued_screenshots()
            primary = self.state.evidence.get_queued_screenshots() if extra else []
        except OSError as exc:
            logger.error("Could not read queued screenshots: %s", exc)
            self.publisher.notify(ProcessingEvent.DEBUG_ERROR, str(exc))
            return PipelineResult.failure(str(exc))

        if not extra:
            logger.info("No extra screenshots to process")
            self.publisher.notify(ProcessingEvent.NO_SCREENSHOTS)
            return PipelineResult.failure("No extra screenshots to process")

        self.publisher.notify(ProcessingEvent.DEBUG_START)

        async def work(token: CancellationToken) -> Any:
            result = await self.debugger.refine(
                self.state.get_problem_info(),
                self.state.solution,
                _images(primary + extra),
                token,
            )
            payload = result.model_dump(mode="json")
            self.publisher.notify(ProcessingEvent.DEBUG_SUCCESS, payload)
            return payload

        return await self._execute(
            SessionKind.DEBUG, ProcessingEvent.DEBUG_ERROR, DEBUG_CANCELLED, work
        )

    def cancel_all(self) -> None:
        logger.info("Cancelling all running requests")
        self.state.sessions.cancel_all()

    def reset(self) -> None:
        """Cancel everything, drop queued evidence and results, show the queue."""
        self.cancel_all()
        self.state.clear_queues()
        self.publisher.notify(ProcessingEvent.RESET_VIEW)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _solve(
        self,
        token: CancellationToken,
        screenshots: Optional[List[bytes]] = None,
        audio: Optional[bytes] = None,
    ) -> Dict[str, Any]:
        graph = build_pipeline_graph(self.extractor, self.generator, token).compile()
        initial = PipelineState(
            request_id=f"{token.kind.value}-{token.generation}",
            screenshots=screenshots or [],
            audio=audio,
        )
        final_state = await graph.ainvoke(initial)

        solution = _final_value(final_state, "solution")
        if solution is None:
            raise PreconditionError("Pipeline finished without a solution")
        for entry in _final_value(final_state, "execution_log") or []:
            logger.debug("%s took %dms", entry.step_name, entry.duration_ms)

        self.publisher.publish_solution(solution, token)
        payload = solution.model_dump(mode="json")
        self.publisher.notify(ProcessingEvent.SOLUTION_SUCCESS, payload)
        return payload

    async def _execute(
        self,
        kind: SessionKind,
        error_event: ProcessingEvent,
        cancelled_message: str,
        work: Callable[[CancellationToken], Awaitable[Any]],
    ) -> PipelineResult:
        token = self.state.sessions.begin(kind)
        logger.info("Started %s run #%d", kind.value, token.generation)
        outcome = SessionOutcome.FAILED
        try:
            data = await work(token)
            outcome = SessionOutcome.COMPLETED
            logger.info("Finished %s run #%d", kind.value, token.generation)
            return PipelineResult.ok(data)
        except Exception as exc:
            result = self._handle_failure(exc, token, error_event, cancelled_message)
            if result.cancelled:
                outcome = SessionOutcome.CANCELLED
            return result
        finally:
            self.state.sessions.finish(token, outcome)

    def _handle_failure(
        self,
        exc: Exception,
        token: CancellationToken,
        error_event: ProcessingEvent,
        cancelled_message: str,
    ) -> PipelineResult:
        if isinstance(exc, AuthError):
            logger.warning("Authentication failed during %s run: %s", token.kind.value, exc)
            self._reset_after_auth()
            return PipelineResult.failure(AUTH_REQUIRED)

        if isinstance(exc, NetworkError) and exc.cancelled:
            logger.warning("%s run #%d cancelled: %s", token.kind.value, token.generation, exc)
            self.publisher.notify(error_event, cancelled_message)
            return PipelineResult.failure(cancelled_message, cancelled=True)

        if isinstance(exc, (PipelineError, FileNotFoundError)):
            logger.error("%s run #%d failed: %s", token.kind.value, token.generation, exc)
        else:
            logger.exception("%s run #%d failed", token.kind.value, token.generation)
        self.publisher.notify(error_event, str(exc))
        return PipelineResult.failure(str(exc))

    def _reset_after_auth(self) -> None:
        self.state.sessions.cancel_all()
        self.state.clear_queues()
        self.publisher.notify(ProcessingEvent.RESET_VIEW)
        self.publisher.notify(ProcessingEvent.UNAUTHORIZED, AUTH_REQUIRED)


def _images(screenshots: List[Screenshot]) -> List[bytes]:
    return [screenshot.image for screenshot in screenshots]


def create_default_orchestrator(
    evidence: EvidenceSource,
    notifier: PresentationNotifier,
    gateway: Optional[CompletionGateway] = None,
) -> ProcessingOrchestrator:
    """
    Wire an orchestrator with the environment-configured gateway.

    Callers (the API, tests) supply the collaborators; one gateway instance
    is shared by every agent.
    """
    state = AppState(evidence)
    publisher = ResultPublisher(state, notifier)
    gateway = gateway or create_default_gateway()
    return ProcessingOrchestrator(
        state=state,
        publisher=publisher,
        extractor=create_default_problem_extractor(gateway, publisher),
        generator=create_default_solution_generator(gateway),
        debugger=create_default_debugger(gateway, publisher),
    )
