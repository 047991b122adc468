import asyncio

import pytest

from collaborators.base import ProcessingEvent
from collaborators.local import RecordingNotifier
from core.cancellation import CancellationToken, SessionKind
from core.errors import NetworkError, RequestCancelled
from core.models import LeetcodeProblem, LeetcodeRefinement, ImprovedSolution, View
from core.publishing import ResultPublisher
from core.sessions import SessionManager, SessionOutcome, SessionStatus
from core.state import AppState

from conftest import StaticEvidenceSource


async def _value_after(delay: float, value):
    await asyncio.sleep(delay)
    return value


@pytest.mark.asyncio
async def test_guard_returns_result_of_live_token():
    token = CancellationToken(SessionKind.PRIMARY, 1)
    assert await token.guard(_value_after(0, "done")) == "done"


@pytest.mark.asyncio
async def test_guard_raises_when_token_fires_mid_request():
    token = CancellationToken(SessionKind.PRIMARY, 1)
    task = asyncio.ensure_future(token.guard(asyncio.Event().wait()))
    await asyncio.sleep(0)
    token.cancel()

    with pytest.raises(RequestCancelled) as exc_info:
        await task
    assert exc_info.value.cancelled is True
    assert isinstance(exc_info.value, NetworkError)


@pytest.mark.asyncio
async def test_guard_refuses_to_start_on_cancelled_token():
    token = CancellationToken(SessionKind.DEBUG, 3)
    token.cancel()
    request = _value_after(0, "never")
    with pytest.raises(RequestCancelled):
        await token.guard(request)
    request.close()


@pytest.mark.asyncio
async def test_guard_propagates_request_errors():
    token = CancellationToken(SessionKind.PRIMARY, 1)

    async def failing():
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await token.guard(failing())


def test_begin_supersedes_running_session():
    sessions = SessionManager()
    first = sessions.begin(SessionKind.PRIMARY)
    second = sessions.begin(SessionKind.PRIMARY)

    assert first.cancelled
    assert not second.cancelled
    assert second.generation == first.generation + 1
    assert not sessions.is_current(first)
    assert sessions.is_current(second)


def test_kinds_are_independent():
    sessions = SessionManager()
    primary = sessions.begin(SessionKind.PRIMARY)
    debug = sessions.begin(SessionKind.DEBUG)

    assert sessions.is_current(primary)
    assert sessions.is_current(debug)
    sessions.cancel(SessionKind.DEBUG)
    assert sessions.is_current(primary)
    assert debug.cancelled


def test_late_finish_never_clears_newer_session():
    sessions = SessionManager()
    stale = sessions.begin(SessionKind.PRIMARY)
    fresh = sessions.begin(SessionKind.PRIMARY)

    assert sessions.finish(stale, SessionOutcome.CANCELLED) is False
    assert sessions.session(SessionKind.PRIMARY).token is fresh
    assert sessions.session(SessionKind.PRIMARY).status == SessionStatus.RUNNING

    assert sessions.finish(fresh, SessionOutcome.COMPLETED) is True
    session = sessions.session(SessionKind.PRIMARY)
    assert session.status == SessionStatus.IDLE
    assert session.last_outcome == SessionOutcome.COMPLETED


def test_cancel_all_signals_every_token():
    sessions = SessionManager()
    tokens = [sessions.begin(kind) for kind in SessionKind]
    sessions.cancel_all()

    assert all(token.cancelled for token in tokens)
    assert all(sessions.session(kind).status == SessionStatus.IDLE for kind in SessionKind)
    assert sessions.cancel(SessionKind.PRIMARY) is False


def test_publisher_drops_results_of_superseded_token():
    state = AppState(StaticEvidenceSource())
    notifier = RecordingNotifier()
    publisher = ResultPublisher(state, notifier)
    stale = state.sessions.begin(SessionKind.PRIMARY)
    fresh = state.sessions.begin(SessionKind.PRIMARY)

    with pytest.raises(RequestCancelled):
        publisher.publish_problem(LeetcodeProblem(problem_statement="stale"), stale)
    assert state.problem_info is None
    assert notifier.events == []

    publisher.publish_problem(LeetcodeProblem(problem_statement="fresh"), fresh)
    assert state.problem_info.problem_statement == "fresh"
    assert notifier.names() == [ProcessingEvent.PROBLEM_EXTRACTED]


def test_publishing_a_refinement_replaces_the_solution():
    state = AppState(StaticEvidenceSource())
    publisher = ResultPublisher(state, RecordingNotifier())
    token = state.sessions.begin(SessionKind.DEBUG)
    refinement = LeetcodeRefinement(
        debug_analysis="Fixed bounds",
        improved_solution=ImprovedSolution(
            explanation="Better", code={"javascript": "// js", "python": "# py"}
        ),
    )

    publisher.publish_refinement(refinement, token)

    assert state.has_debugged
    assert state.solution.code == "# py"
    assert state.solution.thoughts == ["Fixed bounds", "Better"]


def test_notifier_failures_are_swallowed():
    class BrokenNotifier(RecordingNotifier):
        def send(self, event, payload=None):
            raise RuntimeError("window closed")

    publisher = ResultPublisher(AppState(StaticEvidenceSource()), BrokenNotifier())
    publisher.notify(ProcessingEvent.RESET_VIEW)


def test_clear_queues_resets_view_and_slots():
    evidence = StaticEvidenceSource()
    state = AppState(evidence)
    state.set_view(View.SOLUTIONS)
    state.set_problem_info(LeetcodeProblem())
    state.has_debugged = True

    state.clear_queues()

    assert state.get_view() == View.QUEUE
    assert state.problem_info is None
    assert not state.has_debugged
    assert evidence.clear_count == 1
