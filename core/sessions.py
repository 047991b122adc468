from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from core.cancellation import CancellationToken, SessionKind

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Session:
    """At most one live request chain per pipeline kind."""

    kind: SessionKind
    token: Optional[CancellationToken] = None
    generation: int = 0
    last_outcome: Optional[SessionOutcome] = None

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.RUNNING if self.token is not None else SessionStatus.IDLE


class SessionManager:
    """
    Owns the cancellation token of each pipeline kind.

    Starting a session supersedes (cancels) the running one of the same kind.
    Tokens are cleared on finish or cancel; a token that is no longer current
    can never clear or overwrite its successor.
    """

    def __init__(self) -> None:
        self._sessions: Dict[SessionKind, Session] = {
            kind: Session(kind=kind) for kind in SessionKind
        }

    def session(self, kind: SessionKind) -> Session:
        return self._sessions[kind]

    def begin(self, kind: SessionKind) -> CancellationToken:
        session = self._sessions[kind]
        if session.token is not None:
            logger.info(
                "Superseding %s session #%d", kind.value, session.token.generation
            )
            session.token.cancel()
            session.last_outcome = SessionOutcome.CANCELLED

        session.generation += 1
        session.token = CancellationToken(kind, session.generation)
        logger.debug("Started %s session #%d", kind.value, session.generation)
        return session.token

    def is_current(self, token: CancellationToken) -> bool:
        session = self._sessions[token.kind]
        return session.token is token and not token.cancelled

    def finish(self, token: CancellationToken, outcome: SessionOutcome) -> bool:
        """Clear the session if ``token`` still owns it. Returns True if it did."""
        session = self._sessions[token.kind]
        if session.token is not token:
            return False
        session.token = None
        session.last_outcome = outcome
        logger.debug(
            "Finished %s session #%d: %s",
            token.kind.value,
            token.generation,
            outcome.value,
        )
        return True

    def cancel(self, kind: SessionKind) -> bool:
        session = self._sessions[kind]
        if session.token is None:
            return False
        logger.info("Cancelling %s session #%d", kind.value, session.token.generation)
        session.token.cancel()
        session.token = None
        session.last_outcome = SessionOutcome.CANCELLED
        return True

    def cancel_all(self) -> None:
        for kind in SessionKind:
            self.cancel(kind)
