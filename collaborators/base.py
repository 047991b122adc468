from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class ProcessingEvent(str, Enum):
    # global states
    UNAUTHORIZED = "unauthorized"
    NO_SCREENSHOTS = "no-screenshots"
    RESET_VIEW = "reset-view"

    # generating the initial solution
    INITIAL_START = "initial-start"
    PROBLEM_EXTRACTED = "problem-extracted"
    SOLUTION_SUCCESS = "solution-success"
    SOLUTION_ERROR = "solution-error"

    # debugging
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"


@dataclass
class Screenshot:
    path: str
    image: bytes


class EvidenceSource(ABC):
    """
    Abstract source of captured evidence.

    Screen capture and audio recording happen elsewhere; the pipeline only
    reads what has been queued.
    """

    @abstractmethod
    def get_queued_screenshots(self) -> List[Screenshot]:
        """
        Screenshots of the problem itself, oldest first.
        """
        pass

    @abstractmethod
    def get_extra_queued_screenshots(self) -> List[Screenshot]:
        """
        Screenshots taken after a solution was shown (errors, failed tests,
        more requirements), oldest first.
        """
        pass

    @abstractmethod
    def get_audio_file(self, path: str) -> bytes:
        """
        Read a recorded question.

        Raises:
            FileNotFoundError: if nothing was recorded at ``path``
        """
        pass

    @abstractmethod
    def clear_queues(self) -> None:
        """Drop both screenshot queues."""
        pass


class PresentationNotifier(ABC):
    """Fire-and-forget channel to whatever renders the pipeline's progress."""

    @abstractmethod
    def send(self, event: ProcessingEvent, payload: Optional[Any] = None) -> None:
        """
        Deliver one named event.

        Args:
            event: Which transition happened
            payload: JSON-compatible data for the event, if any
        """
        pass
