import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from core.models import View

from collaborators.base import (
    EvidenceSource,
    PresentationNotifier,
    ProcessingEvent,
    Screenshot,
)

logger = logging.getLogger(__name__)


@dataclass
class FileEvidenceConfig:
    """Configuration for FileEvidenceSource."""
    max_queue_size: int = 5


class FileEvidenceSource(EvidenceSource):
    """
    Evidence source backed by files on disk.

    Keeps two bounded queues of paths and reads the bytes only when the
    pipeline asks for them. Which queue a new screenshot lands in depends on
    the current view, read through ``view_provider``.
    """

    def __init__(
        self,
        config: Optional[FileEvidenceConfig] = None,
        view_provider: Optional[Callable[[], View]] = None,
    ):
        self.config = config or FileEvidenceConfig()
        self._view_provider = view_provider or (lambda: View.QUEUE)
        self._queue: List[Path] = []
        self._extra_queue: List[Path] = []

    def bind_view(self, view_provider: Callable[[], View]) -> None:
        self._view_provider = view_provider

    def add_screenshot(self, path: str) -> List[str]:
        """Queue a screenshot path and return the queue it was added to."""
        queue = self._queue if self._view_provider() == View.QUEUE else self._extra_queue
        queue.append(Path(path))
        while len(queue) > self.config.max_queue_size:
            dropped = queue.pop(0)
            logger.info("Screenshot queue full, dropping %s", dropped)
        return [str(p) for p in queue]

    def queued_paths(self) -> List[str]:
        return [str(p) for p in self._queue]

    def extra_queued_paths(self) -> List[str]:
        return [str(p) for p in self._extra_queue]

    def get_queued_screenshots(self) -> List[Screenshot]:
        return [self._read(p) for p in self._queue]

    def get_extra_queued_screenshots(self) -> List[Screenshot]:
        return [self._read(p) for p in self._extra_queue]

    def get_audio_file(self, path: str) -> bytes:
        audio_path = Path(path)
        if not audio_path.is_file():
            raise FileNotFoundError(f"Audio file not found: {path}")
        return audio_path.read_bytes()

    def clear_queues(self) -> None:
        self._queue.clear()
        self._extra_queue.clear()

    def _read(self, path: Path) -> Screenshot:
        return Screenshot(path=str(path), image=path.read_bytes())


@dataclass
class EventRecord:
    sequence: int
    event: ProcessingEvent
    payload: Any = None


@dataclass
class RecordingNotifier(PresentationNotifier):
    """Keeps every event in memory so a poller (or a test) can read them back."""

    events: List[EventRecord] = field(default_factory=list)

    def send(self, event: ProcessingEvent, payload: Optional[Any] = None) -> None:
        record = EventRecord(sequence=len(self.events) + 1, event=event, payload=payload)
        self.events.append(record)
        logger.debug("Event %d: %s", record.sequence, event.value)

    def since(self, sequence: int) -> List[EventRecord]:
        return [record for record in self.events if record.sequence > sequence]

    def names(self) -> List[ProcessingEvent]:
        return [record.event for record in self.events]
