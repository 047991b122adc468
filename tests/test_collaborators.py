import pytest

from collaborators.base import ProcessingEvent
from collaborators.local import FileEvidenceConfig, FileEvidenceSource, RecordingNotifier
from core.models import View


def test_screenshots_land_in_queue_for_current_view(tmp_path):
    view = {"current": View.QUEUE}
    source = FileEvidenceSource(view_provider=lambda: view["current"])
    first = tmp_path / "problem.png"
    first.write_bytes(b"problem")
    second = tmp_path / "error.png"
    second.write_bytes(b"error")

    source.add_screenshot(str(first))
    view["current"] = View.SOLUTIONS
    source.add_screenshot(str(second))

    assert [s.image for s in source.get_queued_screenshots()] == [b"problem"]
    assert [s.image for s in source.get_extra_queued_screenshots()] == [b"error"]


def test_queue_drops_oldest_when_full(tmp_path):
    source = FileEvidenceSource(FileEvidenceConfig(max_queue_size=2))
    for name in ("a", "b", "c"):
        source.add_screenshot(str(tmp_path / f"{name}.png"))

    assert source.queued_paths() == [str(tmp_path / "b.png"), str(tmp_path / "c.png")]


def test_missing_audio_raises(tmp_path):
    source = FileEvidenceSource()
    with pytest.raises(FileNotFoundError, match="Audio file not found"):
        source.get_audio_file(str(tmp_path / "nothing.webm"))


def test_clear_queues_empties_both(tmp_path):
    source = FileEvidenceSource()
    source.add_screenshot(str(tmp_path / "a.png"))
    source.clear_queues()
    assert source.queued_paths() == []
    assert source.extra_queued_paths() == []


def test_recording_notifier_sequences_events():
    notifier = RecordingNotifier()
    notifier.send(ProcessingEvent.INITIAL_START)
    notifier.send(ProcessingEvent.SOLUTION_ERROR, "boom")

    assert [r.sequence for r in notifier.events] == [1, 2]
    assert notifier.since(1)[0].payload == "boom"
