import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from collaborators.local import FileEvidenceConfig, FileEvidenceSource, RecordingNotifier
from core.cancellation import SessionKind
from core.orchestration import ProcessingOrchestrator, create_default_orchestrator

logging.basicConfig(
    level=os.getenv("SCREENSOLVE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ScreenSolve API")

evidence: Optional[FileEvidenceSource] = None
notifier: Optional[RecordingNotifier] = None
orchestrator: Optional[ProcessingOrchestrator] = None


class ScreenshotRequest(BaseModel):
    path: str


class AudioRequest(BaseModel):
    path: str


@app.on_event("startup")
def startup_event():
    global evidence, notifier, orchestrator

    max_queue_size = int(os.getenv("SCREENSOLVE_MAX_QUEUE_SIZE", FileEvidenceConfig.max_queue_size))
    evidence = FileEvidenceSource(FileEvidenceConfig(max_queue_size=max_queue_size))
    notifier = RecordingNotifier()
    orchestrator = create_default_orchestrator(evidence, notifier)
    evidence.bind_view(orchestrator.state.get_view)
    logger.info("Processing pipeline ready")


def _require_orchestrator() -> ProcessingOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return orchestrator


@app.get("/")
def health_check():
    return {"status": "ok"}


@app.post("/screenshots")
def queue_screenshot(request: ScreenshotRequest):
    _require_orchestrator()
    queue = evidence.add_screenshot(request.path)
    return {"queue": queue}


@app.post("/process")
async def process():
    result = await _require_orchestrator().process_screenshots()
    return result.model_dump()


@app.post("/process/primary")
async def process_primary():
    result = await _require_orchestrator().run_primary_pipeline()
    return result.model_dump()


@app.post("/process/debug")
async def process_debug():
    result = await _require_orchestrator().run_debug_pipeline()
    return result.model_dump()


@app.post("/audio")
async def process_audio(request: AudioRequest):
    result = await _require_orchestrator().process_audio(request.path)
    return result.model_dump()


@app.post("/cancel")
def cancel():
    _require_orchestrator().cancel_all()
    return {"status": "cancelled"}


@app.post("/reset")
def reset():
    _require_orchestrator().reset()
    return {"status": "reset"}


@app.get("/state")
def get_state() -> Dict[str, Any]:
    state = _require_orchestrator().state
    return {
        "view": state.get_view().value,
        "problem_info": state.problem_info.model_dump(mode="json") if state.problem_info else None,
        "solution": state.solution.model_dump(mode="json") if state.solution else None,
        "has_debugged": state.has_debugged,
        "sessions": {
            kind.value: {
                "status": state.sessions.session(kind).status.value,
                "generation": state.sessions.session(kind).generation,
            }
            for kind in SessionKind
        },
        "queue": evidence.queued_paths() if evidence else [],
        "extra_queue": evidence.extra_queued_paths() if evidence else [],
    }


@app.get("/events")
def get_events(after: int = 0):
    _require_orchestrator()
    return {
        "events": [
            {"sequence": record.sequence, "event": record.event.value, "payload": record.payload}
            for record in notifier.since(after)
        ]
    }
