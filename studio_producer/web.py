#!/usr/bin/env python3
"""
HTTP API for studio_producer.

POST /api/produce starts a production in the background and returns a run id;
GET /api/status/{run_id} reports its progress. Every route except the health
check is behind HTTP Basic auth.
"""
import logging
import secrets
import sys
import threading
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field
import uvicorn

from studio_producer import config
from studio_producer.agent.supervisor import Supervisor, build_supervisor
from studio_producer.logging_setup import setup_logging
from studio_producer.models import ProgressEvent

logger = logging.getLogger(__name__)

USERNAME = config.STUDIO_WEB_USER
PASSWORD = config.STUDIO_WEB_PASSWORD or secrets.token_urlsafe(16)

security = HTTPBasic()

# Run storage
runs_db: Dict[str, Dict] = {}
runs_lock = threading.RLock()
MAX_EVENTS_PER_RUN = 200

_supervisor: Optional[Supervisor] = None


def get_supervisor() -> Supervisor:
    global _supervisor
    if _supervisor is None:
        _supervisor = build_supervisor()
    return _supervisor


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _supervisor is not None:
        logger.info("[Web] Shutting down, closing service connections")
        await _supervisor.aclose()


app = FastAPI(title="Studio Producer", lifespan=lifespan)


class ProduceRequest(BaseModel):
    request: str = Field(..., min_length=1, description="What to produce")


def verify_credentials(credentials: HTTPBasicCredentials = Depends(security)):
    """Simple authentication"""
    correct_username = secrets.compare_digest(credentials.username, USERNAME)
    correct_password = secrets.compare_digest(credentials.password, PASSWORD)

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def _record_event(run_id: str, event: ProgressEvent):
    with runs_lock:
        run = runs_db.get(run_id)
        if run is None:
            return
        if event.progress is not None:
            run["progress"] = event.progress
        run["current_step"] = event.message
        run["events"].append(event.to_dict())
        del run["events"][:-MAX_EVENTS_PER_RUN]


async def _run_production(run_id: str, request: str):
    with runs_lock:
        runs_db[run_id]["status"] = "running"
        runs_db[run_id]["start_time"] = time.time()
    try:
        result = await get_supervisor().run(request, on_progress=lambda e: _record_event(run_id, e))
    except Exception as e:
        logger.error(f"[Web] Run {run_id} failed: {type(e).__name__}: {e}")
        with runs_lock:
            runs_db[run_id].update(status="failed", error=str(e), finished_at=datetime.now().isoformat())
        return
    with runs_lock:
        runs_db[run_id].update(
            status="completed" if result.success else "failed",
            session_id=result.session_id,
            result=result.to_dict(),
            error=result.error,
            progress=100.0 if result.success else runs_db[run_id]["progress"],
            finished_at=datetime.now().isoformat(),
        )


@app.get("/api/health")
def health():
    return {"status": "ok", "model": config.MODEL_NAME}


@app.post("/api/produce")
async def produce(body: ProduceRequest, background_tasks: BackgroundTasks,
                  username: str = Depends(verify_credentials)):
    """Start a production run"""
    run_id = secrets.token_hex(8)
    with runs_lock:
        runs_db[run_id] = {
            "run_id": run_id,
            "request": body.request,
            "status": "queued",
            "progress": 0.0,
            "current_step": "Queued",
            "created_at": datetime.now().isoformat(),
            "session_id": None,
            "result": None,
            "error": None,
            "events": [],
        }
    background_tasks.add_task(_run_production, run_id, body.request)
    return {"run_id": run_id, "status": "queued"}


@app.get("/api/status/{run_id}")
async def get_status(run_id: str, username: str = Depends(verify_credentials)):
    """Status, overall percentage and recent events of one run"""
    with runs_lock:
        if run_id not in runs_db:
            raise HTTPException(status_code=404, detail="Run not found")
        run = dict(runs_db[run_id])
        run["events"] = list(run["events"])
    return run


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str, username: str = Depends(verify_credentials)):
    """Snapshot of a production session"""
    store = get_supervisor().store
    session = store.get(session_id) if store is not None else None
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"summary": session.summary(), "session": session.to_dict()}


if __name__ == "__main__":
    setup_logging(config.STUDIO_LOG_DIR or None)
    port = config.STUDIO_WEB_PORT

    print("=" * 60, file=sys.stderr)
    print("STUDIO PRODUCER WEB CREDENTIALS", file=sys.stderr)
    print("=" * 60, file=sys.stderr)
    print(f"Username: {USERNAME}", file=sys.stderr)
    if config.STUDIO_WEB_PASSWORD:
        print("Password: (set via STUDIO_WEB_PASSWORD)", file=sys.stderr)
    else:
        print(f"Password: {PASSWORD}", file=sys.stderr)
    print("=" * 60, file=sys.stderr)

    print(f"\nStarting Studio Producer on http://0.0.0.0:{port}")
    print("\nPress Ctrl+C to stop\n")

    uvicorn.run(app, host="0.0.0.0", port=port)
