"""
BehaviorGuard Operator API

FastAPI application exposing the operator surface of the guard:
- GET  /health, /stats, /events, /alerts, /settings
- PUT  /settings (partial merge)
- POST /monitoring/{start,stop,toggle}
- POST /profile/reset, /profile/import, GET /profile/export
- POST /unlock

Input capture and analysis run in-process on background threads; the API
only drives the orchestrator and reads its state.
"""

from contextlib import asynccontextmanager
import logging
import os
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import ValidationError

from core.capture import EventCallback, InputCapture
from core.events import EventBuffer
from core.orchestrator import GuardOrchestrator, ProfileValidationError
from persistence.repository import GuardRepository
from persistence.store import DEFAULT_NAMESPACE, MemoryDocumentStore, RedisDocumentStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


VERSION = "1.0.0"


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    orchestrator: Optional[GuardOrchestrator] = None
    events: Optional[EventBuffer] = None
    capture_factory: Callable[[EventCallback], InputCapture] = InputCapture


state = AppState()


def build_repository() -> GuardRepository:
    """Document repository selected by STORE_BACKEND (redis | memory)."""
    backend = os.getenv("STORE_BACKEND", "redis").lower()
    namespace = os.getenv("STORE_NAMESPACE", DEFAULT_NAMESPACE)
    if backend == "memory":
        logger.warning("Using in-memory store, profile and settings will not survive restart")
        return GuardRepository(MemoryDocumentStore())
    if backend != "redis":
        raise ValueError(f"Unknown STORE_BACKEND '{backend}' (expected redis or memory)")
    return GuardRepository(RedisDocumentStore(namespace=namespace))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    load_dotenv()
    logger.info("Starting BehaviorGuard API...")
    state.events = EventBuffer()
    state.orchestrator = GuardOrchestrator(
        repo=build_repository(),
        sink=state.events,
        capture_factory=state.capture_factory,
    )
    state.orchestrator.load()
    if state.orchestrator.settings.auto_start:
        state.orchestrator.start_monitoring()
    logger.info("BehaviorGuard ready")

    yield

    # Shutdown
    logger.info("Shutting down BehaviorGuard API...")
    state.orchestrator.close()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="BehaviorGuard",
    description="Continuous behavioral-biometric re-authentication",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The desktop UI runs from a local origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health & Stats
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/stats")
async def get_stats():
    return state.orchestrator.build_stats().model_dump(mode="json", by_alias=True)


@app.get("/events")
async def get_events(after: int = Query(0, ge=0, description="Return events after this sequence number")):
    """Poll UI events (stats-update, risk-update, alert, ...) emitted since ``after``."""
    return {
        "last": state.events.last_seq,
        "events": [e.to_dict() for e in state.events.since(after)],
    }


# =============================================================================
# Alerts
# =============================================================================

@app.get("/alerts")
async def get_alerts():
    return [a.model_dump(mode="json") for a in state.orchestrator.get_alerts()]


@app.delete("/alerts", status_code=status.HTTP_204_NO_CONTENT)
async def clear_alerts():
    state.orchestrator.clear_alerts()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Settings
# =============================================================================

@app.get("/settings")
async def get_settings():
    return state.orchestrator.settings.model_dump(mode="json", by_alias=True)


@app.put("/settings")
async def update_settings(updates: Dict[str, Any] = Body(...)):
    """Merge a partial settings document and persist it."""
    try:
        settings = state.orchestrator.update_settings(updates)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )
    return settings.model_dump(mode="json", by_alias=True)


# =============================================================================
# Monitoring
# =============================================================================

# Plain def: stopping joins the worker thread, so these run in the threadpool
@app.post("/monitoring/start")
def start_monitoring():
    return {"monitoring": state.orchestrator.start_monitoring()}


@app.post("/monitoring/stop")
def stop_monitoring():
    return {"monitoring": state.orchestrator.stop_monitoring()}


@app.post("/monitoring/toggle")
def toggle_monitoring():
    return {"monitoring": state.orchestrator.toggle_monitoring()}


# =============================================================================
# Profile
# =============================================================================

@app.post("/profile/reset", status_code=status.HTTP_204_NO_CONTENT)
def reset_profile():
    state.orchestrator.reset_profile()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/profile/export")
async def export_profile():
    document = state.orchestrator.export_profile()
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No profile"
        )
    return document


@app.post("/profile/import")
async def import_profile(document: Dict[str, Any] = Body(...)):
    """
    Replace the active profile with a validated document.

    - 422 if the document fails schema validation (profile unchanged)
    """
    try:
        profile = state.orchestrator.import_profile(document)
    except ProfileValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors,
        )
    return {"uid": profile.uid, **profile.summary()}


# =============================================================================
# Lock
# =============================================================================

@app.post("/unlock")
async def unlock():
    state.orchestrator.unlock()
    return {"locked": state.orchestrator.locked}


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
