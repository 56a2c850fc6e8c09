"""
Processing API Endpoints

Trigger surface for journal classification:
- POST /api/processing/sessions/{id}/process - Queue a session for processing
- POST /api/processing/sessions/{id}/cancel - Cancel a session (observed between pages)
- GET /api/processing/sessions/{id}/progress - Poll counters and percentage
- GET /api/processing/health - Worker status
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from database.connection import get_session_factory
from models.enums import SessionStatus, TERMINAL_STATUSES
from processing.progress import DatabaseProgressStore, progress_key
from processing.stores import SessionStore
from processing.workers.processing_worker import ProcessingWorker, get_worker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/processing", tags=["Processing"])


# ==================== Response Models ====================

class ProcessResponse(BaseModel):
    session_id: int
    queued: bool
    message: str


class CancelResponse(BaseModel):
    session_id: int
    status: str
    message: str


class ProgressResponse(BaseModel):
    session_id: int
    session_code: str
    status: str
    total_rows: int
    processed_rows: int
    failed_rows: int
    percentage: Optional[float] = Field(None, description="Last published percentage (0-100)")
    error_message: Optional[str] = None


class WorkerHealthResponse(BaseModel):
    running: bool
    concurrency: int
    queued: int
    active_sessions: List[int]


# ==================== Dependencies ====================

def get_session_store() -> SessionStore:
    return SessionStore(get_session_factory())


def get_progress_store() -> DatabaseProgressStore:
    return DatabaseProgressStore(get_session_factory())


def get_processing_worker() -> ProcessingWorker:
    worker = get_worker()
    if worker is None:
        raise HTTPException(status_code=503, detail="Processing worker is not running")
    return worker


# ==================== Endpoints ====================

@router.post("/sessions/{session_id}/process", response_model=ProcessResponse, status_code=202)
async def process_session(
    session_id: int,
    sessions: SessionStore = Depends(get_session_store),
    worker: ProcessingWorker = Depends(get_processing_worker),
):
    """Queue an uploaded session for classification."""
    session = await sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    status = SessionStatus(session.status)
    if status in TERMINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Session is already {status.value}")

    if not worker.enqueue(session_id):
        raise HTTPException(status_code=409, detail="Session is already queued or processing")

    return ProcessResponse(session_id=session_id, queued=True, message="Processing queued")


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
async def cancel_session(
    session_id: int,
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Cancel a session. A running batch stops before its next page;
    pages already written are kept.
    """
    session = await sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    if not await sessions.cancel(session_id):
        raise HTTPException(
            status_code=400,
            detail=f"Only uploaded or processing sessions can be canceled (status: {session.status})"
        )

    logger.info(f"Session {session_id} canceled")
    return CancelResponse(
        session_id=session_id,
        status=SessionStatus.canceled.value,
        message="Processing canceled successfully"
    )


@router.get("/sessions/{session_id}/progress", response_model=ProgressResponse)
async def get_session_progress(
    session_id: int,
    sessions: SessionStore = Depends(get_session_store),
    progress: DatabaseProgressStore = Depends(get_progress_store),
):
    """Counters from the session plus the last published percentage."""
    session = await sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    return ProgressResponse(
        session_id=session.id,
        session_code=session.session_code,
        status=session.status,
        total_rows=session.total_rows or 0,
        processed_rows=session.processed_rows or 0,
        failed_rows=session.failed_rows or 0,
        percentage=await progress.get(progress_key(session_id)),
        error_message=session.error_message,
    )


@router.get("/health", response_model=WorkerHealthResponse)
async def worker_health(worker: ProcessingWorker = Depends(get_processing_worker)):
    return WorkerHealthResponse(**worker.stats())
