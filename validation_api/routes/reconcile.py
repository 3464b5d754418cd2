"""
API routes for triggering and monitoring reconciliation sweeps.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks, Header
from sqlalchemy import func, desc, text
from sqlalchemy.orm import Session

from validation_api.config import Settings, get_settings
from validation_api.consensus_service import ConsensusEngine
from validation_api.database import get_db, Vote, ReconcileRun
from validation_api.models import (
    HealthResponse, ReconcileResultResponse, RecordStatus, TriggerReconcileRequest
)
from validation_api.record_store import RecordStore
from validation_api import database


router = APIRouter(prefix="/reconcile", tags=["Reconcile"])


def _check_api_key(settings: Settings, x_api_key: Optional[str]):
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")


def _run_to_dict(run: ReconcileRun) -> dict:
    return {
        "id": run.id,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "success": run.success,
        "records_examined": run.records_examined,
        "records_finalized": run.records_finalized,
        "duration_seconds": run.duration_seconds,
        "error": run.error_message,
    }


# =============================================================================
# Trigger Reconciliation
# =============================================================================


@router.post("/run", response_model=ReconcileResultResponse)
def trigger_reconcile(
    request: TriggerReconcileRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    x_api_key: Optional[str] = Header(default=None)
):
    """
    Manually trigger a reconciliation sweep.

    Finalizes pending records whose tally already crossed the threshold.
    Normally run by the scheduler; requires API key if configured.
    """
    _check_api_key(settings, x_api_key)

    result = ConsensusEngine(db, settings).reconcile(record_ids=request.record_ids)

    return ReconcileResultResponse(
        success=result["success"],
        records_examined=result["records_examined"],
        records_finalized=result["records_finalized"],
        duration_seconds=result["duration_seconds"],
        errors=result.get("errors", []),
        reconciled_at=datetime.fromisoformat(result["reconciled_at"])
    )


@router.post("/run-async")
async def trigger_reconcile_async(
    request: TriggerReconcileRequest,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    x_api_key: Optional[str] = Header(default=None)
):
    """
    Trigger reconciliation in the background.

    Returns immediately. Use GET /reconcile/status to check progress.
    """
    _check_api_key(settings, x_api_key)

    def run_reconcile_background():
        with database.SessionLocal() as session:
            ConsensusEngine(session, settings).reconcile(record_ids=request.record_ids)

    background_tasks.add_task(run_reconcile_background)

    return {"message": "Reconciliation started in background", "status": "running"}


# =============================================================================
# Reconciliation Status
# =============================================================================


@router.get("/status")
def get_reconcile_status(db: Session = Depends(get_db)):
    """Get the status of recent reconciliation runs."""
    recent_runs = db.query(ReconcileRun).order_by(
        desc(ReconcileRun.started_at)
    ).limit(10).all()

    return {"recent_runs": [_run_to_dict(run) for run in recent_runs]}


# =============================================================================
# Health Check
# =============================================================================


@router.get("/health", response_model=HealthResponse)
def health_check(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """
    Health check endpoint.

    Returns service health status and basic statistics.
    """
    try:
        db.execute(text("SELECT 1"))
        db_connected = True
    except Exception:
        db_connected = False

    records = RecordStore(db)
    records_count = records.count()
    pending_count = records.count(RecordStatus.PENDING)
    votes_count = db.query(func.count(Vote.id)).scalar() or 0

    last_run = db.query(ReconcileRun).filter(
        ReconcileRun.completed_at.isnot(None)
    ).order_by(desc(ReconcileRun.completed_at)).first()

    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        version=settings.app_version,
        database_connected=db_connected,
        last_reconcile_run=last_run.completed_at if last_run else None,
        records_count=records_count,
        pending_records_count=pending_count,
        votes_count=votes_count
    )
