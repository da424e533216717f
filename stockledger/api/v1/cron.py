"""Scheduler-triggered endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.schemas.stock import JobExecutionListResponse, SnapshotRunResponse
from stockledger.services.batch.snapshot_job import DailySnapshotJob

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/daily-snapshot", response_model=SnapshotRunResponse,
            dependencies=[Depends(deps.require_cron_secret)])
async def run_daily_snapshot(
    target: Optional[str] = Query(None, alias="date", description="Day to materialize, defaults to yesterday"),
    force: bool = Query(False, description="Rewrite the day even if snapshots exist"),
    db: Session = Depends(deps.get_db),
):
    """
    Materialize daily stock snapshots.

    Called by the scheduler with the shared cron secret as a bearer token.
    Safe to call more than once for the same day.
    """
    execution, result = DailySnapshotJob(db).run(target, force=force)
    return SnapshotRunResponse(
        success=result.success,
        processed=result.processed_count,
        date=result.snapshot_date,
        skipped=result.skipped,
        execution_id=execution.id,
        errors=result.errors,
    )


@router.get("/executions", response_model=JobExecutionListResponse,
            dependencies=[Depends(deps.require_cron_secret)])
async def list_snapshot_executions(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(deps.get_db),
):
    """Most recent daily snapshot runs, newest first"""
    executions = DailySnapshotJob(db).recent_executions(limit=limit)
    return JobExecutionListResponse(executions=executions, total=len(executions))
