"""
Daily Snapshot Job
Wraps the snapshot materializer with an execution record per invocation
"""
import logging
from datetime import date
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from stockledger.models.batch import BatchJobExecution, JobStatus
from stockledger.services.stock.periods import parse_iso_date, utcnow
from stockledger.services.stock.snapshots import (
    MaterializationResult, SnapshotMaterializerService, default_snapshot_date
)


class DailySnapshotJob:
    """
    Daily snapshot batch job

    The scheduler may fire this more than once for the same day; each firing
    gets its own execution row and the materializer's guard makes the extra
    firings SKIPPED.
    """

    JOB_NAME = "daily_stock_snapshot"

    def __init__(self, db: Session, materializer: Optional[SnapshotMaterializerService] = None):
        self.db = db
        self.materializer = materializer or SnapshotMaterializerService(db)
        self.logger = logging.getLogger(__name__)

    def run(self, snapshot_date=None, force: bool = False) -> Tuple[BatchJobExecution, MaterializationResult]:
        target: date = parse_iso_date(snapshot_date, "date") if snapshot_date else default_snapshot_date()

        execution = BatchJobExecution(
            job_name=self.JOB_NAME,
            target_date=target,
            status=JobStatus.RUNNING.value,
            started_at=utcnow(),
        )
        self.db.add(execution)
        self.db.commit()
        self.logger.info(f"Job {self.JOB_NAME} execution {execution.id} started for {target.isoformat()}")

        try:
            result = self.materializer.materialize_snapshots_for(target, force=force)
        except Exception as e:
            self.db.rollback()
            self._finish(execution, JobStatus.FAILED, message=str(e))
            self.logger.error(f"Job {self.JOB_NAME} execution {execution.id} failed: {e}")
            raise

        if result.skipped:
            status = JobStatus.SKIPPED
        elif result.success:
            status = JobStatus.COMPLETED
        else:
            status = JobStatus.FAILED
        self._finish(
            execution, status,
            processed=result.processed_count,
            error_count=result.failed_count,
            message="\n".join(result.errors) or None,
        )
        self.logger.info(
            f"Job {self.JOB_NAME} execution {execution.id} {status.value}: "
            f"{result.processed_count} processed, {result.failed_count} errors"
        )
        return execution, result

    def _finish(self, execution: BatchJobExecution, status: JobStatus, processed: int = 0,
                error_count: int = 0, message: Optional[str] = None):
        execution.status = status.value
        execution.processed_count = processed
        execution.error_count = error_count
        execution.message = message
        execution.finished_at = utcnow()
        self.db.commit()

    def recent_executions(self, limit: int = 20):
        return self.db.query(BatchJobExecution).filter(
            BatchJobExecution.job_name == self.JOB_NAME
        ).order_by(BatchJobExecution.started_at.desc(), BatchJobExecution.id.desc()).limit(limit).all()
