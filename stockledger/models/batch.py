"""
Batch job execution records
One row per invocation of a scheduled job
"""
from enum import Enum

from sqlalchemy import Column, Date, DateTime, Integer, String, Text, Index
from sqlalchemy.sql import func

from stockledger.core.database import Base


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class BatchJobExecution(Base):
    __tablename__ = "batch_job_executions"
    __table_args__ = (
        Index("ix_batch_job_executions_job_target", "job_name", "target_date"),
    )

    id = Column(Integer, primary_key=True)
    job_name = Column(String(50), nullable=False)
    target_date = Column(Date, doc="Business date the job worked on")
    status = Column(String(20), nullable=False, default=JobStatus.RUNNING.value)
    processed_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    message = Column(Text)
    started_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    finished_at = Column(DateTime)
