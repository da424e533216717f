"""
Batch Processing Module
Scheduled jobs and their execution records
"""

from .snapshot_job import DailySnapshotJob

__all__ = ['DailySnapshotJob']
