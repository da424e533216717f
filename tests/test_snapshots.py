"""
Tests for the Snapshot Materializer and the daily snapshot job
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from conftest import at, days_ago
from stockledger.core.exceptions import ValidationError
from stockledger.models.batch import BatchJobExecution, JobStatus
from stockledger.models.stock import DailyStockSnapshot
from stockledger.services.batch.snapshot_job import DailySnapshotJob
from stockledger.services.stock.periods import current_business_date
from stockledger.services.stock.snapshots import SnapshotMaterializerService, default_snapshot_date


def snapshot_for(db_session: Session, stock_item_id, day):
    return db_session.query(DailyStockSnapshot).filter_by(
        stock_item_id=stock_item_id, snapshot_date=day
    ).one()


class TestMaterialize:
    """Writing end-of-day rows"""

    def test_on_time_run_copies_current_quantity(self, db_session: Session, ledger, company, flour_item, box_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 12, transaction_date=at(days_ago(3)))
        ledger.append_transaction(company.id, box_item.id, "incoming", 40, transaction_date=at(days_ago(2)))

        result = SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        assert result.success
        assert result.processed_count == 2
        assert result.errors == []
        flour = snapshot_for(db_session, flour_item.id, days_ago(1))
        assert flour.quantity == Decimal("12")
        assert flour.item_name == "Flour"
        assert flour.unit == "kg"
        assert flour.item_type == "ingredient"
        assert snapshot_for(db_session, box_item.id, days_ago(1)).item_name == "Lunch Box"

    def test_late_run_excludes_later_transactions(self, db_session: Session, ledger, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(3)))
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 4, transaction_date=at(days_ago(1)))
        ledger.append_transaction(company.id, flour_item.id, "disposal", 1)

        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(2))

        assert snapshot_for(db_session, flour_item.id, days_ago(2)).quantity == Decimal("10")

    def test_transaction_at_midnight_belongs_to_next_day(self, db_session: Session, ledger, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(3)))
        ledger.append_transaction(company.id, flour_item.id, "incoming", 5, transaction_date=at(days_ago(1), hour=0))

        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(2))

        assert snapshot_for(db_session, flour_item.id, days_ago(2)).quantity == Decimal("10")

    def test_second_run_is_skipped(self, db_session: Session, ledger, company, flour_item):
        service = SnapshotMaterializerService(db_session)
        service.materialize_snapshots_for(days_ago(1))

        again = service.materialize_snapshots_for(days_ago(1))

        assert again.skipped
        assert again.processed_count == 0
        assert again.errors == [f"Snapshots for {days_ago(1).isoformat()} already exist"]
        assert db_session.query(DailyStockSnapshot).count() == 1

    def test_force_rewrites_from_ledger_replay(self, db_session: Session, ledger, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(3)))
        service = SnapshotMaterializerService(db_session)
        service.materialize_snapshots_for(days_ago(2))

        # Corrupt the stored row, then repair it
        row = snapshot_for(db_session, flour_item.id, days_ago(2))
        row.quantity = Decimal("999")
        db_session.commit()

        result = service.materialize_snapshots_for(days_ago(2), force=True)

        assert result.processed_count == 1
        db_session.expire_all()
        assert db_session.query(DailyStockSnapshot).count() == 1
        assert snapshot_for(db_session, flour_item.id, days_ago(2)).quantity == Decimal("10")

    def test_backfill_of_older_day(self, db_session: Session, ledger, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(6)))
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 3, transaction_date=at(days_ago(4)))

        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(5), force=True)

        assert snapshot_for(db_session, flour_item.id, days_ago(5)).quantity == Decimal("10")

    def test_today_and_future_rejected(self, db_session: Session):
        service = SnapshotMaterializerService(db_session)
        with pytest.raises(ValidationError):
            service.materialize_snapshots_for(current_business_date())
        with pytest.raises(ValidationError):
            service.materialize_snapshots_for(current_business_date() + timedelta(days=3))

    def test_malformed_date_rejected(self, db_session: Session):
        with pytest.raises(ValidationError):
            SnapshotMaterializerService(db_session).materialize_snapshots_for("2024-1-5")

    def test_no_items_is_not_an_error(self, db_session: Session, company):
        result = SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        assert result.success
        assert result.processed_count == 0
        assert result.errors == []


class TestNameResolutionFailures:
    """Items the catalog cannot name are skipped, not fatal"""

    def test_failed_item_is_skipped(self, db_session: Session, company, catalog, flour_item, box_item):
        flour_catalog_id = catalog["flour"].id
        db_session.delete(catalog["flour"])
        db_session.commit()

        result = SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        assert result.success
        assert result.processed_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"ingredient {flour_catalog_id}:")
        assert db_session.query(DailyStockSnapshot).filter_by(stock_item_id=flour_item.id).count() == 0

    def test_all_failed(self, db_session: Session, company, catalog, flour_item):
        db_session.delete(catalog["flour"])
        db_session.commit()

        result = SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        assert not result.success
        assert result.processed_count == 0
        assert "No valid snapshots to create" in result.errors


class TestDailySnapshotJob:
    """Execution records around the materializer"""

    def test_default_date_is_yesterday(self):
        assert default_snapshot_date() == days_ago(1)

    def test_double_fire_is_recorded_and_skipped(self, db_session: Session, company, flour_item):
        job = DailySnapshotJob(db_session)

        first, first_result = job.run()
        second, second_result = job.run()

        assert first.status == JobStatus.COMPLETED.value
        assert first.processed_count == 1
        assert first.target_date == days_ago(1)
        assert second.status == JobStatus.SKIPPED.value
        assert second_result.skipped
        assert db_session.query(BatchJobExecution).count() == 2
        assert db_session.query(DailyStockSnapshot).count() == 1

    def test_rejected_run_is_recorded_as_failed(self, db_session: Session):
        with pytest.raises(ValidationError):
            DailySnapshotJob(db_session).run(current_business_date())

        execution = db_session.query(BatchJobExecution).one()
        assert execution.status == JobStatus.FAILED.value
        assert execution.finished_at is not None


class TestListSnapshots:

    def test_range_filter(self, db_session: Session, ledger, company, flour_item):
        service = SnapshotMaterializerService(db_session)
        for n in (4, 3, 2):
            service.materialize_snapshots_for(days_ago(n))

        rows, total = service.list_snapshots(company.id, start_date=days_ago(3))

        assert total == 2
        assert [r.snapshot_date for r in rows] == [days_ago(2), days_ago(3)]
