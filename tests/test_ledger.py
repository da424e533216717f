"""
Tests for the Stock Ledger Service
Transaction sign rules, cache consistency, enrollment and resync
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import MEMBER_ID, at, days_ago
from stockledger.core.config import settings
from stockledger.core.exceptions import (
    BackdatedTransactionError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from stockledger.models.access import Company
from stockledger.models.stock import DailyStockSnapshot, StockItem, StockTransaction
from stockledger.services.stock.ledger import (
    StockLedgerService, fold_transactions, signed_effect
)
from stockledger.services.stock.snapshots import SnapshotMaterializerService
from stockledger.services.stock.stock_audit import StockAuditService


def txn(kind, qty):
    return SimpleNamespace(transaction_type=kind, quantity=Decimal(qty))


class TestSignRules:
    """Signed effect of each transaction type"""

    def test_incoming_adds(self):
        assert signed_effect("incoming", Decimal("5")) == Decimal("5")

    def test_outgoing_and_disposal_subtract(self):
        assert signed_effect("outgoing", Decimal("5")) == Decimal("-5")
        assert signed_effect("disposal", Decimal("1.5")) == Decimal("-1.5")

    def test_adjustment_keeps_its_sign(self):
        assert signed_effect("adjustment", Decimal("-3")) == Decimal("-3")
        assert signed_effect("adjustment", Decimal("3")) == Decimal("3")

    def test_fold_from_start(self):
        history = [txn("incoming", "10"), txn("outgoing", "3"), txn("disposal", "1"), txn("adjustment", "-2")]
        assert fold_transactions(history) == Decimal("4")
        assert fold_transactions(history, start=Decimal("6")) == Decimal("10")

    def test_fold_of_nothing_is_start(self):
        assert fold_transactions([]) == Decimal("0")


class TestAppendTransaction:
    """Ledger appends and the cache they maintain"""

    def test_incoming_moves_cache(self, ledger: StockLedgerService, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", Decimal("12.5"), user_id=MEMBER_ID)

        item = ledger.get_stock_item(company.id, flour_item.id)
        assert item.current_quantity == Decimal("12.5")

    def test_cache_equals_fold_after_mixed_history(self, ledger: StockLedgerService, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 20)
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 7)
        ledger.append_transaction(company.id, flour_item.id, "disposal", "0.5")
        ledger.append_transaction(company.id, flour_item.id, "adjustment", -2)
        ledger.append_transaction(company.id, flour_item.id, "incoming", 1.25)

        item = ledger.get_stock_item(company.id, flour_item.id)
        folded = fold_transactions(ledger.transactions_for_item(flour_item.id))
        assert item.current_quantity == folded == Decimal("11.75")

    def test_outgoing_may_drive_stock_negative(self, ledger: StockLedgerService, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 4)
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("-4")

    def test_negative_magnitude_rejected(self, ledger: StockLedgerService, db_session: Session, company, flour_item):
        with pytest.raises(ValidationError, match="must not be negative"):
            ledger.append_transaction(company.id, flour_item.id, "outgoing", -1)

        assert db_session.query(StockTransaction).count() == 0
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == 0

    def test_zero_adjustment_rejected(self, ledger: StockLedgerService, company, flour_item):
        with pytest.raises(ValidationError):
            ledger.append_transaction(company.id, flour_item.id, "adjustment", 0)

    def test_unknown_type_rejected(self, ledger: StockLedgerService, company, flour_item):
        with pytest.raises(ValidationError, match="Unknown transaction type"):
            ledger.append_transaction(company.id, flour_item.id, "transfer", 1)

    def test_non_numeric_quantity_rejected(self, ledger: StockLedgerService, company, flour_item):
        with pytest.raises(ValidationError):
            ledger.append_transaction(company.id, flour_item.id, "incoming", "lots")

    @pytest.mark.parametrize("qty", [Decimal("1e30"), Decimal("1000000000000"), Decimal("999999999999.9999")])
    def test_quantity_beyond_column_precision_rejected(self, ledger: StockLedgerService, db_session: Session,
                                                       company, flour_item, qty):
        with pytest.raises(ValidationError, match="integer digits"):
            ledger.append_transaction(company.id, flour_item.id, "incoming", qty)

        assert db_session.query(StockTransaction).count() == 0
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == 0

    def test_largest_storable_quantity_accepted(self, ledger: StockLedgerService, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", Decimal("999999999999"))
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("999999999999")

    def test_missing_item(self, ledger: StockLedgerService, company):
        with pytest.raises(NotFoundError):
            ledger.append_transaction(company.id, 9999, "incoming", 1)

    def test_item_of_another_company(self, ledger: StockLedgerService, other_company, flour_item):
        with pytest.raises(InsufficientPermissionsError):
            ledger.append_transaction(other_company.id, flour_item.id, "incoming", 1)

    def test_aware_timestamp_stored_as_utc(self, ledger: StockLedgerService, company, flour_item):
        kst = timezone(timedelta(hours=9))
        stored = ledger.append_transaction(
            company.id, flour_item.id, "incoming", 1,
            transaction_date=datetime(2024, 3, 1, 9, 0, tzinfo=kst),
        )
        assert stored.transaction_date == datetime(2024, 3, 1, 0, 0)

    def test_default_timestamp_is_now(self, ledger: StockLedgerService, company, flour_item):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        stored = ledger.append_transaction(company.id, flour_item.id, "incoming", 1)
        assert stored.transaction_date >= before - timedelta(seconds=1)


class TestSnapshotCutoff:
    """Backdated transactions into materialized days"""

    def test_backdated_into_snapshotted_day_rejected(self, ledger: StockLedgerService, db_session: Session,
                                                     company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(3)))
        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        with pytest.raises(BackdatedTransactionError):
            ledger.append_transaction(company.id, flour_item.id, "outgoing", 2, transaction_date=at(days_ago(2)))

        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("10")

    def test_current_day_still_accepted(self, ledger: StockLedgerService, db_session: Session, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10, transaction_date=at(days_ago(3)))
        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        ledger.append_transaction(company.id, flour_item.id, "outgoing", 2)
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("8")

    def test_cutoff_can_be_disabled(self, monkeypatch, ledger: StockLedgerService, db_session: Session,
                                    company, flour_item):
        monkeypatch.setattr(settings, "ENFORCE_SNAPSHOT_CUTOFF", False)
        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        ledger.append_transaction(company.id, flour_item.id, "incoming", 3, transaction_date=at(days_ago(2)))
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("3")


class TestAppendTransactions:
    """Grouped appends are all-or-nothing"""

    def test_group_applies_every_entry(self, ledger: StockLedgerService, company, flour_item, box_item):
        posted = ledger.append_transactions(company.id, [
            {"stock_item_id": flour_item.id, "transaction_type": "incoming", "quantity": 5},
            {"stock_item_id": box_item.id, "transaction_type": "incoming", "quantity": 100},
            {"stock_item_id": flour_item.id, "transaction_type": "outgoing", "quantity": 2},
        ], user_id=MEMBER_ID)

        assert len(posted) == 3
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("3")
        assert ledger.get_stock_item(company.id, box_item.id).current_quantity == Decimal("100")

    def test_invalid_entry_rejects_group(self, ledger: StockLedgerService, db_session: Session,
                                         company, flour_item):
        with pytest.raises(ValidationError, match="entry 1"):
            ledger.append_transactions(company.id, [
                {"stock_item_id": flour_item.id, "transaction_type": "incoming", "quantity": 5},
                {"stock_item_id": flour_item.id, "transaction_type": "outgoing", "quantity": -1},
            ])
        assert db_session.query(StockTransaction).count() == 0

    def test_missing_item_rolls_back_group(self, ledger: StockLedgerService, db_session: Session,
                                           company, flour_item):
        with pytest.raises(NotFoundError):
            ledger.append_transactions(company.id, [
                {"stock_item_id": flour_item.id, "transaction_type": "incoming", "quantity": 5},
                {"stock_item_id": 4242, "transaction_type": "incoming", "quantity": 1},
            ])
        assert db_session.query(StockTransaction).count() == 0
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == 0

    def test_empty_group_rejected(self, ledger: StockLedgerService, company):
        with pytest.raises(ValidationError):
            ledger.append_transactions(company.id, [])


class TestEnrollment:
    """Registering and syncing stock items from the catalog"""

    def test_opening_quantity_is_an_adjustment(self, ledger: StockLedgerService, company, catalog):
        item = ledger.register_stock_item(company.id, "ingredient", catalog["sugar"].id,
                                          opening_quantity=Decimal("8"))

        history = ledger.transactions_for_item(item.id)
        assert [t.transaction_type for t in history] == ["adjustment"]
        assert item.current_quantity == Decimal("8")
        assert item.unit == "kg"

    def test_duplicate_registration_rejected(self, ledger: StockLedgerService, company, catalog, flour_item):
        with pytest.raises(ValidationError, match="already tracked"):
            ledger.register_stock_item(company.id, "ingredient", catalog["flour"].id)

    def test_unknown_catalog_entry(self, ledger: StockLedgerService, company, catalog):
        with pytest.raises(NotFoundError):
            ledger.register_stock_item(company.id, "container", 777)

    def test_sync_enrolls_graded_ingredients_and_top_level_containers(
        self, ledger: StockLedgerService, db_session: Session, company, catalog
    ):
        result = ledger.sync_stock_items(company.id, user_id=MEMBER_ID)

        assert result.added == 3
        assert result.ingredients_found == 2
        assert result.containers_found == 1
        tracked = {(i.item_type, i.item_id): i for i in db_session.query(StockItem).all()}
        assert ("ingredient", catalog["garnish"].id) not in tracked
        assert ("container", catalog["lid"].id) not in tracked
        assert tracked[("container", catalog["lunchbox"].id)].unit == settings.DEFAULT_CONTAINER_UNIT
        assert all(i.current_quantity == 0 for i in tracked.values())

    def test_sync_is_repeatable(self, ledger: StockLedgerService, company, catalog, flour_item):
        first = ledger.sync_stock_items(company.id)
        second = ledger.sync_stock_items(company.id)

        assert first.added == 2
        assert second.added == 0


class TestResync:
    """Rebuilding the cache from the ledger"""

    def test_resync_repairs_drift(self, ledger: StockLedgerService, db_session: Session, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10)
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 4)

        # Simulate an out-of-band write
        item = db_session.get(StockItem, flour_item.id)
        item.current_quantity = Decimal("99")
        db_session.commit()

        result = ledger.resync_stock_item(company.id, flour_item.id)

        assert result.previous_quantity == Decimal("99")
        assert result.recomputed_quantity == Decimal("6")
        assert result.drift == Decimal("-93")
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("6")

    def test_resync_without_drift(self, ledger: StockLedgerService, company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10)
        assert ledger.resync_stock_item(company.id, flour_item.id).drift == 0

    def test_resync_company_reports_only_drifted(self, ledger: StockLedgerService, db_session: Session,
                                                 company, flour_item, box_item):
        ledger.append_transaction(company.id, box_item.id, "incoming", 50)
        db_session.get(StockItem, flour_item.id).current_quantity = Decimal("5")
        db_session.commit()

        drifted = ledger.resync_company(company.id)

        assert [r.stock_item_id for r in drifted] == [flour_item.id]


class TestListTransactions:

    def test_filters_and_pagination(self, ledger: StockLedgerService, company, flour_item, box_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 5, transaction_date=at(days_ago(5)))
        ledger.append_transaction(company.id, flour_item.id, "outgoing", 1, transaction_date=at(days_ago(4)))
        ledger.append_transaction(company.id, box_item.id, "incoming", 9, transaction_date=at(days_ago(4)))

        rows, total = ledger.list_transactions(company.id, stock_item_id=flour_item.id)
        assert total == 2
        assert rows[0].transaction_type == "outgoing"

        rows, total = ledger.list_transactions(company.id, start_date=days_ago(4), end_date=days_ago(4))
        assert total == 2

        rows, total = ledger.list_transactions(company.id, transaction_type="incoming", limit=1)
        assert total == 2
        assert len(rows) == 1


class TestRetention:
    """Referenced stock items cannot be removed out from under the ledger"""

    def _delete(self, db_session: Session, obj):
        db_session.delete(obj)
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_item_with_transactions_is_kept(self, ledger: StockLedgerService, db_session: Session,
                                            company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 10)

        self._delete(db_session, db_session.get(StockItem, flour_item.id))

        assert db_session.query(StockTransaction).filter_by(stock_item_id=flour_item.id).count() == 1
        assert ledger.get_stock_item(company.id, flour_item.id).current_quantity == Decimal("10")

    def test_item_with_snapshots_is_kept(self, db_session: Session, company, flour_item):
        SnapshotMaterializerService(db_session).materialize_snapshots_for(days_ago(1))

        self._delete(db_session, db_session.get(StockItem, flour_item.id))

        assert db_session.query(DailyStockSnapshot).filter_by(stock_item_id=flour_item.id).count() == 1

    def test_item_on_an_audit_is_kept(self, db_session: Session, company, flour_item):
        StockAuditService(db_session).create_audit(company.id, MEMBER_ID, "Spot check")

        self._delete(db_session, db_session.get(StockItem, flour_item.id))

        assert db_session.get(StockItem, flour_item.id) is not None

    def test_company_with_ledger_is_kept(self, ledger: StockLedgerService, db_session: Session,
                                         company, flour_item):
        ledger.append_transaction(company.id, flour_item.id, "incoming", 3)

        self._delete(db_session, db_session.get(Company, company.id))

        assert db_session.query(StockTransaction).count() == 1
