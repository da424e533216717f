"""
Test Configuration and Fixtures
Shared testing infrastructure for the stock ledger
"""
import os

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["LOG_TO_FILE"] = "false"
os.environ["REFERENCE_TIMEZONE"] = "UTC"

from datetime import date, datetime, time, timedelta
from typing import Dict, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import stockledger.models  # noqa: F401  registers every table
from stockledger.core.database import Base, enforce_sqlite_foreign_keys, get_db
from stockledger.core.security import create_access_token
from stockledger.main import app
from stockledger.models.access import Company, CompanyMembership
from stockledger.models.catalog import Container, Ingredient
from stockledger.services.stock.ledger import StockLedgerService
from stockledger.services.stock.periods import current_business_date

TEST_DATABASE_URL = "sqlite://"

engine = enforce_sqlite_foreign_keys(create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

MEMBER_ID = "user-owner"
OUTSIDER_ID = "user-outsider"


def at(day: date, hour: int = 12, minute: int = 0) -> datetime:
    """Naive UTC timestamp on a calendar day"""
    return datetime.combine(day, time(hour, minute))


def days_ago(n: int) -> date:
    return current_business_date() - timedelta(days=n)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def company(db_session: Session) -> Company:
    """A company with one member"""
    company = Company(name="Seoul Catering")
    db_session.add(company)
    db_session.flush()
    db_session.add(CompanyMembership(company_id=company.id, user_id=MEMBER_ID, role="owner"))
    db_session.commit()
    return company


@pytest.fixture
def other_company(db_session: Session) -> Company:
    """A second tenant the test member does not belong to"""
    company = Company(name="Busan Banquets")
    db_session.add(company)
    db_session.flush()
    db_session.add(CompanyMembership(company_id=company.id, user_id=OUTSIDER_ID, role="owner"))
    db_session.commit()
    return company


@pytest.fixture
def catalog(db_session: Session, company: Company) -> Dict[str, object]:
    """Ingredients and containers for the company"""
    rows = {
        "flour": Ingredient(company_id=company.id, name="Flour", code_name="FL-01", unit="kg", stock_grade="A"),
        "sugar": Ingredient(company_id=company.id, name="Sugar", code_name="SU-01", unit="kg", stock_grade="B"),
        "garnish": Ingredient(company_id=company.id, name="Garnish", unit="g", stock_grade=None),
        "lunchbox": Container(company_id=company.id, name="Lunch Box", code_name="BOX-L"),
    }
    db_session.add_all(rows.values())
    db_session.flush()
    rows["lid"] = Container(company_id=company.id, name="Lunch Box Lid", parent_container_id=rows["lunchbox"].id)
    db_session.add(rows["lid"])
    db_session.commit()
    return rows


@pytest.fixture
def ledger(db_session: Session) -> StockLedgerService:
    return StockLedgerService(db_session)


@pytest.fixture
def flour_item(ledger: StockLedgerService, company: Company, catalog):
    """Tracked flour, starting empty"""
    return ledger.register_stock_item(company.id, "ingredient", catalog["flour"].id, user_id=MEMBER_ID)


@pytest.fixture
def box_item(ledger: StockLedgerService, company: Company, catalog):
    """Tracked lunch boxes, starting empty"""
    return ledger.register_stock_item(company.id, "container", catalog["lunchbox"].id, user_id=MEMBER_ID)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Bearer headers for the company member"""
    return {"Authorization": f"Bearer {create_access_token(MEMBER_ID)}"}


@pytest.fixture
def outsider_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(OUTSIDER_ID)}"}


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer test-cron-secret"}
