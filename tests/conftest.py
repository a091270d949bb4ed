"""Shared test fixtures for all test modules."""

import contextlib
from collections.abc import Iterator
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import roomledger.models  # noqa: F401
from roomledger.core import database as db_module
from roomledger.core.auth import ROLE_ADMIN, ROLE_CUSTOMER, issue_session_token
from roomledger.core.config import LedgerConfig
from roomledger.core.database import Base, get_db
from roomledger.models.booking import Booking, BookingStatus, FinancialStatus, PaymentMethod
from roomledger.models.credit import Credit, CreditSource, CreditStatus
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.repositories.credit_repository import CreditRepository
from roomledger.services.coupon_registry import CouponConfig
from roomledger.services.price_audit import PriceAuditSnapshot

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

CUSTOMER_ID = "user-customer-1"
CUSTOMER_EMAIL = "customer@example.com"
OTHER_CUSTOMER_ID = "user-customer-2"
ADMIN_ID = "user-admin-1"
ADMIN_EMAIL = "admin@example.com"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Create a database session for direct repository and service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig(environment="test")


def make_booking(
    db: Session,
    user_id: str = CUSTOMER_ID,
    gross_amount: int = 10000,
    discount_amount: int = 0,
    credits_used: int = 0,
    coupon: CouponConfig | None = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
    financial_status: FinancialStatus = FinancialStatus.PAID,
    **fields: Any,
) -> Booking:
    """Insert a committed booking carrying a price audit snapshot."""
    booking = BookingRepository(db).create(
        user_id=user_id,
        status=status.value,
        financial_status=financial_status.value,
        payment_method=PaymentMethod.PIX.value,
        **fields,
    )
    snapshot = PriceAuditSnapshot.build(
        gross_amount=gross_amount,
        discount_amount=discount_amount,
        credits_used=credits_used,
        coupon_code=coupon.code if coupon else None,
        coupon_snapshot=coupon.to_snapshot() if coupon else None,
    )
    snapshot.apply_to(booking)
    db.commit()
    db.refresh(booking)
    return booking


def grant_credits(
    db: Session, user_id: str = CUSTOMER_ID, amount: int = 5000, **fields: Any
) -> Credit:
    """Insert a committed, confirmed credit lot."""
    credit = CreditRepository(db).create(
        user_id=user_id,
        amount=amount,
        remaining_amount=amount,
        source=CreditSource.MANUAL.value,
        status=CreditStatus.CONFIRMED.value,
        **fields,
    )
    db.commit()
    db.refresh(credit)
    return credit


def bearer(user_id: str, email: str | None = None, role: str = ROLE_CUSTOMER) -> dict[str, str]:
    """Authorization header for a session token."""
    return {"Authorization": f"Bearer {issue_session_token(user_id, email=email, role=role)}"}


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return bearer(CUSTOMER_ID, CUSTOMER_EMAIL)


@pytest.fixture
def other_customer_headers() -> dict[str, str]:
    return bearer(OTHER_CUSTOMER_ID, "other@example.com")


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return bearer(ADMIN_ID, ADMIN_EMAIL, role=ROLE_ADMIN)
