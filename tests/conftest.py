"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database shared through a StaticPool, with
get_db overridden so that requests and assertions see the same session.
"""

import os

# Must be set before buuk.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""

from datetime import date, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from buuk.database import Base, get_db  # noqa: E402
from buuk.domain.payments.router import (  # noqa: E402
    get_notifier,
    get_paypal_client,
    get_stripe_client,
    get_stripe_provider,
)
from buuk.domain.payments.providers import StripeProvider  # noqa: E402
from buuk.main import app  # noqa: E402
from buuk.models import (  # noqa: E402
    Booking,
    Business,
    Service,
    ServiceDuration,
    SiteSetting,
    Specialist,
    WorkingHours,
)

TEST_WEBHOOK_SECRET = "whsec_test_secret"

# 2025-06-10 is a Tuesday (day_of_week 2 with 0=Sunday)
BOOKING_DAY = date(2025, 6, 10)


@pytest.fixture(scope="function")
def engine():
    """
    In-memory SQLite engine.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is emitted
    explicitly and the driver is put in autocommit mode.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


class RecordingNotifier:
    """Notifier that records what would have been sent"""

    def __init__(self):
        self.sent = []

    async def dispatch(self, notifications):
        self.sent.extend(notifications)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def stripe_provider():
    return StripeProvider(webhook_secret=TEST_WEBHOOK_SECRET)


@pytest.fixture
def client(db, notifier, stripe_provider):
    """TestClient with the database, notifier and Stripe secret overridden"""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_stripe_provider] = lambda: stripe_provider
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def override_provider_clients():
    """Install fake Stripe / PayPal REST clients on the app"""

    def install(stripe=None, paypal=None):
        if stripe is not None:
            app.dependency_overrides[get_stripe_client] = lambda: stripe
        if paypal is not None:
            app.dependency_overrides[get_paypal_client] = lambda: paypal

    return install


# ============================================================================
# DATA BUILDERS
# ============================================================================


@pytest.fixture
def business(db):
    business = Business(name="Studio Nord", subdomain="studio-nord", address="Main St 1")
    db.add(business)
    db.commit()
    return business


@pytest.fixture
def salon(db, business):
    """
    One specialist working Tuesdays 09:00-17:00 and a 60-minute service without
    buffers priced at 50.00.
    """
    service = Service(business_id=business.id, name="Haircut", buffer_before=0, buffer_after=0)
    specialist = Specialist(business_id=business.id, name="Sam")
    db.add_all([service, specialist])
    db.flush()

    duration = ServiceDuration(service_id=service.id, duration_minutes=60, price_cents=5000)
    hours = WorkingHours(
        specialist_id=specialist.id,
        day_of_week=2,
        is_available=True,
        start_time=time(9, 0),
        end_time=time(17, 0),
    )
    db.add_all([duration, hours])
    db.commit()
    return {"business": business, "service": service, "specialist": specialist, "duration": duration}


def make_booking(db, salon, start=time(10, 0), **overrides) -> Booking:
    values = dict(
        business_id=salon["business"].id,
        service_id=salon["service"].id,
        duration_id=salon["duration"].id,
        specialist_id=salon["specialist"].id,
        booking_date=BOOKING_DAY,
        start_time=start,
        customer_name="Alex Doe",
        customer_email="alex@example.com",
        status="pending",
        payment_status="pending",
        payment_state="awaiting_capture",
        payment_method="card",
        amount_cents=5000,
    )
    values.update(overrides)
    booking = Booking(**values)
    db.add(booking)
    db.commit()
    return booking


def add_setting(db, business_id: str, key: str, value: str) -> None:
    db.add(SiteSetting(business_id=business_id, key=key, value=value, category="payments"))
    db.commit()
