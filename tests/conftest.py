import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient

_db_dir = tempfile.mkdtemp(prefix="hotel_ledger_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["STRIPE_SANDBOX"] = "false"
os.environ["STRIPE_WEBHOOK_VERIFY"] = "false"
os.environ["CRON_SECRET"] = ""

from hotel_ledger.api.deps import get_gateway  # noqa: E402
from hotel_ledger.core.errors import GatewayTimeoutError  # noqa: E402
from hotel_ledger.core.security import create_access_token  # noqa: E402
from hotel_ledger.db.session import Base, SessionLocal, engine  # noqa: E402
from hotel_ledger.main import app  # noqa: E402
from hotel_ledger.models.audit_log import AuditLog  # noqa: E402,F401
from hotel_ledger.models.booking import Booking  # noqa: E402
from hotel_ledger.models.email_log import EmailLog  # noqa: E402,F401
from hotel_ledger.models.payment import Payment  # noqa: E402
from hotel_ledger.models.refund import Refund  # noqa: E402,F401
from hotel_ledger.models.room import Room  # noqa: E402
from hotel_ledger.models.user import User  # noqa: E402
from hotel_ledger.models.webhook_event import WebhookEvent  # noqa: E402,F401
from hotel_ledger.services import email_service  # noqa: E402


class FakeGateway:
    """In-memory Stripe double; tests set the statuses it answers with."""

    def __init__(self):
        self.confirm_status = "succeeded"
        self.refund_status = "succeeded"
        self.timeout_on_confirm = False
        self.intents: list[dict] = []
        self.refunds: list[tuple[str, Decimal]] = []

    def create_payment_intent(self, amount, metadata):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({"id": intent_id, "amount": amount, "metadata": metadata})
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "status": "requires_payment_method"}

    def confirm(self, intent_id, payment_method_id):
        if self.timeout_on_confirm:
            raise GatewayTimeoutError("Stripe did not answer within 30s")
        return {"id": intent_id, "status": self.confirm_status, "client_secret": f"{intent_id}_secret",
                "error": None if self.confirm_status == "succeeded" else "Your card was declined."}

    def create_refund(self, transaction_id, amount):
        self.refunds.append((transaction_id, amount))
        return {"id": f"re_test_{len(self.refunds)}", "status": self.refund_status}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def outbox(monkeypatch) -> list:
    sent = []
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: sent.append((to, subject)))
    return sent


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway() -> Generator[FakeGateway, None, None]:
    fake = FakeGateway()
    app.dependency_overrides[get_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture()
def client(gateway) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth():
    def _headers(user_id: str = "guest-1", role: str = "GUEST") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}
    return _headers


@pytest.fixture()
def make_room(db_session):
    def _make(number: str = "101", price: str = "100.00", capacity: int = 2, status: str = "AVAILABLE") -> Room:
        room = Room(number=number, type="DOUBLE", capacity=capacity, price=Decimal(price), status=status)
        db_session.add(room)
        db_session.commit()
        return room
    return _make


@pytest.fixture()
def make_booking(db_session):
    def _make(room: Room, check_in, check_out, status: str = "PENDING", total: str | None = None,
              user_id: str = "guest-1") -> Booking:
        nights = (check_out - check_in).days
        booking = Booking(
            room_id=room.id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            guest_count=1,
            total_price=Decimal(total) if total is not None else Decimal(nights) * room.price,
            status=status,
            paid_amount=Decimal("0"),
            refund_amount=Decimal("0"),
            notes="",
        )
        db_session.add(booking)
        db_session.commit()
        return booking
    return _make


@pytest.fixture()
def make_payment(db_session):
    def _make(booking: Booking, amount: str | None = None, status: str = "COMPLETED", method: str = "CARD",
              transaction_id: str | None = None) -> Payment:
        payment = Payment(
            booking_id=booking.id,
            amount=Decimal(amount) if amount is not None else booking.total_price,
            payment_method=method,
            status=status,
            transaction_id=transaction_id or f"pi_seed_{booking.id}_{status.lower()}",
            processed_at=datetime.now(timezone.utc) if status != "PENDING" else None,
        )
        db_session.add(payment)
        db_session.commit()
        return payment
    return _make


@pytest.fixture()
def make_user(db_session):
    def _make(user_id: str = "guest-1", email: str = "guest@example.com", role: str = "GUEST") -> User:
        user = User(id=user_id, email=email, full_name="Test Guest", role=role, is_active=True)
        db_session.add(user)
        db_session.commit()
        return user
    return _make
