from datetime import date
from decimal import Decimal

from hotel_ledger.core.permissions import ActorContext, Role
from hotel_ledger.models.refund import Refund
from hotel_ledger.services import reconciliation_service


def test_overview_is_computed_from_ledger_rows(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room(status="OCCUPIED")
    a = make_booking(room, date(2030, 1, 1), date(2030, 1, 3), status="CONFIRMED")
    b = make_booking(room, date(2030, 2, 1), date(2030, 2, 5), status="CONFIRMED")
    c = make_booking(room, date(2030, 3, 1), date(2030, 3, 2))
    make_payment(a, method="CARD")
    make_payment(b, method="CASH")
    make_payment(c, status="FAILED", transaction_id="pi_failed")
    make_payment(c, status="PENDING", transaction_id="pi_pending")
    db_session.add(Refund(booking_id=b.id, amount=Decimal("150.00"), refund_method="CASH", status="COMPLETED",
                          transaction_id="cash_refund_1", requested_by="mgr", notes=""))
    db_session.commit()

    actor = ActorContext("mgr", Role.MANAGER)
    overview = reconciliation_service.financial_overview(db_session, actor)
    assert overview["grossRevenue"] == Decimal("600.00")
    assert overview["totalRefunds"] == Decimal("150.00")
    assert overview["netRevenue"] == Decimal("450.00")
    assert overview["refundRate"] == Decimal("25.00")
    assert overview["failedPayments"] == {"count": 1, "amount": Decimal("100.00")}
    assert overview["pendingPayments"] == {"count": 1, "amount": Decimal("100.00")}
    assert overview["revenueByMethod"] == {"CARD": Decimal("200.00"), "CASH": Decimal("400.00")}

    assert client.get("/api/v1/financial/overview", headers=auth()).status_code == 403
    resp = client.get("/api/v1/financial/overview", headers=auth("mgr", "MANAGER"))
    assert resp.status_code == 200
    assert float(resp.json()["netRevenue"]) == 450.0


def test_refund_rate_is_zero_without_revenue(db_session):
    overview = reconciliation_service.financial_overview(db_session, ActorContext("admin", Role.ADMIN))
    assert overview["grossRevenue"] == Decimal("0.00")
    assert overview["refundRate"] == Decimal("0.00")


def test_booking_balance(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room(status="OCCUPIED")
    booking = make_booking(room, date(2030, 1, 1), date(2030, 1, 3), status="CONFIRMED")
    make_payment(booking)
    db_session.add(Refund(booking_id=booking.id, amount=Decimal("40.00"), refund_method="CASH", status="PENDING",
                          transaction_id="ref_1", requested_by="guest-1", notes=""))
    db_session.commit()
    resp = client.get(f"/api/v1/financial/bookings/{booking.id}/balance", headers=auth())
    assert resp.status_code == 200
    body = resp.json()
    assert float(body["paid"]) == 200.0
    assert float(body["pendingRefunds"]) == 40.0
    assert float(body["refundableBalance"]) == 160.0
    assert float(body["outstanding"]) == 0.0
