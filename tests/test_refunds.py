from datetime import date
from decimal import Decimal

from hotel_ledger.models.booking import Booking
from hotel_ledger.models.payment import Payment
from hotel_ledger.models.refund import Refund
from hotel_ledger.models.room import Room
from hotel_ledger.services import ledger_service


def _paid_booking(make_room, make_booking, make_payment, method="CARD", total="300.00", status="CONFIRMED"):
    room = make_room(status="OCCUPIED")
    booking = make_booking(room, date(2030, 5, 1), date(2030, 5, 4), status=status, total=total)
    payment = make_payment(booking, amount=total, method=method)
    return booking, payment


def test_refund_never_exceeds_payments(client, auth, make_room, make_booking, make_payment, db_session):
    booking, _ = _paid_booking(make_room, make_booking, make_payment)
    staff = auth("mgr", "MANAGER")
    first = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "200.00", "method": "CASH"},
                        headers=staff)
    assert first.status_code == 201, first.text
    second = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "200.00", "method": "CASH"},
                         headers=staff)
    assert second.status_code == 400
    body = second.json()
    assert body["error"] == "refund_exceeds_available"
    assert Decimal(body["detail"]["available"]) == Decimal("100.00")
    assert Decimal(body["detail"]["requested"]) == Decimal("200.00")

    processed = client.post(f"/api/v1/refunds/{first.json()['id']}/process", headers=staff)
    assert processed.status_code == 200
    assert processed.json()["status"] == "COMPLETED"
    assert processed.json()["transactionId"].startswith("cash_refund_")

    db_session.expire_all()
    assert ledger_service.total_refunded(db_session, booking.id) == Decimal("200.00")
    assert ledger_service.total_refunded(db_session, booking.id) <= ledger_service.total_paid(db_session, booking.id)
    # Partially refunded: the booking keeps its status.
    assert db_session.get(Booking, booking.id).status == "CONFIRMED"


def test_full_stripe_refund_marks_payment_and_booking_refunded(client, auth, gateway, make_room, make_booking,
                                                               make_payment, db_session):
    booking, payment = _paid_booking(make_room, make_booking, make_payment)
    requested = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "300.00"}, headers=auth())
    assert requested.status_code == 201
    assert requested.json()["paymentId"] == payment.id

    # Guests can request but not process.
    assert client.post(f"/api/v1/refunds/{requested.json()['id']}/process", headers=auth()).status_code == 403

    resp = client.post(f"/api/v1/refunds/{requested.json()['id']}/process", headers=auth("admin", "ADMIN"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "COMPLETED"
    assert resp.json()["transactionId"] == "re_test_1"
    assert gateway.refunds == [(payment.transaction_id, Decimal("300.00"))]

    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == "REFUNDED"
    assert db_session.get(Booking, booking.id).status == "REFUNDED"
    # A REFUNDED payment still counts as captured money.
    assert ledger_service.total_paid(db_session, booking.id) == Decimal("300.00")
    assert ledger_service.available_for_refund(db_session, booking.id) == Decimal("0.00")

    replay = client.post(f"/api/v1/refunds/{requested.json()['id']}/process", headers=auth("admin", "ADMIN"))
    assert replay.status_code == 200
    assert len(gateway.refunds) == 1


def test_pending_gateway_refund_goes_processing(client, auth, gateway, make_room, make_booking, make_payment,
                                                db_session):
    gateway.refund_status = "pending"
    booking, _ = _paid_booking(make_room, make_booking, make_payment)
    refund_id = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "50.00"},
                            headers=auth()).json()["id"]
    resp = client.post(f"/api/v1/refunds/{refund_id}/process", headers=auth("admin", "ADMIN"))
    assert resp.json()["status"] == "PROCESSING"
    db_session.expire_all()
    assert ledger_service.total_refunded(db_session, booking.id) == Decimal("0.00")
    assert ledger_service.refundable_balance(db_session, booking.id) == Decimal("250.00")


def test_refunds_on_cancelled_booking_leave_status(client, auth, make_room, make_booking, make_payment, db_session):
    booking, _ = _paid_booking(make_room, make_booking, make_payment, method="BANK_TRANSFER", status="CANCELLED")
    refund_id = client.post("/api/v1/refunds", json={
        "bookingId": booking.id, "amount": "300.00", "method": "BANK_TRANSFER",
    }, headers=auth()).json()["id"]
    resp = client.post(f"/api/v1/refunds/{refund_id}/process", headers=auth("admin", "ADMIN"))
    assert resp.json()["status"] == "COMPLETED"
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == "CANCELLED"


def test_stripe_refund_needs_card_payment(client, auth, make_room, make_booking, make_payment):
    booking, _ = _paid_booking(make_room, make_booking, make_payment, method="CASH")
    resp = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "10.00", "method": "STRIPE"},
                       headers=auth())
    assert resp.status_code == 400


def test_cancel_refund_releases_reservation(client, auth, make_room, make_booking, make_payment, db_session):
    booking, _ = _paid_booking(make_room, make_booking, make_payment)
    refund_id = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "300.00"},
                            headers=auth()).json()["id"]
    assert client.post(f"/api/v1/refunds/{refund_id}/cancel", headers=auth()).json()["status"] == "CANCELLED"
    assert client.post(f"/api/v1/refunds/{refund_id}/cancel", headers=auth()).status_code == 409
    assert client.post(f"/api/v1/refunds/{refund_id}/process", headers=auth("admin", "ADMIN")).status_code == 409
    db_session.expire_all()
    assert db_session.get(Refund, refund_id).status == "CANCELLED"
    assert ledger_service.refundable_balance(db_session, booking.id) == Decimal("300.00")


def test_refund_without_payment_is_rejected(client, auth, make_room, make_booking):
    room = make_room()
    booking = make_booking(room, date(2030, 5, 1), date(2030, 5, 2))
    resp = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "1.00", "method": "CASH"},
                       headers=auth())
    assert resp.status_code == 400
    assert resp.json()["error"] == "refund_exceeds_available"


def test_full_refund_releases_the_room(client, auth, make_room, make_booking, make_payment, db_session):
    booking, _ = _paid_booking(make_room, make_booking, make_payment, method="CASH")
    staff = auth("mgr", "MANAGER")
    requested = client.post("/api/v1/refunds", json={"bookingId": booking.id, "amount": "300.00", "method": "CASH"},
                            headers=staff)
    processed = client.post(f"/api/v1/refunds/{requested.json()['id']}/process", headers=staff)
    assert processed.json()["status"] == "COMPLETED"

    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == "REFUNDED"
    assert db_session.get(Room, booking.room_id).status == "AVAILABLE"

    rebooked = client.post("/api/v1/bookings", headers=auth("guest-2", "GUEST"), json={
        "roomId": booking.room_id, "checkIn": "2030-05-01", "checkOut": "2030-05-04",
    })
    assert rebooked.status_code == 201, rebooked.text
