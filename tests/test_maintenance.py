from datetime import date
from decimal import Decimal

from sqlalchemy import select

from hotel_ledger.models.booking import Booking
from hotel_ledger.models.refund import Refund


def test_maintenance_is_admin_only(client, auth):
    for path in ("/api/v1/admin/maintenance/refresh-totals", "/api/v1/admin/maintenance/migrate-legacy-refunds"):
        assert client.post(path, headers=auth("mgr", "MANAGER")).status_code == 403


def test_reprice_skips_paid_bookings(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room(price="100.00")
    unpaid = make_booking(room, date(2030, 1, 1), date(2030, 1, 3))
    paid = make_booking(room, date(2030, 2, 1), date(2030, 2, 3))
    make_payment(paid)
    room.price = Decimal("120.00")
    db_session.commit()

    resp = client.post("/api/v1/admin/maintenance/reprice-bookings", params={"roomId": room.id},
                       headers=auth("admin", "ADMIN"))
    assert resp.status_code == 200
    assert resp.json()["updatedCount"] == 1

    db_session.expire_all()
    assert db_session.get(Booking, unpaid.id).total_price == Decimal("240.00")
    assert db_session.get(Booking, paid.id).total_price == Decimal("200.00")


def test_refresh_totals_rebuilds_paid_amount_cache(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room()
    booking = make_booking(room, date(2030, 1, 1), date(2030, 1, 3), status="CONFIRMED")
    make_payment(booking)
    resp = client.post("/api/v1/admin/maintenance/refresh-totals", headers=auth("admin", "ADMIN"))
    assert resp.json() == {"changedCount": 1}
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).paid_amount == Decimal("200.00")


def test_migrate_legacy_refunds_once(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room()
    booking = make_booking(room, date(2030, 1, 1), date(2030, 1, 3), status="REFUNDED")
    payment = make_payment(booking, status="REFUNDED")

    first = client.post("/api/v1/admin/maintenance/migrate-legacy-refunds", headers=auth("admin", "ADMIN"))
    assert first.json() == {"createdCount": 1, "paymentIds": [payment.id]}
    second = client.post("/api/v1/admin/maintenance/migrate-legacy-refunds", headers=auth("admin", "ADMIN"))
    assert second.json()["createdCount"] == 0

    rows = db_session.execute(select(Refund).where(Refund.booking_id == booking.id)).scalars().all()
    assert [(r.status, r.transaction_id, r.amount) for r in rows] == [("COMPLETED", f"migrated_{payment.id}", Decimal("200.00"))]


def test_audit_trail_records_maintenance_runs(client, auth):
    client.post("/api/v1/admin/maintenance/refresh-totals", headers=auth("admin", "ADMIN"))
    logs = client.get("/api/v1/admin/audit-logs", params={"entityType": "booking"}, headers=auth("admin", "ADMIN"))
    assert logs.status_code == 200
    assert [(e["action"], e["actor"]) for e in logs.json()] == [("maintenance.refresh_totals", "admin")]
