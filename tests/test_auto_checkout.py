from datetime import datetime, timedelta, timezone

from hotel_ledger.core.config import settings
from hotel_ledger.core.permissions import SYSTEM_ACTOR
from hotel_ledger.models.audit_log import AuditLog
from hotel_ledger.models.booking import Booking
from hotel_ledger.models.room import Room
from hotel_ledger.services import auto_checkout_service
from hotel_ledger.services.booking_service import today_utc


def _checked_in(make_room, make_booking, number, check_out):
    room = make_room(number=number, status="OCCUPIED")
    return make_booking(room, check_out - timedelta(days=2), check_out, status="CHECKED_IN")


def test_only_stays_past_their_checkout_day_are_listed(db_session, make_room, make_booking):
    today = today_utc()
    due = _checked_in(make_room, make_booking, "101", today)
    _checked_in(make_room, make_booking, "102", today + timedelta(days=1))
    now = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=11)
    assert [b.id for b in auto_checkout_service.list_expired_checkins(db_session, now)] == [due.id]


def test_partial_failure_does_not_stop_the_sweep(db_session, monkeypatch, make_room, make_booking):
    yesterday = today_utc() - timedelta(days=1)
    b1 = _checked_in(make_room, make_booking, "101", yesterday)
    b2 = _checked_in(make_room, make_booking, "102", yesterday)
    b3 = _checked_in(make_room, make_booking, "103", yesterday)

    original = auto_checkout_service._auto_checkout_one

    def flaky(db, booking_id, now):
        if booking_id == b2.id:
            raise RuntimeError("lock timeout")
        return original(db, booking_id, now)

    monkeypatch.setattr(auto_checkout_service, "_auto_checkout_one", flaky)
    result = auto_checkout_service.process_auto_checkout(db_session)

    assert result["processedCount"] == 2
    assert result["failedCount"] == 1
    assert result["processed"] == [b1.id, b3.id]
    assert result["errors"] == [{"bookingId": b2.id, "error": "lock timeout"}]

    db_session.expire_all()
    for b in (b1, b3):
        fresh = db_session.get(Booking, b.id)
        assert fresh.status == "CHECKED_OUT"
        assert fresh.actual_check_out == yesterday
        assert "Auto-checkout:" in fresh.notes
        assert db_session.get(Room, fresh.room_id).status == "AVAILABLE"
    assert db_session.get(Booking, b2.id).status == "CHECKED_IN"


def test_sweep_is_idempotent(db_session, make_room, make_booking):
    booking = _checked_in(make_room, make_booking, "101", today_utc() - timedelta(days=1))
    assert auto_checkout_service.process_auto_checkout(db_session)["processedCount"] == 1
    assert auto_checkout_service.process_auto_checkout(db_session)["processedCount"] == 0
    trail = db_session.query(AuditLog).filter(AuditLog.action == "booking.auto_checkout").all()
    assert [(a.entity_id, a.actor_user_id) for a in trail] == [(str(booking.id), SYSTEM_ACTOR.user_id)]


def test_http_entry_points(client, auth, monkeypatch, make_room, make_booking):
    _checked_in(make_room, make_booking, "101", today_utc() - timedelta(days=1))
    assert client.get("/api/v1/bookings/auto-checkout", headers=auth()).status_code == 403
    preview = client.get("/api/v1/bookings/auto-checkout", headers=auth("desk-1", "STAFF"))
    assert preview.status_code == 200
    assert len(preview.json()) == 1

    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    assert client.get("/api/v1/cron/auto-checkout").status_code == 401
    resp = client.get("/api/v1/cron/auto-checkout", headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    assert resp.json()["processedCount"] == 1

    again = client.post("/api/v1/bookings/auto-checkout", headers=auth("desk-1", "STAFF"))
    assert again.json() == {"processedCount": 0, "failedCount": 0, "processed": [], "errors": []}
