import random
from datetime import date, timedelta

from hotel_ledger.models.booking import Booking
from hotel_ledger.models.room import Room
from hotel_ledger.services.booking_service import intervals_overlap, today_utc


def _nights(start: date, end: date) -> set[date]:
    return {start + timedelta(days=i) for i in range((end - start).days)}


def test_overlap_predicate_matches_shared_nights():
    rng = random.Random(20240101)
    base = date(2024, 1, 1)
    for _ in range(2000):
        a_start = base + timedelta(days=rng.randint(0, 30))
        a_end = a_start + timedelta(days=rng.randint(1, 10))
        b_start = base + timedelta(days=rng.randint(0, 30))
        b_end = b_start + timedelta(days=rng.randint(1, 10))
        expected = bool(_nights(a_start, a_end) & _nights(b_start, b_end))
        assert intervals_overlap(a_start, a_end, b_start, b_end) is expected
        assert intervals_overlap(b_start, b_end, a_start, a_end) is expected


def test_create_booking_prices_nights_and_reserves_room(client, auth, make_room, db_session):
    room = make_room(price="120.00")
    start = today_utc() + timedelta(days=3)
    resp = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": start.isoformat(), "checkOut": (start + timedelta(days=4)).isoformat(),
        "guestCount": 2,
    }, headers=auth())
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "PENDING"
    assert body["userId"] == "guest-1"
    assert float(body["totalPrice"]) == 480.0

    db_session.expire_all()
    assert db_session.get(Room, room.id).status == "RESERVED"


def test_overlapping_booking_is_rejected_even_when_room_is_available(client, auth, make_room, db_session):
    room = make_room()
    start = today_utc() + timedelta(days=5)
    first = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": start.isoformat(), "checkOut": (start + timedelta(days=3)).isoformat(),
    }, headers=auth())
    assert first.status_code == 201

    def _free_room():
        db_session.expire_all()
        db_session.get(Room, room.id).status = "AVAILABLE"
        db_session.commit()

    _free_room()
    clash = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": (start + timedelta(days=2)).isoformat(),
        "checkOut": (start + timedelta(days=6)).isoformat(),
    }, headers=auth("guest-2"))
    assert clash.status_code == 409
    assert clash.json()["error"] == "conflict"
    assert clash.json()["detail"]["conflictingBookingIds"] == [first.json()["id"]]

    # Back-to-back stay: check-in on the other booking's check-out day.
    _free_room()
    adjacent = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": (start + timedelta(days=3)).isoformat(),
        "checkOut": (start + timedelta(days=5)).isoformat(),
    }, headers=auth("guest-2"))
    assert adjacent.status_code == 201, adjacent.text


def test_cancelled_booking_no_longer_holds_dates(client, auth, make_room, make_booking, db_session):
    room = make_room()
    start = today_utc() + timedelta(days=1)
    make_booking(room, start, start + timedelta(days=2), status="CANCELLED")
    resp = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": start.isoformat(), "checkOut": (start + timedelta(days=2)).isoformat(),
    }, headers=auth())
    assert resp.status_code == 201


def test_create_booking_validation(client, auth, make_room):
    room = make_room(capacity=2)
    today = today_utc()
    past = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": (today - timedelta(days=1)).isoformat(), "checkOut": today.isoformat(),
    }, headers=auth())
    assert past.status_code == 400

    inverted = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": (today + timedelta(days=3)).isoformat(),
        "checkOut": (today + timedelta(days=3)).isoformat(),
    }, headers=auth())
    assert inverted.status_code == 400

    crowded = client.post("/api/v1/bookings", json={
        "roomId": room.id, "checkIn": today.isoformat(), "checkOut": (today + timedelta(days=1)).isoformat(),
        "guestCount": 3,
    }, headers=auth())
    assert crowded.status_code == 400
    assert crowded.json()["detail"]["capacity"] == 2

    missing = client.post("/api/v1/bookings", json={
        "roomId": 9999, "checkIn": today.isoformat(), "checkOut": (today + timedelta(days=1)).isoformat(),
    }, headers=auth())
    assert missing.status_code == 404


def test_guest_cannot_book_for_someone_else_but_staff_can(client, auth, make_room):
    room = make_room()
    today = today_utc()
    payload = {"roomId": room.id, "userId": "guest-9", "checkIn": today.isoformat(),
               "checkOut": (today + timedelta(days=1)).isoformat()}
    assert client.post("/api/v1/bookings", json=payload, headers=auth("guest-1")).status_code == 403
    resp = client.post("/api/v1/bookings", json=payload, headers=auth("desk-1", "STAFF"))
    assert resp.status_code == 201
    assert resp.json()["userId"] == "guest-9"


def test_guests_only_see_their_own_bookings(client, auth, make_room, make_booking):
    room = make_room()
    start = today_utc() + timedelta(days=10)
    mine = make_booking(room, start, start + timedelta(days=1), user_id="guest-1")
    theirs = make_booking(room, start + timedelta(days=2), start + timedelta(days=3), user_id="guest-2")

    listed = client.get("/api/v1/bookings", headers=auth("guest-1")).json()
    assert [b["id"] for b in listed] == [mine.id]
    assert client.get(f"/api/v1/bookings/{theirs.id}", headers=auth("guest-1")).status_code == 403
    assert len(client.get("/api/v1/bookings", headers=auth("mgr", "MANAGER")).json()) == 2


def test_update_status_rejects_cancelled_to_checked_in(client, auth, make_room, make_booking):
    room = make_room()
    start = today_utc()
    booking = make_booking(room, start, start + timedelta(days=2), status="CANCELLED")
    resp = client.patch(f"/api/v1/bookings/{booking.id}/status", json={"status": "CHECKED_IN"},
                        headers=auth("admin", "ADMIN"))
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "invalid_transition"
    assert body["detail"]["from"] == "CANCELLED"
    assert body["detail"]["to"] == "CHECKED_IN"


def test_update_status_confirmed_to_cancelled_frees_room(client, auth, make_room, make_booking, db_session):
    room = make_room(status="OCCUPIED")
    start = today_utc() + timedelta(days=1)
    booking = make_booking(room, start, start + timedelta(days=2), status="CONFIRMED")
    resp = client.patch(f"/api/v1/bookings/{booking.id}/status", json={"status": "cancelled"},
                        headers=auth("admin", "ADMIN"))
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "CANCELLED"
    db_session.expire_all()
    assert db_session.get(Room, room.id).status == "AVAILABLE"


def test_update_status_same_status_is_noop_and_needs_permission(client, auth, make_room, make_booking):
    room = make_room()
    start = today_utc() + timedelta(days=1)
    booking = make_booking(room, start, start + timedelta(days=2), status="PENDING")
    same = client.patch(f"/api/v1/bookings/{booking.id}/status", json={"status": "PENDING"},
                        headers=auth("admin", "ADMIN"))
    assert same.status_code == 200
    assert same.json()["status"] == "PENDING"
    denied = client.patch(f"/api/v1/bookings/{booking.id}/status", json={"status": "CONFIRMED"},
                          headers=auth("guest-1"))
    assert denied.status_code == 403
    unknown = client.patch(f"/api/v1/bookings/{booking.id}/status", json={"status": "LOST"},
                           headers=auth("admin", "ADMIN"))
    assert unknown.status_code == 400


def test_owner_can_cancel_pending_booking(client, auth, make_room, make_booking, db_session):
    room = make_room(status="RESERVED")
    start = today_utc() + timedelta(days=2)
    booking = make_booking(room, start, start + timedelta(days=2))
    assert client.post(f"/api/v1/bookings/{booking.id}/cancel", json={"reason": "plans changed"},
                       headers=auth("guest-2")).status_code == 403
    resp = client.post(f"/api/v1/bookings/{booking.id}/cancel", json={"reason": "plans changed"}, headers=auth())
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"
    assert "plans changed" in resp.json()["notes"]
    db_session.expire_all()
    assert db_session.get(Room, room.id).status == "AVAILABLE"

    again = client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=auth())
    assert again.status_code == 409


def test_delete_booking_rules(client, auth, make_room, make_booking, make_payment, db_session):
    room = make_room(status="RESERVED")
    start = today_utc() + timedelta(days=2)
    pending = make_booking(room, start, start + timedelta(days=1))
    pending_id = pending.id
    confirmed = make_booking(room, start + timedelta(days=3), start + timedelta(days=4), status="CONFIRMED")
    make_payment(confirmed)

    assert client.delete(f"/api/v1/bookings/{confirmed.id}", headers=auth("admin", "ADMIN")).status_code == 409
    assert client.delete(f"/api/v1/bookings/{pending_id}", headers=auth("guest-2")).status_code == 403
    assert client.delete(f"/api/v1/bookings/{pending_id}", headers=auth()).status_code == 200

    db_session.expire_all()
    assert db_session.get(Booking, pending_id) is None
    assert db_session.get(Room, room.id).status == "AVAILABLE"
