from datetime import timedelta

from hotel_ledger.services.booking_service import today_utc


def test_room_crud_permissions(client, auth):
    payload = {"number": "501", "type": "suite", "capacity": 4, "price": "250.00", "description": "Top floor"}
    assert client.post("/api/v1/rooms", json=payload).status_code == 401
    assert client.post("/api/v1/rooms", json=payload, headers=auth()).status_code == 403

    created = client.post("/api/v1/rooms", json=payload, headers=auth("mgr", "MANAGER"))
    assert created.status_code == 201, created.text
    room = created.json()
    assert room["type"] == "SUITE"
    assert room["status"] == "AVAILABLE"

    dup = client.post("/api/v1/rooms", json=payload, headers=auth("mgr", "MANAGER"))
    assert dup.status_code == 409

    updated = client.patch(f"/api/v1/rooms/{room['id']}", json={"price": "275.00", "status": "MAINTENANCE"},
                           headers=auth("mgr", "MANAGER"))
    assert updated.status_code == 200
    assert updated.json()["status"] == "MAINTENANCE"

    # Managers cannot delete rooms; admins can.
    assert client.delete(f"/api/v1/rooms/{room['id']}", headers=auth("mgr", "MANAGER")).status_code == 403
    assert client.delete(f"/api/v1/rooms/{room['id']}", headers=auth("admin", "ADMIN")).status_code == 200
    assert client.get(f"/api/v1/rooms/{room['id']}").status_code == 404


def test_room_with_active_booking_cannot_be_deleted(client, auth, make_room, make_booking):
    room = make_room()
    start = today_utc() + timedelta(days=1)
    make_booking(room, start, start + timedelta(days=1), status="CONFIRMED")
    assert client.delete(f"/api/v1/rooms/{room.id}", headers=auth("admin", "ADMIN")).status_code == 409


def test_availability(client, make_room, make_booking):
    room = make_room()
    start = today_utc() + timedelta(days=10)
    booking = make_booking(room, start, start + timedelta(days=3))

    busy = client.get(f"/api/v1/rooms/{room.id}/availability",
                      params={"checkIn": (start + timedelta(days=1)).isoformat(),
                              "checkOut": (start + timedelta(days=5)).isoformat()})
    assert busy.status_code == 200
    assert busy.json()["available"] is False
    assert busy.json()["conflictingBookingIds"] == [booking.id]

    free = client.get(f"/api/v1/rooms/{room.id}/availability",
                      params={"checkIn": (start + timedelta(days=3)).isoformat(),
                              "checkOut": (start + timedelta(days=4)).isoformat()})
    assert free.json()["available"] is True


def test_list_rooms_filters(client, make_room):
    make_room(number="101", capacity=1)
    make_room(number="102", capacity=4, status="MAINTENANCE")
    assert [r["number"] for r in client.get("/api/v1/rooms").json()] == ["101", "102"]
    assert [r["number"] for r in client.get("/api/v1/rooms", params={"minCapacity": 2}).json()] == ["102"]
    assert [r["number"] for r in client.get("/api/v1/rooms", params={"status": "available"}).json()] == ["101"]
    assert client.get("/api/v1/rooms", params={"status": "haunted"}).status_code == 400
