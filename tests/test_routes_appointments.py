from datetime import date
from types import SimpleNamespace

from app.models import AppointmentSlot, Notification


def book_payload(pet, vet, slot, **overrides):
    payload = {
        "pet_id": pet.id,
        "vet_id": vet.id,
        "slot_id": slot.id,
        "service_type": "vaccination",
        "date": "2030-01-15",
    }
    payload.update(overrides)
    return payload


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get("/appointments")
        assert response.status_code == 401
        assert "error" in response.json()

    def test_malformed_token(self, client):
        response = client.get("/appointments", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid token format. Expected a valid JWT token."

    def test_unknown_user(self, client, auth_headers, owner):
        ghost = SimpleNamespace(id=owner.id + 1000)

        response = client.get("/appointments", headers=auth_headers(ghost))
        assert response.status_code == 401
        assert response.json()["error"] == "User not found"

    def test_health_needs_no_token(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSlots:
    def test_slots_are_ordered_by_start_time(self, client, auth_headers, owner, vet, make_slot):
        make_slot(vet, start_time="11:00", end_time="11:30")
        make_slot(vet, start_time="09:00", end_time="09:30")
        make_slot(vet, start_time="10:00", end_time="10:30")
        make_slot(vet, day=date(2030, 1, 16), start_time="08:00", end_time="08:30")

        response = client.get(
            "/appointments/slots",
            params={"vet_id": vet.id, "date": "2030-01-15"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        slots = response.json()["slots"]
        assert [s["start_time"] for s in slots] == ["09:00", "10:00", "11:00"]
        assert all(s["is_available"] for s in slots)

    def test_bad_date_format(self, client, auth_headers, owner, vet):
        response = client.get(
            "/appointments/slots",
            params={"vet_id": vet.id, "date": "15/01/2030"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Date must be in YYYY-MM-DD format"}


class TestBookAppointment:
    def test_book_success(self, client, db, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)

        response = client.post(
            "/appointments/book", json=book_payload(pet, vet, slot), headers=auth_headers(owner)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Appointment booked successfully"
        appointment = body["appointment"]
        assert appointment["status"] == "scheduled"
        assert appointment["time"] == "09:00 - 09:30"
        assert appointment["scheduled_at"] == "2030-01-15T09:00:00"
        assert appointment["pet_name"] == "Rex"

        db.expire_all()
        assert db.get(AppointmentSlot, slot.id).current_bookings == 1
        titles = {n.title for n in db.query(Notification).all()}
        assert titles == {"Appointment Confirmed", "New Appointment Booked"}

    def test_full_slot_is_conflict(self, client, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)
        headers = auth_headers(owner)

        first = client.post("/appointments/book", json=book_payload(pet, vet, slot), headers=headers)
        second = client.post("/appointments/book", json=book_payload(pet, vet, slot), headers=headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json() == {"error": "Time slot not available"}

    def test_missing_fields(self, client, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)
        payload = book_payload(pet, vet, slot)
        del payload["slot_id"]

        response = client.post("/appointments/book", json=payload, headers=auth_headers(owner))

        assert response.status_code == 400
        assert "slot_id" in response.json()["error"]

    def test_invalid_appointment_type(self, client, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)
        response = client.post(
            "/appointments/book",
            json=book_payload(pet, vet, slot, appointment_type="house_call"),
            headers=auth_headers(owner),
        )
        assert response.status_code == 400

    def test_wrong_date_is_not_found(self, client, db, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)

        response = client.post(
            "/appointments/book",
            json=book_payload(pet, vet, slot, date="2030-01-16"),
            headers=auth_headers(owner),
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Time slot not found"}
        db.expire_all()
        assert db.get(AppointmentSlot, slot.id).current_bookings == 0

    def test_other_owners_pet_is_not_found(self, client, auth_headers, vet, pet, make_user, make_slot):
        slot = make_slot(vet)
        intruder = make_user("pet_owner")

        response = client.post(
            "/appointments/book", json=book_payload(pet, vet, slot), headers=auth_headers(intruder)
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Pet not found or access denied"}

    def test_video_booking_returns_session_url(self, client, auth_headers, owner, vet, pet, make_slot):
        slot = make_slot(vet)

        response = client.post(
            "/appointments/book",
            json=book_payload(pet, vet, slot, appointment_type="video"),
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        appointment = response.json()["appointment"]
        assert appointment["appointment_mode"] == "video"
        assert "/session/" in appointment["session_url"]


class TestListAppointments:
    def test_owner_vet_and_stranger_views(self, client, auth_headers, owner, vet, pet, make_user, make_slot):
        slot = make_slot(vet)
        booked = client.post(
            "/appointments/book", json=book_payload(pet, vet, slot), headers=auth_headers(owner)
        ).json()["appointment"]
        stranger = make_user("pet_owner")

        owner_view = client.get("/appointments", headers=auth_headers(owner)).json()["appointments"]
        vet_view = client.get("/appointments", headers=auth_headers(vet)).json()["appointments"]
        stranger_view = client.get("/appointments", headers=auth_headers(stranger)).json()["appointments"]

        assert [a["id"] for a in owner_view] == [booked["id"]]
        assert [a["id"] for a in vet_view] == [booked["id"]]
        assert stranger_view == []

        detail = client.get(f"/appointments/{booked['id']}", headers=auth_headers(owner))
        assert detail.status_code == 200
        assert detail.json()["appointment"]["vet_name"] == "Dr. Otieno"

        hidden = client.get(f"/appointments/{booked['id']}", headers=auth_headers(stranger))
        assert hidden.status_code == 404
