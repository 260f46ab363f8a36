from datetime import datetime

import pytest

from clinic_booking.core.exceptions import UserNotFound
from clinic_booking.core.security import UserRole
from clinic_booking.models import AppointmentStatus
from clinic_booking.services.user_service import UserService

SLOT_DATE = "29_10_2026"
SLOT_TIME = "10:00 AM"
ARCHIVED_AT = datetime(2026, 10, 19, 9, 0)


class TestUserArchive:

    def test_archive_and_restore(self, db, make_user):
        user = make_user()
        service = UserService(db)

        archived = service.archive_user(user.id, ARCHIVED_AT)
        assert archived.is_archived is True
        assert archived.archived_at == ARCHIVED_AT
        assert [u.id for u in service.list_archived()] == [user.id]
        assert service.list_users() == []

        restored = service.restore_user(user.id)
        assert restored.is_archived is False
        assert restored.archived_at is None
        assert [u.id for u in service.list_users()] == [user.id]

    def test_archive_defaults_to_now(self, db, make_user):
        user = make_user()

        archived = UserService(db).archive_user(user.id)

        assert archived.archived_at <= datetime.now()

    def test_unknown_user(self, db):
        service = UserService(db)

        with pytest.raises(UserNotFound):
            service.archive_user(999)
        with pytest.raises(UserNotFound):
            service.restore_user(999)

    def test_archived_user_keeps_appointments(self, db, service, make_user, make_doctor):
        user = make_user()
        appointment = service.book(user.id, make_doctor().id, SLOT_DATE, SLOT_TIME)

        UserService(db).archive_user(user.id, ARCHIVED_AT)

        kept = service.get_appointment(appointment.id)
        assert kept.status == AppointmentStatus.PENDING

    def test_restored_user_can_book_again(self, db, service, make_user, make_doctor):
        user = make_user()
        users = UserService(db)
        users.archive_user(user.id, ARCHIVED_AT)
        users.restore_user(user.id)

        appointment = service.book(user.id, make_doctor().id, SLOT_DATE, SLOT_TIME)

        assert appointment.user_id == user.id


class TestUserEndpoints:

    def test_archive_flow(self, client, auth_headers, make_user, make_doctor):
        admin_headers = auth_headers(make_user(role=UserRole.ADMIN))
        patient = make_user()
        patient_headers = auth_headers(patient)

        archived = client.put(f"/api/v1/admin/users/{patient.id}/archive", headers=admin_headers)
        assert archived.status_code == 200
        assert archived.json()["is_archived"] is True

        listed = client.get("/api/v1/admin/users/archived", headers=admin_headers).json()
        assert [u["id"] for u in listed] == [patient.id]
        active = client.get("/api/v1/admin/users", headers=admin_headers).json()
        assert patient.id not in [u["id"] for u in active]

        rejected = client.post(
            "/api/v1/appointments",
            json={"docId": make_doctor().id, "slotDate": SLOT_DATE, "slotTime": SLOT_TIME},
            headers=patient_headers,
        )
        assert rejected.status_code == 401

        restored = client.put(f"/api/v1/admin/users/{patient.id}/restore", headers=admin_headers)
        assert restored.json()["is_archived"] is False
        assert client.get("/api/v1/appointments", headers=patient_headers).status_code == 200

    def test_archive_unknown_user(self, client, auth_headers, make_user):
        response = client.put(
            "/api/v1/admin/users/999/archive", headers=auth_headers(make_user(role=UserRole.ADMIN))
        )

        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_requires_admin(self, client, auth_headers, make_user):
        response = client.get("/api/v1/admin/users", headers=auth_headers(make_user()))
        assert response.status_code == 403
