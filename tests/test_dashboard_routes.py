"""HTTP tests for the clinic dashboard: authentication and tenant isolation."""

from datetime import datetime, timezone

import pytest

from clinicbook.api.dependencies import create_access_token
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.notification import NotificationChannel, NotificationType

PATIENTS_URL = "/api/v1/dashboard/patients/"
APPOINTMENTS_URL = "/api/v1/dashboard/appointments/"
INVOICES_URL = "/api/v1/dashboard/invoices/"
NOTIFICATIONS_URL = "/api/v1/dashboard/notifications/"


@pytest.fixture
def headers_a(auth_headers, clinic):
    return auth_headers(clinic.id)


@pytest.fixture
def headers_b(auth_headers, other_clinic):
    return auth_headers(other_clinic.id)


@pytest.fixture
def patient_a(client, headers_a):
    response = client.post(PATIENTS_URL, json={
        "firstName": "Ana", "lastName": "Cruz", "email": "Ana@Example.com", "phone": "+639170000001",
    }, headers=headers_a)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def patient_b(client, headers_b):
    response = client.post(PATIENTS_URL, json={
        "firstName": "Ben", "lastName": "Lim", "email": "ben@example.com",
    }, headers=headers_b)
    assert response.status_code == 201
    return response.json()


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get(PATIENTS_URL)
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get(PATIENTS_URL, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_token_without_clinic(self, client):
        token = create_access_token({"sub": "staff-1"})
        response = client.get(PATIENTS_URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    def test_token_with_unusable_clinic(self, client, auth_headers):
        response = client.get(PATIENTS_URL, headers=auth_headers("  "))
        assert response.status_code == 403


class TestPatientIsolation:
    def test_each_clinic_lists_only_its_patients(self, client, headers_a, headers_b, patient_a, patient_b):
        listed_a = client.get(PATIENTS_URL, headers=headers_a).json()
        listed_b = client.get(PATIENTS_URL, headers=headers_b).json()

        assert listed_a["total"] == 1
        assert listed_a["patients"][0]["id"] == patient_a["id"]
        assert [p["id"] for p in listed_b["patients"]] == [patient_b["id"]]

    def test_foreign_patient_is_not_found(self, client, headers_a, patient_b):
        response = client.get(f"{PATIENTS_URL}{patient_b['id']}", headers=headers_a)
        assert response.status_code == 404

    def test_email_is_normalized(self, patient_a, clinic):
        assert patient_a["email"] == "ana@example.com"
        assert patient_a["clinicId"] == clinic.id

    def test_duplicate_email_in_same_clinic(self, client, headers_a, patient_a):
        response = client.post(PATIENTS_URL, json={
            "firstName": "Ana", "lastName": "Cruz", "email": "ana@example.com",
        }, headers=headers_a)
        assert response.status_code == 409

    def test_same_email_in_other_clinic_is_allowed(self, client, headers_b, patient_a):
        response = client.post(PATIENTS_URL, json={
            "firstName": "Ana", "lastName": "Cruz", "email": "ana@example.com",
        }, headers=headers_b)
        assert response.status_code == 201


class TestAppointmentIsolation:
    def create(self, client, headers, patient_id, service_id, start="2026-05-04T02:00:00Z"):
        return client.post(APPOINTMENTS_URL, json={
            "patientId": patient_id,
            "serviceId": service_id,
            "startTime": start,
        }, headers=headers)

    def test_staff_booking_and_listing(self, client, headers_a, headers_b, patient_a, service):
        created = self.create(client, headers_a, patient_a["id"], service.id)

        assert created.status_code == 201
        body = created.json()
        assert body["source"] == "STAFF"
        assert body["startTime"] == "2026-05-04T02:00:00.000Z"
        assert body["endTime"] == "2026-05-04T02:30:00.000Z"

        assert client.get(APPOINTMENTS_URL, headers=headers_a).json()["total"] == 1
        assert client.get(APPOINTMENTS_URL, headers=headers_b).json()["total"] == 0
        assert client.get(f"{APPOINTMENTS_URL}{body['id']}", headers=headers_b).status_code == 404

    def test_overlap_is_rejected(self, client, headers_a, patient_a, service):
        self.create(client, headers_a, patient_a["id"], service.id)
        response = self.create(client, headers_a, patient_a["id"], service.id, start="2026-05-04T02:15:00Z")

        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_UNAVAILABLE"

    def test_other_clinic_booking_does_not_block(self, client, headers_a, headers_b, patient_a, patient_b,
                                                 service, other_service):
        self.create(client, headers_a, patient_a["id"], service.id)
        response = self.create(client, headers_b, patient_b["id"], other_service.id)

        assert response.status_code == 201

    def test_foreign_patient_or_service(self, client, headers_a, patient_a, patient_b, service, other_service):
        assert self.create(client, headers_a, patient_b["id"], service.id).status_code == 404

        response = self.create(client, headers_a, patient_a["id"], other_service.id)
        assert response.status_code == 404
        assert response.json()["code"] == "SERVICE_NOT_FOUND"

    def test_filter_by_date_and_status(self, client, headers_a, patient_a, service):
        self.create(client, headers_a, patient_a["id"], service.id)
        self.create(client, headers_a, patient_a["id"], service.id, start="2026-05-06T02:00:00Z")

        in_range = client.get(APPOINTMENTS_URL, params={"startDate": "2026-05-05"}, headers=headers_a).json()
        cancelled = client.get(APPOINTMENTS_URL, params={"status": "CANCELLED"}, headers=headers_a).json()

        assert [a["startTime"] for a in in_range["appointments"]] == ["2026-05-06T02:00:00.000Z"]
        assert cancelled["total"] == 0


class TestInvoiceIsolation:
    def test_numbering_is_per_clinic(self, client, headers_a, headers_b, patient_a, patient_b):
        first_a = client.post(INVOICES_URL, json={"patientId": patient_a["id"], "total": "150.00"}, headers=headers_a)
        second_a = client.post(INVOICES_URL, json={"patientId": patient_a["id"], "total": "75.5"}, headers=headers_a)
        first_b = client.post(INVOICES_URL, json={"patientId": patient_b["id"], "total": "20"}, headers=headers_b)

        assert first_a.status_code == 201
        assert first_a.json()["invoiceNumber"].endswith("-00001")
        assert second_a.json()["invoiceNumber"].endswith("-00002")
        assert second_a.json()["total"] == "75.50"
        assert first_b.json()["invoiceNumber"].endswith("-00001")
        assert first_a.json()["status"] == "DRAFT"

        listed_b = client.get(INVOICES_URL, headers=headers_b).json()
        assert [i["id"] for i in listed_b["invoices"]] == [first_b.json()["id"]]

    def test_foreign_patient_cannot_be_invoiced(self, client, headers_a, patient_b):
        response = client.post(INVOICES_URL, json={"patientId": patient_b["id"], "total": "10"}, headers=headers_a)
        assert response.status_code == 404


class TestNotificationListing:
    def test_lists_only_own_clinic(self, client, db_session, clinic, other_clinic, headers_a,
                                   notification_guard):
        now = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        for tenant in (clinic.id, other_clinic.id):
            notification_guard.queue_notification(
                TenantScopedSession(db_session, tenant),
                type=NotificationType.BOOKING_CONFIRMATION,
                channel=NotificationChannel.EMAIL,
                recipient_email="ana@example.com",
                now=now,
            )

        body = client.get(NOTIFICATIONS_URL, headers=headers_a).json()

        assert body["total"] == 1
        assert body["notifications"][0]["clinicId"] == clinic.id
        assert body["notifications"][0]["createdAt"] == "2026-03-02T12:00:00.000Z"


class TestPrivateRateLimitHeaders:
    def test_dashboard_uses_private_policy(self, client, headers_a):
        response = client.get(PATIENTS_URL, headers=headers_a)

        assert response.headers["X-RateLimit-Policy"] == "privateApi"
        assert response.headers["X-RateLimit-Limit"] == "100"
