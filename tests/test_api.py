from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from app.core.clock import utcnow
from app.core.config import settings
from app.db.models import Appointment, AppointmentStatus
from app.main import create_app


def _auth(user):
    token = jwt.encode(
        {"sub": user.id, "role": user.role.value, "exp": utcnow() + timedelta(hours=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(engine, msg91):
    app = create_app(engine)
    with TestClient(app) as client:
        yield client


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_without_token_are_rejected(api, make_appointment):
    appointment = make_appointment()
    assert api.get(f"/api/appointments/{appointment.id}").status_code == 401
    assert api.get(
        f"/api/appointments/{appointment.id}", headers={"Authorization": "Bearer garbage"}
    ).status_code == 401


def test_only_admins_schedule_appointments(api, admin, engineer, client_record):
    body = {
        "engineer_id": engineer.id,
        "client_id": client_record.id,
        "visit_date": (utcnow() + timedelta(days=1)).isoformat(),
        "purpose": "Wall cladding survey",
    }

    assert api.post("/api/appointments", json=body, headers=_auth(engineer)).status_code == 403

    response = api.post("/api/appointments", json=body, headers=_auth(admin))
    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["status"] == "SCHEDULED"
    assert "otp" not in payload["data"]


def test_appointment_otp_round_trip(api, session, engineer, make_appointment, msg91):
    appointment = make_appointment()
    headers = _auth(engineer)

    response = api.post(f"/api/appointments/{appointment.id}/send-otp", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["sent_to"] == "9876543210"
    assert response.json()["data"]["appointment"]["status"] == "OTP_SENT"

    response = api.post(f"/api/appointments/{appointment.id}/resend-otp", headers=headers)
    assert response.status_code == 429
    assert 0 < int(response.headers["Retry-After"]) <= 60
    assert response.json()["data"]["error"] == "RATE_LIMITED"

    session.expire_all()
    wrong = "111111" if session.get(Appointment, appointment.id).otp != "111111" else "222222"
    response = api.post(f"/api/appointments/{appointment.id}/verify-otp", json={"otp": wrong}, headers=headers)
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["data"] == {"error": "INVALID_OTP", "attempts_remaining": 2}

    response = api.post(f"/api/appointments/{appointment.id}/verify-otp", json={"otp": "000000"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "VERIFIED"

    response = api.post(
        f"/api/appointments/{appointment.id}/feedback",
        json={"feedback": "Walls plastered, ready for paint"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "COMPLETED"


def test_missing_otp_is_reported_in_envelope(api, engineer, make_appointment):
    appointment = make_appointment()
    response = api.post(f"/api/appointments/{appointment.id}/verify-otp", json={}, headers=_auth(engineer))
    assert response.status_code == 400
    assert response.json()["data"]["error"] == "VALIDATION_ERROR"


def test_other_engineer_is_denied(api, other_engineer, make_appointment):
    appointment = make_appointment()
    response = api.post(f"/api/appointments/{appointment.id}/send-otp", headers=_auth(other_engineer))
    assert response.status_code == 403
    assert response.json()["data"]["error"] == "ACCESS_DENIED"


def test_unknown_appointment(api, engineer):
    response = api.get("/api/appointments/does-not-exist", headers=_auth(engineer))
    assert response.status_code == 404


def test_appointment_list_is_role_scoped(api, admin, engineer, other_engineer, make_appointment):
    mine = make_appointment()
    make_appointment(engineer_id=other_engineer.id, status=AppointmentStatus.CANCELLED)

    response = api.get("/api/appointments", headers=_auth(engineer))
    assert response.status_code == 200
    assert [a["id"] for a in response.json()["data"]] == [mine.id]

    assert len(api.get("/api/appointments", headers=_auth(admin)).json()["data"]) == 2
    cancelled = api.get("/api/appointments", params={"status": "CANCELLED"}, headers=_auth(admin)).json()["data"]
    assert [a["status"] for a in cancelled] == ["CANCELLED"]


def test_error_responses_are_documented_with_the_envelope(api):
    schema = api.get("/openapi.json").json()
    responses = schema["paths"]["/api/appointments/{appointment_id}/verify-otp"]["post"]["responses"]
    assert responses["409"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")


def test_delivery_failure_is_a_bad_gateway(api, engineer, make_appointment, msg91):
    appointment = make_appointment()
    msg91.fail_sends = True

    response = api.post(f"/api/appointments/{appointment.id}/send-otp", headers=_auth(engineer))

    assert response.status_code == 502
    data = response.json()["data"]
    assert data["error"] == "DELIVERY_FAILED"
    assert data["details"] == "Mobile number not valid"


def test_admin_cancels_appointment(api, session, admin, make_appointment):
    appointment = make_appointment()

    response = api.delete(f"/api/appointments/{appointment.id}", headers=_auth(admin))

    assert response.status_code == 200
    session.expire_all()
    assert session.get(Appointment, appointment.id).status == AppointmentStatus.CANCELLED


def test_widget_endpoints(api, engineer, make_appointment, msg91):
    appointment = make_appointment()
    other = make_appointment()
    headers = _auth(engineer)

    response = api.get(f"/api/appointments/{other.id}/otp-widget-token", headers=headers)
    assert response.status_code == 200
    token = response.json()["data"]["token"]
    assert response.json()["data"]["phone"] == "919876543210"

    response = api.post(
        f"/api/appointments/{appointment.id}/verify-otp-widget", json={"accessToken": token}, headers=headers
    )
    assert response.status_code == 400
    assert msg91.widget_calls == []

    response = api.post(
        f"/api/appointments/{other.id}/verify-otp-widget", json={"access_token": token}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "VERIFIED"


def test_worker_visit_flow(api, engineer, client_record, msg91):
    headers = _auth(engineer)

    response = api.post(
        "/api/worker-visits",
        json={"client_id": client_record.id, "visit_date": utcnow().isoformat()},
        headers=headers,
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["delivery"]["client_otp_sent"] is True
    assert data["visit"]["status"] == "PENDING"
    visit_id = data["visit"]["id"]

    pending = api.get("/api/worker-visits/pending", headers=headers).json()["data"]
    assert [v["id"] for v in pending] == [visit_id]

    response = api.post(
        f"/api/worker-visits/{visit_id}/submit-count",
        json={"otp": "000000", "worker_count": 12},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "OTP_VERIFIED"
    assert response.json()["data"]["worker_count"] == 12

    assert api.get("/api/worker-visits/pending", headers=headers).json()["data"] == []
    completed = api.get("/api/worker-visits/completed", headers=headers).json()["data"]
    assert [v["id"] for v in completed] == [visit_id]


def test_worker_visit_resend_is_throttled(api, engineer, client_record, msg91):
    headers = _auth(engineer)
    visit_id = api.post(
        "/api/worker-visits",
        json={"client_id": client_record.id, "visit_date": utcnow().isoformat()},
        headers=headers,
    ).json()["data"]["visit"]["id"]

    response = api.post(f"/api/worker-visits/{visit_id}/resend-otp", headers=headers)

    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_sms_balance_is_admin_only(api, admin, engineer, msg91):
    assert api.get("/api/sms/balance", headers=_auth(engineer)).status_code == 403

    response = api.get("/api/sms/balance", headers=_auth(admin))
    assert response.status_code == 200
    assert response.json()["data"]["balance"] == "1500"
