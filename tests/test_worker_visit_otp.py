from datetime import timedelta

import pytest
from sqlmodel import select

from app.core.clock import utcnow
from app.core.exceptions import (
    AuthorizationError,
    DeliveryFailureError,
    ExternalVerificationError,
    NotFoundError,
    OTPExpiredError,
    OTPMismatchError,
    RateLimitError,
    StatusConflictError,
    ValidationError,
)
from app.db.models import ADMIN_PHONE_KEY, Client, Setting, SMSLog, VisitStatus, WorkerVisit
from app.services.otp.widget_token import PURPOSE_WORKER_VISIT, issue_widget_token, verify_widget_token
from app.services.visits.worker_visit_service import WorkerVisitService


@pytest.fixture
def service(session, sms, config):
    return WorkerVisitService(session, sms, config)


@pytest.fixture
def make_visit(session, engineer, client_record):
    def _make(**overrides):
        now = utcnow()
        fields = {
            "engineer_id": engineer.id,
            "client_id": client_record.id,
            "visit_date": now,
            "site_address": "Plot 7, Hinjewadi",
            "otp": "482913",
            "otp_sent_at": now,
            "otp_expires_at": now + timedelta(hours=24),
        }
        fields.update(overrides)
        visit = WorkerVisit(**fields)
        session.add(visit)
        session.commit()
        session.refresh(visit)
        return visit

    return _make


def _recipients(msg91):
    return [c["json"]["sms"][0]["to"][0] for c in msg91.sms_calls]


# ----------------------------------------------------------------------
# create
# ----------------------------------------------------------------------

def test_engineer_creates_visit_and_otp_goes_to_client_and_admin(service, engineer_actor, engineer, client_record, msg91):
    before = utcnow()
    dispatch = service.create_visit(engineer_actor, client_id=client_record.id, visit_date=before)

    visit = dispatch.visit
    assert visit.engineer_id == engineer.id
    assert visit.status == VisitStatus.PENDING
    assert len(visit.otp) == 6
    assert abs((visit.otp_expires_at - (before + timedelta(hours=24))).total_seconds()) < 5
    assert dispatch.client_sent is True
    assert dispatch.admin_sent is True
    assert _recipients(msg91) == ["919876543210", "919000000001"]
    # Same code to both recipients
    assert all(visit.otp in c["json"]["sms"][0]["message"] for c in msg91.sms_calls)


def test_admin_phone_setting_takes_precedence(service, session, engineer_actor, client_record, msg91):
    session.add(Setting(key=ADMIN_PHONE_KEY, value="9000000002"))
    session.commit()

    dispatch = service.create_visit(engineer_actor, client_id=client_record.id, visit_date=utcnow())

    assert dispatch.admin_phone == "9000000002"
    assert _recipients(msg91)[1] == "919000000002"


def test_missing_admin_phone_skips_admin_copy(service, config, engineer_actor, client_record, msg91):
    config.ADMIN_PHONE = None

    dispatch = service.create_visit(engineer_actor, client_id=client_record.id, visit_date=utcnow())

    assert dispatch.admin_phone is None
    assert dispatch.admin_sent is None
    assert len(msg91.sms_calls) == 1


def test_client_delivery_failure_keeps_visit_without_otp(service, engineer_actor, client_record, msg91):
    msg91.fail_sends = True

    dispatch = service.create_visit(engineer_actor, client_id=client_record.id, visit_date=utcnow())

    assert dispatch.client_sent is False
    assert dispatch.visit.status == VisitStatus.PENDING
    assert dispatch.visit.otp is None
    assert dispatch.visit.otp_expires_at is None
    # The admin must not hold a code that was never stored
    assert dispatch.admin_sent is None
    assert "919000000001" not in _recipients(msg91)


def test_admin_must_name_engineer(service, admin_actor, engineer, client_record):
    with pytest.raises(ValidationError):
        service.create_visit(admin_actor, client_id=client_record.id, visit_date=utcnow())

    dispatch = service.create_visit(
        admin_actor, client_id=client_record.id, visit_date=utcnow(), engineer_id=engineer.id
    )
    assert dispatch.visit.engineer_id == engineer.id


def test_engineer_cannot_create_for_someone_else(service, engineer_actor, other_engineer, client_record):
    with pytest.raises(AuthorizationError):
        service.create_visit(
            engineer_actor, client_id=client_record.id, visit_date=utcnow(), engineer_id=other_engineer.id
        )


def test_inactive_client_is_rejected(service, session, engineer_actor, client_record, msg91):
    client_record.is_active = False
    session.add(client_record)
    session.commit()

    with pytest.raises(NotFoundError):
        service.create_visit(engineer_actor, client_id=client_record.id, visit_date=utcnow())
    assert msg91.calls == []


def test_client_without_phone_is_rejected_before_sending(service, session, engineer_actor, msg91):
    client = Client(name="No Phone Ltd", primary_contact="   ")
    session.add(client)
    session.commit()

    with pytest.raises(ValidationError):
        service.create_visit(engineer_actor, client_id=client.id, visit_date=utcnow())

    assert msg91.calls == []
    assert session.exec(select(SMSLog)).all() == []
    assert session.exec(select(WorkerVisit)).all() == []


# ----------------------------------------------------------------------
# resend
# ----------------------------------------------------------------------

def test_resend_within_cooldown(service, make_visit, engineer_actor):
    visit = make_visit()
    with pytest.raises(RateLimitError) as excinfo:
        service.resend_otp(visit.id, engineer_actor)
    assert 0 < excinfo.value.retry_after <= 60


def test_resend_after_cooldown(service, make_visit, engineer_actor, msg91):
    visit = make_visit(otp_sent_at=utcnow() - timedelta(minutes=5))

    dispatch = service.resend_otp(visit.id, engineer_actor)

    assert dispatch.client_sent is True
    assert dispatch.visit.otp_sent_at > utcnow() - timedelta(seconds=5)
    assert len(msg91.sms_calls) == 2


def test_resend_keeps_verified_status(service, make_visit, engineer_actor):
    visit = make_visit(status=VisitStatus.OTP_VERIFIED, otp_sent_at=utcnow() - timedelta(minutes=5))
    dispatch = service.resend_otp(visit.id, engineer_actor)
    assert dispatch.visit.status == VisitStatus.OTP_VERIFIED


def test_resend_failure_keeps_old_code(service, session, make_visit, engineer_actor, msg91):
    visit = make_visit(otp_sent_at=utcnow() - timedelta(minutes=5))
    msg91.fail_sends = True

    with pytest.raises(DeliveryFailureError) as excinfo:
        service.resend_otp(visit.id, engineer_actor)

    assert excinfo.value.details == "Mobile number not valid"
    session.refresh(visit)
    assert visit.otp == "482913"


def test_resend_rejected_when_completed(service, make_visit, engineer_actor):
    visit = make_visit(status=VisitStatus.COMPLETED, otp_sent_at=None)
    with pytest.raises(StatusConflictError):
        service.resend_otp(visit.id, engineer_actor)


def test_resend_requires_owner(service, make_visit, other_engineer_actor):
    visit = make_visit()
    with pytest.raises(AuthorizationError):
        service.resend_otp(visit.id, other_engineer_actor)


def test_resend_to_client_without_phone_is_rejected(service, session, make_visit, engineer_actor, msg91):
    client = Client(name="No Phone Ltd", primary_contact="")
    session.add(client)
    session.commit()
    visit = make_visit(client_id=client.id, otp_sent_at=utcnow() - timedelta(minutes=5))

    with pytest.raises(ValidationError):
        service.resend_otp(visit.id, engineer_actor)

    assert msg91.calls == []
    assert session.exec(select(SMSLog)).all() == []
    session.refresh(visit)
    assert visit.otp == "482913"


# ----------------------------------------------------------------------
# submit count
# ----------------------------------------------------------------------

def test_bypass_code_records_worker_count(service, make_visit, engineer_actor):
    visit = make_visit()

    updated = service.submit_worker_count(visit.id, engineer_actor, "000000", 12)

    assert updated.status == VisitStatus.OTP_VERIFIED
    assert updated.worker_count == 12
    assert updated.verified_at is not None


def test_correct_code_records_count_and_remarks(service, make_visit, engineer_actor):
    visit = make_visit()
    updated = service.submit_worker_count(visit.id, engineer_actor, "482913", 7, remarks="Two masons, five helpers")
    assert updated.worker_count == 7
    assert updated.remarks == "Two masons, five helpers"


def test_wrong_codes_have_no_attempt_limit(service, make_visit, engineer_actor):
    visit = make_visit()

    for _ in range(5):
        with pytest.raises(OTPMismatchError) as excinfo:
            service.submit_worker_count(visit.id, engineer_actor, "111111", 4)
        assert excinfo.value.attempts_remaining is None

    assert service.submit_worker_count(visit.id, engineer_actor, "482913", 4).status == VisitStatus.OTP_VERIFIED


@pytest.mark.parametrize("count", [None, 0, -3])
def test_worker_count_must_be_positive(service, make_visit, engineer_actor, count):
    visit = make_visit()
    with pytest.raises(ValidationError):
        service.submit_worker_count(visit.id, engineer_actor, "482913", count)


def test_submit_requires_otp(service, make_visit, engineer_actor):
    visit = make_visit()
    with pytest.raises(ValidationError):
        service.submit_worker_count(visit.id, engineer_actor, None, 3)


def test_expired_or_missing_otp(service, make_visit, engineer_actor):
    expired = make_visit(otp_expires_at=utcnow() - timedelta(minutes=1))
    never_sent = make_visit(otp=None, otp_sent_at=None, otp_expires_at=None)

    with pytest.raises(OTPExpiredError):
        service.submit_worker_count(expired.id, engineer_actor, "482913", 3)
    with pytest.raises(OTPExpiredError):
        service.submit_worker_count(never_sent.id, engineer_actor, "000000", 3)


def test_submit_rejected_when_completed(service, make_visit, engineer_actor):
    visit = make_visit(status=VisitStatus.COMPLETED)
    with pytest.raises(StatusConflictError):
        service.submit_worker_count(visit.id, engineer_actor, "482913", 3)


# ----------------------------------------------------------------------
# widget
# ----------------------------------------------------------------------

def test_widget_flow_records_count(service, config, make_visit, engineer_actor, msg91):
    visit = make_visit()

    grant = service.issue_widget_token(visit.id, engineer_actor)
    claims = verify_widget_token(grant.token, secret=config.JWT_SECRET)
    assert claims["purpose"] == PURPOSE_WORKER_VISIT
    assert grant.expires_in == 86400
    assert grant.phone == "919876543210"

    updated = service.submit_worker_count_with_widget(visit.id, engineer_actor, grant.token, 9, "Tiling crew")

    assert updated.status == VisitStatus.OTP_VERIFIED
    assert updated.worker_count == 9
    assert len(msg91.widget_calls) == 1


def test_widget_token_for_another_visit_never_reaches_provider(service, config, make_visit, engineer_actor, msg91):
    visit = make_visit()
    other = make_visit()
    token = issue_widget_token("919876543210", other.id, PURPOSE_WORKER_VISIT, 900, secret=config.JWT_SECRET)

    with pytest.raises(ValidationError):
        service.submit_worker_count_with_widget(visit.id, engineer_actor, token, 5)

    assert msg91.widget_calls == []


def test_widget_provider_rejection(service, session, make_visit, engineer_actor, msg91):
    visit = make_visit()
    msg91.widget_ok = False
    grant = service.issue_widget_token(visit.id, engineer_actor)

    with pytest.raises(ExternalVerificationError):
        service.submit_worker_count_with_widget(visit.id, engineer_actor, grant.token, 5)

    session.refresh(visit)
    assert visit.status == VisitStatus.PENDING
    assert visit.worker_count is None


# ----------------------------------------------------------------------
# pending / completed
# ----------------------------------------------------------------------

def test_pending_visits_are_scoped_to_engineer(service, make_visit, engineer_actor, other_engineer, other_engineer_actor):
    older = make_visit(visit_date=utcnow() - timedelta(days=2))
    newer = make_visit(visit_date=utcnow())
    make_visit(status=VisitStatus.OTP_VERIFIED)
    make_visit(engineer_id=other_engineer.id)

    pending = service.get_pending_visits(engineer_actor)

    assert [v.id for v in pending] == [newer.id, older.id]
    assert len(service.get_pending_visits(other_engineer_actor)) == 1


def test_completed_visits_include_verified_and_completed(
    service, make_visit, client_record, engineer_actor, admin_actor, other_engineer, other_engineer_actor
):
    make_visit()
    verified = make_visit(status=VisitStatus.OTP_VERIFIED, worker_count=8, visit_date=utcnow())
    completed = make_visit(status=VisitStatus.COMPLETED, worker_count=5, visit_date=utcnow() - timedelta(days=1))
    theirs = make_visit(engineer_id=other_engineer.id, status=VisitStatus.OTP_VERIFIED)

    assert [v.id for v in service.get_completed_visits(engineer_actor)] == [verified.id, completed.id]
    assert [v.id for v in service.get_completed_visits(other_engineer_actor)] == [theirs.id]
    assert len(service.get_completed_visits(admin_actor)) == 3
    assert service.get_completed_visits(admin_actor, client_id="other-client") == []
    assert len(service.get_completed_visits(admin_actor, client_id=client_record.id)) == 3
