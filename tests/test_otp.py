from datetime import timedelta

import pytest

from studentnet import models
from studentnet.core.config import settings
from studentnet.core.exceptions import (
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPMismatchError,
    TooManyRequestsError,
)
from studentnet.services import otp
from studentnet.utils import utcnow

VERIFICATION = models.OTPPurpose.VERIFICATION
PASSWORD_RESET = models.OTPPurpose.PASSWORD_RESET


@pytest.fixture
def fixed_codes(monkeypatch):
    """Make issue() hand out 111111, 222222, ... in order"""
    codes = iter(["111111", "222222", "333333", "444444"])
    monkeypatch.setattr(otp, "generate_otp", lambda: next(codes))


@pytest.fixture
def unverified(make_user):
    return make_user(is_verified=False)


def test_issue_sets_challenge(db_session, unverified):
    code = otp.issue(db_session, unverified, VERIFICATION)

    assert len(code) == 6 and code.isdigit()
    assert unverified.otp_code == code
    assert unverified.otp_attempts == 0
    assert unverified.otp_purpose == VERIFICATION
    remaining = unverified.otp_expires_at - utcnow()
    assert timedelta(minutes=9) < remaining <= timedelta(minutes=settings.OTP_EXPIRE_MINUTES)


def test_correct_code_verifies_and_clears_challenge(db_session, unverified):
    code = otp.issue(db_session, unverified, VERIFICATION)

    otp.check(db_session, unverified, code, VERIFICATION)

    assert unverified.is_verified is True
    assert unverified.otp_code is None
    assert unverified.otp_expires_at is None
    assert unverified.otp_purpose is None
    assert unverified.otp_attempts == 0


def test_consumed_code_cannot_be_reused(db_session, unverified):
    code = otp.issue(db_session, unverified, VERIFICATION)
    otp.check(db_session, unverified, code, VERIFICATION)

    with pytest.raises(OTPExpiredError):
        otp.check(db_session, unverified, code, VERIFICATION)


def test_new_code_invalidates_previous(db_session, unverified, fixed_codes):
    old = otp.issue(db_session, unverified, VERIFICATION)
    new = otp.issue(db_session, unverified, VERIFICATION)
    assert (old, new) == ("111111", "222222")

    with pytest.raises(OTPMismatchError):
        otp.check(db_session, unverified, old, VERIFICATION)

    otp.check(db_session, unverified, new, VERIFICATION)
    assert unverified.is_verified is True


def test_mismatch_reports_attempts_remaining(db_session, unverified, fixed_codes):
    otp.issue(db_session, unverified, VERIFICATION)

    remaining = []
    for _ in range(3):
        with pytest.raises(OTPMismatchError) as exc_info:
            otp.check(db_session, unverified, "999999", VERIFICATION)
        remaining.append(exc_info.value.details["attempts_remaining"])

    assert remaining == [2, 1, 0]
    assert unverified.otp_attempts == 3


def test_fourth_submission_exceeds_even_when_correct(db_session, unverified, fixed_codes):
    code = otp.issue(db_session, unverified, VERIFICATION)
    for _ in range(3):
        with pytest.raises(OTPMismatchError):
            otp.check(db_session, unverified, "999999", VERIFICATION)

    with pytest.raises(OTPAttemptsExceededError):
        otp.check(db_session, unverified, code, VERIFICATION)
    assert unverified.is_verified is False


def test_reissue_resets_attempts(db_session, unverified, fixed_codes):
    otp.issue(db_session, unverified, VERIFICATION)
    for _ in range(3):
        with pytest.raises(OTPMismatchError):
            otp.check(db_session, unverified, "999999", VERIFICATION)

    code = otp.issue(db_session, unverified, VERIFICATION)
    otp.check(db_session, unverified, code, VERIFICATION)
    assert unverified.is_verified is True


def test_expired_code_rejected(db_session, unverified):
    code = otp.issue(db_session, unverified, VERIFICATION)
    unverified.otp_expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()

    with pytest.raises(OTPExpiredError):
        otp.check(db_session, unverified, code, VERIFICATION)


def test_missing_challenge_reads_as_expired(db_session, unverified):
    with pytest.raises(OTPExpiredError):
        otp.check(db_session, unverified, "123456", VERIFICATION)


def test_code_is_bound_to_its_purpose(db_session, make_user):
    user = make_user()
    code = otp.issue(db_session, user, PASSWORD_RESET)

    with pytest.raises(OTPExpiredError):
        otp.check(db_session, user, code, VERIFICATION)


def test_on_success_values_applied_with_consumption(db_session, make_user):
    user = make_user()
    code = otp.issue(db_session, user, PASSWORD_RESET)

    otp.check(db_session, user, code, PASSWORD_RESET, on_success={models.User.bio: "reset"})

    assert user.bio == "reset"
    assert user.otp_code is None


def test_resend_cooldown(db_session, unverified, monkeypatch):
    monkeypatch.setattr(settings, "OTP_RESEND_COOLDOWN_SECONDS", 60)
    otp.issue(db_session, unverified, VERIFICATION)

    with pytest.raises(TooManyRequestsError):
        otp.ensure_can_reissue(unverified)

    unverified.otp_issued_at = utcnow() - timedelta(seconds=61)
    db_session.commit()
    otp.ensure_can_reissue(unverified)


def test_non_ascii_code_is_a_plain_mismatch(db_session, unverified, fixed_codes):
    otp.issue(db_session, unverified, VERIFICATION)

    with pytest.raises(OTPMismatchError):
        otp.check(db_session, unverified, "١١١١١١", VERIFICATION)

    assert unverified.otp_attempts == 1
    assert not unverified.is_verified
