"""
Account credentials: registration, email verification, login and password reset.

Login order: unknown roll number -> locked -> password -> verified -> active.
Unknown accounts and wrong passwords get the same InvalidCredentialError.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studentnet import crud, models
from studentnet.core.exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AccountNotFoundError,
    AccountNotVerifiedError,
    AlreadyVerifiedError,
    DuplicateIdentityError,
    ExternalServiceError,
    InvalidCredentialError,
)
from studentnet.core.logging_config import get_logger
from studentnet.core.security import get_password_hash, verify_password, verify_unmatched_password
from studentnet.services import lockout, otp
from studentnet.utils import Mailer

logger = get_logger("auth")

OTPPurpose = models.OTPPurpose


def _reusable_holder(db: Session, email: str, roll_number: str):
    """
    The abandoned sign-up occupying this identity, or None if it is free.

    Raises DuplicateIdentityError when a verified or deleted account holds
    either value, or when the two values belong to different accounts.
    """
    holders = crud.find_identity_holders(db, email, roll_number)
    if not holders:
        return None
    if len(holders) > 1:
        raise DuplicateIdentityError()
    holder = holders[0]
    if holder.is_verified or holder.account_status == models.AccountStatus.DELETED:
        raise DuplicateIdentityError()
    return holder


def register(db: Session, mailer: Mailer, name: str, email: str, roll_number: str,
             password: str, year: str, branch: str) -> models.User:
    user = _reusable_holder(db, email, roll_number)
    created = user is None

    if created:
        user = crud.create_account(db, name, email, roll_number, password, year, branch)
    else:
        otp.ensure_can_reissue(user)
        user.name = name.strip()
        user.email = crud.normalize_email(email)
        user.roll_number = crud.normalize_roll_number(roll_number)
        user.year = year
        user.branch = branch.strip()
        crud.set_password(user, password)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateIdentityError()
        db.refresh(user)

    code = otp.issue(db, user, OTPPurpose.VERIFICATION)

    try:
        mailer.send_otp_email(user.email, user.name, code)
    except ExternalServiceError:
        if created:
            crud.delete_account(db, user)
        logger.log_auth_event("register", success=False, identity=roll_number, reason="email_failed")
        raise ExternalServiceError("mailer", "Failed to send verification email. Please try again.")

    logger.log_auth_event("register", success=True, identity=user.roll_number)
    return user


def verify_registration(db: Session, email: str, code: str) -> models.User:
    user = crud.get_user_by_email(db, email)
    if not user:
        raise AccountNotFoundError()
    if user.is_verified:
        raise AlreadyVerifiedError()

    otp.check(db, user, code, OTPPurpose.VERIFICATION)
    logger.log_auth_event("verify_email", success=True, identity=user.roll_number)
    return user


def resend_verification(db: Session, mailer: Mailer, email: str) -> models.User:
    user = crud.get_user_by_email(db, email)
    if not user:
        raise AccountNotFoundError()
    if user.is_verified:
        raise AlreadyVerifiedError()

    otp.ensure_can_reissue(user)
    code = otp.issue(db, user, OTPPurpose.VERIFICATION)
    mailer.send_otp_email(user.email, user.name, code)
    return user


def verify_credential(db: Session, roll_number: str, password: str) -> models.User:
    user = crud.get_user_by_roll_number(db, roll_number)
    if not user:
        verify_unmatched_password(password)
        logger.log_auth_event("login", success=False, identity=roll_number, reason="unknown_account")
        raise InvalidCredentialError()

    if lockout.is_locked(user):
        logger.log_auth_event("login", success=False, identity=user.roll_number, reason="locked")
        raise AccountLockedError()

    if not verify_password(password, user.hashed_password):
        lockout.record_failure(db, user)
        logger.log_auth_event(
            "login", success=False, identity=user.roll_number, reason="bad_password",
            failed_attempts=user.failed_login_attempts,
        )
        raise InvalidCredentialError()

    lockout.record_success(db, user)

    if not user.is_verified:
        raise AccountNotVerifiedError()
    if user.account_status != models.AccountStatus.ACTIVE:
        raise AccountNotActiveError(user.account_status.value)

    crud.touch_last_active(db, user)
    logger.log_auth_event("login", success=True, identity=user.roll_number)
    return user


def request_password_reset(db: Session, mailer: Mailer, email: str) -> models.User:
    user = crud.get_user_by_email(db, email)
    if not user:
        raise AccountNotFoundError()
    if not user.is_verified:
        raise AccountNotVerifiedError()

    otp.ensure_can_reissue(user)
    code = otp.issue(db, user, OTPPurpose.PASSWORD_RESET)
    mailer.send_password_reset_email(user.email, user.name, code)
    logger.log_auth_event("password_reset_requested", success=True, identity=user.roll_number)
    return user


def reset_password(db: Session, email: str, code: str, new_password: str) -> models.User:
    user = crud.get_user_by_email(db, email)
    if not user:
        raise AccountNotFoundError()

    # Hash before the check so the swap happens in the consuming UPDATE
    otp.check(
        db, user, code, OTPPurpose.PASSWORD_RESET,
        on_success={models.User.hashed_password: get_password_hash(new_password)},
    )
    logger.log_auth_event("password_reset", success=True, identity=user.roll_number)
    return user
