from fastapi import APIRouter, Depends, status, BackgroundTasks, Response, Request
from sqlalchemy.orm import Session

from .. import schemas
from ..core import security
from ..core.config import settings
from ..core.dependencies import get_current_user
from ..core.rate_limiter import auth_rate_limit, otp_rate_limit
from ..database import get_db
from ..models import User
from ..services import credentials
from ..utils import Mailer, get_mailer, send_welcome_email_quietly, success_response

router = APIRouter()


def set_auth_cookie(response: Response, access_token: str):
    response.set_cookie(
        key="token",
        value=access_token,
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        secure=settings.COOKIE_SECURE
    )


def _session_payload(response: Response, user: User) -> dict:
    access_token = security.create_session_token(user.id)
    set_auth_cookie(response, access_token)
    return {"user": schemas.user_public(user), "token": access_token}


@router.post("/register", status_code=status.HTTP_201_CREATED)
@auth_rate_limit()
def register_user(
        request: Request,
        user_in: schemas.RegisterRequest,
        db: Session = Depends(get_db),
        mailer: Mailer = Depends(get_mailer)
):
    user = credentials.register(
        db, mailer,
        name=user_in.name,
        email=user_in.email,
        roll_number=user_in.roll_number,
        password=user_in.password,
        year=user_in.year,
        branch=user_in.branch,
    )
    return success_response(
        message="OTP sent to your email. Please verify to complete registration.",
        data={"email": user.email, "otp_expires_in": f"{settings.OTP_EXPIRE_MINUTES} minutes"},
    )


@router.post("/verify-otp")
@otp_rate_limit()
def verify_user_otp(
        request: Request,
        response: Response,
        data: schemas.VerifyOTP,
        background_tasks: BackgroundTasks,
        db: Session = Depends(get_db),
        mailer: Mailer = Depends(get_mailer)
):
    user = credentials.verify_registration(db, data.email, data.otp)
    background_tasks.add_task(send_welcome_email_quietly, mailer, user.email, user.name)
    return success_response(
        message="Email verified successfully! Welcome to Student Network.",
        data=_session_payload(response, user),
    )


@router.post("/resend-otp")
@otp_rate_limit()
def resend_otp(
        request: Request,
        data: schemas.ResendOTP,
        db: Session = Depends(get_db),
        mailer: Mailer = Depends(get_mailer)
):
    user = credentials.resend_verification(db, mailer, data.email)
    return success_response(
        message="New OTP sent to your email",
        data={"email": user.email, "otp_expires_in": f"{settings.OTP_EXPIRE_MINUTES} minutes"},
    )


@router.post("/login")
@auth_rate_limit()
def login_for_access_token(
        request: Request,
        response: Response,
        form_data: schemas.LoginRequest,
        db: Session = Depends(get_db)
):
    user = credentials.verify_credential(db, form_data.roll_number, form_data.password)
    return success_response(message="Login successful", data=_session_payload(response, user))


@router.post("/logout")
def logout(response: Response, current_user: User = Depends(get_current_user)):
    response.delete_cookie(key="token")
    return success_response(message="Logged out successfully")


@router.get("/profile")
def read_users_me(current_user: User = Depends(get_current_user)):
    return success_response(data={"user": schemas.user_public(current_user)})


@router.post("/forgot-password")
@auth_rate_limit()
def forgot_password(
        request: Request,
        data: schemas.ForgotPassword,
        db: Session = Depends(get_db),
        mailer: Mailer = Depends(get_mailer)
):
    user = credentials.request_password_reset(db, mailer, data.email)
    return success_response(
        message="Password reset OTP sent to your email",
        data={"email": user.email, "otp_expires_in": f"{settings.OTP_EXPIRE_MINUTES} minutes"},
    )


@router.post("/reset-password")
@auth_rate_limit()
def reset_password(
        request: Request,
        data: schemas.ResetPassword,
        db: Session = Depends(get_db)
):
    credentials.reset_password(db, data.email, data.otp, data.new_password)
    return success_response(message="Password reset successful. Please login with your new password.")
