from __future__ import annotations
import re
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, StrictBool, field_validator
from typing import List, Literal, Optional

from .models import AccountStatus, AchievementCategory, NotificationType, ProfileVisibility

Year = Literal["1", "2", "3", "4"]

PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def _check_password(value: str) -> str:
    if not PASSWORD_RULE.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    roll_number: str = Field(min_length=5, max_length=15, pattern=r"^[A-Za-z0-9]+$")
    password: str = Field(min_length=8)
    year: Year
    branch: str = Field(min_length=2, max_length=50)

    check_password_rule = field_validator("password")(_check_password)


class VerifyOTP(BaseModel):
    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")


class ResendOTP(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    roll_number: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ForgotPassword(BaseModel):
    email: EmailStr


class ResetPassword(BaseModel):
    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")
    new_password: str = Field(min_length=8)

    check_password_rule = field_validator("new_password")(_check_password)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=500)
    phone: Optional[str] = Field(default=None, pattern=r"^[0-9]{10}$")
    linkedin: Optional[str] = Field(default=None, max_length=255)
    github: Optional[str] = Field(default=None, max_length=255)
    skills: Optional[List[str]] = None
    interests: Optional[List[str]] = None
    year: Optional[Year] = None
    branch: Optional[str] = Field(default=None, min_length=2, max_length=50)


class PrivacyUpdate(BaseModel):
    profile_visibility: Optional[ProfileVisibility] = None
    show_email: Optional[bool] = None
    show_phone: Optional[bool] = None
    show_connections: Optional[bool] = None
    show_achievements: Optional[bool] = None
    allow_connection_requests: Optional[bool] = None


class ConnectionRequestBody(BaseModel):
    message: Optional[str] = Field(default=None, max_length=200)


class AchievementCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=20, max_length=1000)
    student_id: int
    category: AchievementCategory
    technologies: List[str] = Field(default_factory=list, max_length=10)
    github_link: Optional[str] = None
    live_link: Optional[str] = None


class AchievementUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, min_length=20, max_length=1000)
    category: Optional[AchievementCategory] = None
    technologies: Optional[List[str]] = Field(default=None, max_length=10)
    github_link: Optional[str] = None
    live_link: Optional[str] = None
    remove_images: Optional[List[str]] = None


class FeatureToggle(BaseModel):
    featured: StrictBool


class UserSummary(BaseModel):
    id: int
    name: str
    roll_number: str
    branch: str
    year: str
    profile_picture: Optional[str] = None
    skills: List[str] = []
    interests: List[str] = []

    class Config:
        from_attributes = True


class UserPublic(UserSummary):
    email: str
    bio: str = ""
    phone: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    is_verified: bool
    is_admin: bool
    account_status: AccountStatus
    last_active: Optional[datetime] = None
    created_at: datetime


class PrivacyOut(BaseModel):
    profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC
    show_email: bool = True
    show_phone: bool = False
    show_connections: bool = True
    show_achievements: bool = True
    allow_connection_requests: bool = True

    class Config:
        from_attributes = True


class NotificationOut(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    related_id: Optional[int] = None
    related_model: Optional[str] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AchievementOut(BaseModel):
    id: int
    title: str
    description: str
    student_id: int
    student_name: str
    student_roll_number: str
    branch: str
    year: str
    category: AchievementCategory
    technologies: List[str] = []
    github_link: Optional[str] = None
    live_link: Optional[str] = None
    images: List[str] = []
    likes_count: int
    views: int
    featured: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def user_summary(user) -> dict:
    return UserSummary.model_validate(user).model_dump(mode="json")


def user_public(user) -> dict:
    return UserPublic.model_validate(user).model_dump(mode="json")


def achievement_out(achievement, **extra) -> dict:
    return {**AchievementOut.model_validate(achievement).model_dump(mode="json"), **extra}
