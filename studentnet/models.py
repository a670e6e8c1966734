# studentnet/models.py
import enum

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, Index, Integer, JSON,
    String, Text, UniqueConstraint,
)

from .database import Base
from .utils import utcnow


def _str_enum(enum_cls):
    # Persist the enum values ("active"), not the member names ("ACTIVE")
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class OTPPurpose(str, enum.Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class ConnectionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class ProfileVisibility(str, enum.Enum):
    PUBLIC = "public"
    CONNECTIONS = "connections"
    PRIVATE = "private"


class NotificationType(str, enum.Enum):
    CONNECTION_REQUEST = "connection_request"
    CONNECTION_ACCEPTED = "connection_accepted"
    CONNECTION_REJECTED = "connection_rejected"
    ACHIEVEMENT_ADDED = "achievement_added"
    ACHIEVEMENT_LIKED = "achievement_liked"
    ACHIEVEMENT_FEATURED = "achievement_featured"


class AchievementCategory(str, enum.Enum):
    PROJECT = "project"
    HACKATHON = "hackathon"
    RESEARCH = "research"
    COMPETITION = "competition"
    CERTIFICATION = "certification"
    PUBLICATION = "publication"


class AchievementStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    roll_number = Column(String(15), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    year = Column(String(1), nullable=False)
    branch = Column(String(50), nullable=False)

    bio = Column(String(500), default="", nullable=False)
    phone = Column(String(10), nullable=True)
    linkedin = Column(String(255), nullable=True)
    github = Column(String(255), nullable=True)
    profile_picture = Column(Text, nullable=True)
    skills = Column(JSON, default=list, nullable=False)
    interests = Column(JSON, default=list, nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    account_status = Column(_str_enum(AccountStatus), default=AccountStatus.ACTIVE, nullable=False)

    # Present only while a challenge is outstanding
    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    otp_attempts = Column(Integer, default=0, nullable=False)
    otp_purpose = Column(_str_enum(OTPPurpose), nullable=True)
    otp_issued_at = Column(DateTime, nullable=True)

    failed_login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)

    last_active = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_users_branch_year", "branch", "year"),
    )


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, index=True, nullable=False)
    receiver_id = Column(Integer, index=True, nullable=False)
    # Unordered pair; the unique constraint below makes A->B and B->A collide
    user_low_id = Column(Integer, nullable=False)
    user_high_id = Column(Integer, nullable=False)
    status = Column(_str_enum(ConnectionStatus), default=ConnectionStatus.PENDING, nullable=False)
    message = Column(String(200), default="", nullable=False)
    requested_at = Column(DateTime, default=utcnow, nullable=False)
    responded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_connections_pair"),
        CheckConstraint("sender_id <> receiver_id", name="ck_connections_not_self"),
        Index("ix_connections_receiver_status", "receiver_id", "status"),
        Index("ix_connections_sender_status", "sender_id", "status"),
    )


class PrivacySetting(Base):
    __tablename__ = "privacy_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, index=True, nullable=False)
    profile_visibility = Column(
        _str_enum(ProfileVisibility), default=ProfileVisibility.PUBLIC, nullable=False
    )
    show_email = Column(Boolean, default=True, nullable=False)
    show_phone = Column(Boolean, default=False, nullable=False)
    show_connections = Column(Boolean, default=True, nullable=False)
    show_achievements = Column(Boolean, default=True, nullable=False)
    allow_connection_requests = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)
    type = Column(_str_enum(NotificationType), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(Integer, nullable=True)
    related_model = Column(String(30), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "is_read", "created_at"),
    )


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)

    student_id = Column(Integer, index=True, nullable=False)
    student_name = Column(String(50), nullable=False)
    student_roll_number = Column(String(15), nullable=False)
    branch = Column(String(50), nullable=False)
    year = Column(String(1), nullable=False)

    category = Column(_str_enum(AchievementCategory), default=AchievementCategory.PROJECT, nullable=False)
    technologies = Column(JSON, default=list, nullable=False)
    github_link = Column(Text, nullable=True)
    live_link = Column(Text, nullable=True)
    images = Column(JSON, default=list, nullable=False)

    likes_count = Column(Integer, default=0, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)
    status = Column(_str_enum(AchievementStatus), default=AchievementStatus.APPROVED, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_achievements_branch_year_category", "branch", "year", "category"),
        Index("ix_achievements_featured_created", "featured", "created_at"),
    )


class AchievementLike(Base):
    """Membership row of an achievement's set of liking accounts"""
    __tablename__ = "achievement_likes"

    id = Column(Integer, primary_key=True, index=True)
    achievement_id = Column(Integer, nullable=False)
    user_id = Column(Integer, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("achievement_id", "user_id", name="uq_achievement_likes_pair"),
    )
