# studentnet/crud.py
import json
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from . import models
from .core.exceptions import DuplicateIdentityError
from .core.security import get_password_hash
from .utils import utcnow


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_roll_number(roll_number: str) -> str:
    return roll_number.strip().upper()


# Account status predicates. Every account lookup composes one of these
# explicitly; there is no implicit filter hook.

def visible_accounts(db: Session) -> Query:
    """Accounts that still exist for the outside world (anything but deleted)"""
    return db.query(models.User).filter(models.User.account_status != models.AccountStatus.DELETED)


def active_accounts(db: Session, verified_only: bool = True) -> Query:
    """Accounts that can appear in search, filters and suggestions"""
    query = db.query(models.User).filter(models.User.account_status == models.AccountStatus.ACTIVE)
    if verified_only:
        query = query.filter(models.User.is_verified.is_(True))
    return query


def all_accounts(db: Session) -> Query:
    """Includes soft-deleted rows; only identity-uniqueness checks use this"""
    return db.query(models.User)


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return visible_accounts(db).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return visible_accounts(db).filter(models.User.email == normalize_email(email)).first()


def get_user_by_roll_number(db: Session, roll_number: str) -> Optional[models.User]:
    return visible_accounts(db).filter(
        models.User.roll_number == normalize_roll_number(roll_number)
    ).first()


def get_users_by_ids(db: Session, user_ids: Iterable[int]) -> List[models.User]:
    user_ids = list(user_ids)
    if not user_ids:
        return []
    return visible_accounts(db).filter(models.User.id.in_(user_ids)).order_by(models.User.id).all()


def find_identity_holders(db: Session, email: str, roll_number: str) -> List[models.User]:
    return all_accounts(db).filter(
        or_(
            models.User.email == normalize_email(email),
            models.User.roll_number == normalize_roll_number(roll_number),
        )
    ).all()


def set_password(user: models.User, password: str) -> None:
    """Hash on credential change only; profile updates never touch this column"""
    user.hashed_password = get_password_hash(password)


def create_account(db: Session, name: str, email: str, roll_number: str, password: str,
                   year: str, branch: str) -> models.User:
    db_user = models.User(
        name=name.strip(),
        email=normalize_email(email),
        roll_number=normalize_roll_number(roll_number),
        year=year,
        branch=branch.strip(),
        skills=[],
        interests=[],
        is_verified=False,
    )
    set_password(db_user, password)
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration of the same identity
        db.rollback()
        raise DuplicateIdentityError()
    db.refresh(db_user)
    return db_user


def delete_account(db: Session, user: models.User) -> None:
    """Physical delete, used only to roll back a failed registration"""
    db.delete(user)
    db.commit()


def update_profile(db: Session, user: models.User, changes: dict) -> models.User:
    for field, value in changes.items():
        if field in ("skills", "interests"):
            value = _dedupe(value)
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def soft_delete(db: Session, user: models.User) -> None:
    user.account_status = models.AccountStatus.DELETED
    db.commit()


def touch_last_active(db: Session, user: models.User) -> None:
    user.last_active = utcnow()
    db.commit()


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def like_escape(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def json_contains_any(column, values: List[str]):
    # Matches whole elements of a JSON string array, e.g. '"React"'
    return or_(*[cast(column, String).like(f"%{like_escape(json.dumps(v))}%", escape="\\") for v in values])


def search_users(db: Session, term: str, offset: int, limit: int) -> Tuple[List[models.User], int]:
    pattern = f"%{like_escape(term.strip())}%"
    query = active_accounts(db).filter(
        or_(
            models.User.name.ilike(pattern, escape="\\"),
            models.User.roll_number.ilike(pattern, escape="\\"),
            models.User.email.ilike(pattern, escape="\\"),
            models.User.branch.ilike(pattern, escape="\\"),
            cast(models.User.skills, String).ilike(pattern, escape="\\"),
            cast(models.User.interests, String).ilike(pattern, escape="\\"),
        )
    )
    total = query.count()
    users = query.order_by(models.User.id).offset(offset).limit(limit).all()
    return users, total


def filter_users(db: Session, offset: int, limit: int, year: Optional[str] = None,
                 branch: Optional[str] = None, skills: Optional[List[str]] = None,
                 interests: Optional[List[str]] = None) -> Tuple[List[models.User], int]:
    query = active_accounts(db)
    if year:
        query = query.filter(models.User.year == year)
    if branch:
        query = query.filter(func.lower(models.User.branch) == branch.strip().lower())
    if skills:
        query = query.filter(json_contains_any(models.User.skills, skills))
    if interests:
        query = query.filter(json_contains_any(models.User.interests, interests))
    total = query.count()
    users = query.order_by(models.User.id).offset(offset).limit(limit).all()
    return users, total
