from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..core.dependencies import get_current_user
from ..core.exceptions import AccountNotFoundError, ProfileHiddenError, ValidationError
from ..core.rate_limiter import search_rate_limit
from ..database import get_db
from ..models import User
from ..services import achievements, connections, privacy
from ..storage import PROFILE_FOLDER, StorageClient, discard, get_storage, read_image_upload
from ..utils import get_pagination, page_meta, success_response

router = APIRouter()


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _get_target(db: Session, user_id: int) -> User:
    target = crud.get_user(db, user_id)
    if not target:
        raise AccountNotFoundError(user_id)
    return target


def _require_section(db: Session, target: User, viewer: User, flag: str, message: str) -> None:
    settings = privacy.get_settings(db, target.id)
    connected = target.id != viewer.id and connections.are_connected(db, target.id, viewer.id)
    if not privacy.can_see_section(target, viewer, settings, flag, connected):
        raise ProfileHiddenError(message)


@router.get("/search")
@search_rate_limit()
def search_users(
        request: Request,
        q: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    if not q or not q.strip():
        raise ValidationError("Search query is required", field="q")
    page, limit, offset = get_pagination(page, limit)
    users, total = crud.search_users(db, q, offset, limit)
    return success_response(data={
        "users": [schemas.user_summary(u) for u in users],
        "meta": page_meta(page, limit, total, search_term=q),
    })


@router.get("/filter")
@search_rate_limit()
def filter_users(
        request: Request,
        year: Optional[str] = None,
        branch: Optional[str] = None,
        skills: Optional[str] = None,
        interests: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    users, total = crud.filter_users(
        db, offset, limit,
        year=year,
        branch=branch,
        skills=_split_csv(skills),
        interests=_split_csv(interests),
    )
    filters = {"year": year, "branch": branch, "skills": skills, "interests": interests}
    return success_response(data={
        "users": [schemas.user_summary(u) for u in users],
        "meta": page_meta(page, limit, total, filters=filters),
    })


@router.get("/privacy")
def get_privacy(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    settings = privacy.get_or_create_settings(db, current_user.id)
    return success_response(data={
        "privacy_settings": schemas.PrivacyOut.model_validate(settings).model_dump(mode="json")
    })


@router.put("/privacy")
def update_privacy(
        changes: schemas.PrivacyUpdate,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    settings = privacy.update_settings(db, current_user.id, changes.model_dump(exclude_none=True))
    return success_response(
        message="Privacy settings updated successfully",
        data={"privacy_settings": schemas.PrivacyOut.model_validate(settings).model_dump(mode="json")},
    )


@router.put("/update")
def update_profile(
        changes: schemas.ProfileUpdate,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    user = crud.update_profile(db, current_user, changes.model_dump(exclude_none=True))
    return success_response(message="Profile updated successfully", data={"user": schemas.user_public(user)})


@router.put("/me/picture")
def upload_profile_picture(
        file: UploadFile = File(...),
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        storage: StorageClient = Depends(get_storage)
):
    data, extension, content_type = read_image_upload(file)
    url = storage.store(data, extension, content_type, PROFILE_FOLDER)

    previous = current_user.profile_picture
    user = crud.update_profile(db, current_user, {"profile_picture": url})
    if previous:
        discard(storage, [previous])
    return success_response(message="Profile picture updated", data={"user": schemas.user_public(user)})


@router.delete("/me")
def delete_account(
        response: Response,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        storage: StorageClient = Depends(get_storage)
):
    picture = current_user.profile_picture
    current_user.profile_picture = None
    crud.soft_delete(db, current_user)
    if picture:
        discard(storage, [picture])
    response.delete_cookie(key="token")
    return success_response(message="Account deleted successfully")


@router.get("/{user_id}")
def get_user_by_id(
        user_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    target = _get_target(db, user_id)
    settings = privacy.get_settings(db, target.id)
    is_own_profile = target.id == current_user.id

    connected = not is_own_profile and connections.are_connected(db, target.id, current_user.id)
    if not privacy.can_view(target, current_user, settings, connected):
        raise ProfileHiddenError()

    profile = privacy.redact(schemas.user_public(target), settings, viewer_is_owner=is_own_profile)
    return success_response(data={"user": profile, "is_connected": connected})


@router.get("/{user_id}/connections")
def get_user_connections(
        user_id: int,
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    target = _get_target(db, user_id)
    _require_section(db, target, current_user, "show_connections", "This user's connections are private")

    page, limit, offset = get_pagination(page, limit)
    rows, total = connections.list_accepted(db, target.id, offset, limit)
    return success_response(data={
        "connections": [
            {"id": c.id, "user": schemas.user_summary(u), "connected_at": c.responded_at.isoformat()}
            for c, u in rows
        ],
        "meta": page_meta(page, limit, total),
    })


@router.get("/{user_id}/achievements")
def get_user_achievements(
        user_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    target = _get_target(db, user_id)
    _require_section(db, target, current_user, "show_achievements", "This user's achievements are private")

    items = achievements.list_for_student(db, target.id)
    return success_response(data={"achievements": [schemas.achievement_out(a) for a in items]})
