from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from .. import schemas
from ..core.dependencies import get_current_user, get_optional_user, require_admin
from ..database import get_db
from ..models import AchievementCategory, User
from ..services import achievements
from ..storage import StorageClient, get_storage, read_image_upload
from ..utils import get_pagination, page_meta, success_response

router = APIRouter()


@router.get("/")
def list_achievements(
        page: int = 1,
        limit: int = 20,
        branch: Optional[str] = None,
        year: Optional[str] = None,
        category: Optional[AchievementCategory] = None,
        technologies: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "recent",
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    techs = [t.strip() for t in technologies.split(",") if t.strip()] if technologies else None
    items, total = achievements.list_achievements(
        db, offset, limit,
        branch=branch, year=year, category=category,
        technologies=techs, search=search, sort_by=sort_by,
    )
    return success_response(
        message="Achievements fetched successfully",
        data={
            "achievements": [schemas.achievement_out(a) for a in items],
            "pagination": page_meta(page, limit, total),
        },
    )


@router.get("/featured")
def get_featured(limit: int = 10, db: Session = Depends(get_db)):
    items = achievements.featured(db, limit)
    return success_response(
        message="Featured achievements fetched successfully",
        data=[schemas.achievement_out(a) for a in items],
    )


@router.get("/trending")
def get_trending(limit: int = 10, days: int = 7, db: Session = Depends(get_db)):
    ranked = achievements.trending(db, limit, days)
    return success_response(
        message="Trending achievements fetched successfully",
        data=[schemas.achievement_out(a, trending_score=score) for a, score in ranked],
    )


@router.get("/{achievement_id}")
def get_achievement(
        achievement_id: int,
        current_user: Optional[User] = Depends(get_optional_user),
        db: Session = Depends(get_db)
):
    achievement = achievements.get_achievement(db, achievement_id)
    liked = bool(current_user) and achievements.is_liked_by(db, achievement.id, current_user.id)
    return success_response(
        message="Achievement fetched successfully",
        data=schemas.achievement_out(achievement, is_liked_by_user=liked),
    )


@router.post("/{achievement_id}/view")
def view_achievement(achievement_id: int, db: Session = Depends(get_db)):
    views = achievements.record_view(db, achievement_id)
    return success_response(message="View recorded successfully", data={"views": views})


@router.post("/{achievement_id}/like")
def like_achievement(
        achievement_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    liked, total = achievements.toggle_like(db, achievement_id, current_user)
    return success_response(
        message="Achievement liked successfully" if liked else "Achievement unliked successfully",
        data={"liked": liked, "total_likes": total},
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_achievement(
        payload: schemas.AchievementCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    achievement = achievements.create_achievement(
        db, payload.student_id, payload.model_dump(exclude={"student_id"})
    )
    return success_response(message="Achievement created successfully", data=schemas.achievement_out(achievement))


@router.put("/{achievement_id}")
def update_achievement(
        achievement_id: int,
        payload: schemas.AchievementUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
        storage: StorageClient = Depends(get_storage)
):
    changes = payload.model_dump(exclude_unset=True)
    remove_images = changes.pop("remove_images", None)
    achievement = achievements.update_achievement(db, storage, achievement_id, changes, remove_images)
    return success_response(message="Achievement updated successfully", data=schemas.achievement_out(achievement))


@router.delete("/{achievement_id}")
def delete_achievement(
        achievement_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
        storage: StorageClient = Depends(get_storage)
):
    achievements.delete_achievement(db, storage, achievement_id)
    return success_response(message="Achievement deleted successfully")


@router.put("/{achievement_id}/feature")
def toggle_featured(
        achievement_id: int,
        payload: schemas.FeatureToggle,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db)
):
    achievement = achievements.set_featured(db, achievement_id, payload.featured)
    return success_response(
        message="Achievement featured successfully" if payload.featured else "Achievement unfeatured successfully",
        data=schemas.achievement_out(achievement),
    )


@router.post("/{achievement_id}/images")
def upload_images(
        achievement_id: int,
        files: List[UploadFile] = File(...),
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
        storage: StorageClient = Depends(get_storage)
):
    uploads = [read_image_upload(f) for f in files]
    achievement = achievements.add_images(db, storage, achievement_id, uploads)
    return success_response(message="Images uploaded successfully", data=schemas.achievement_out(achievement))
