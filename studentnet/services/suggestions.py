from typing import List, Tuple

from sqlalchemy.orm import Session

from studentnet import crud, models
from studentnet.services import connections

DEFAULT_LIMIT = 10
MAX_LIMIT = 50

SAME_BRANCH_AND_YEAR = 10
SAME_BRANCH = 5
PER_SHARED_SKILL = 2
PER_SHARED_INTEREST = 1


def score_candidate(user: models.User, candidate: models.User) -> int:
    score = 0
    if candidate.branch == user.branch and candidate.year == user.year:
        score += SAME_BRANCH_AND_YEAR
    elif candidate.branch == user.branch:
        score += SAME_BRANCH

    shared_skills = set(user.skills or []) & set(candidate.skills or [])
    shared_interests = set(user.interests or []) & set(candidate.interests or [])
    score += PER_SHARED_SKILL * len(shared_skills)
    score += PER_SHARED_INTEREST * len(shared_interests)
    return score


def suggest(db: Session, user: models.User, limit: int = DEFAULT_LIMIT) -> List[Tuple[models.User, int]]:
    """
    Rank active, verified accounts the user has no edge with (of any status).

    Zero scores are dropped; ties keep id order since sorted() is stable.
    """
    limit = max(1, min(MAX_LIMIT, limit))
    excluded = connections.related_user_ids(db, user.id) | {user.id}

    pool = crud.active_accounts(db).filter(models.User.id.notin_(excluded)) \
        .order_by(models.User.id).all()

    scored = [(candidate, score_candidate(user, candidate)) for candidate in pool]
    scored = [(candidate, score) for candidate, score in scored if score > 0]
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
