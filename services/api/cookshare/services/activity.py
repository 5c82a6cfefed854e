from datetime import datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ..models import RecipeActivity

logger = logging.getLogger("cookshare.activity")

MAX_DESCRIPTION_LEN = 500
RECENT_ACTIVITY_LIMIT = 10


def log_activity(
    db: Session,
    *,
    recipe_id: str,
    user_id: str,
    action: str,
    description: str,
) -> RecipeActivity:
    """Record a recipe activity entry.

    Args:
        db: Database session
        recipe_id: Recipe the action applies to
        user_id: Acting user
        action: Machine name (created, updated, added_ingredient, ...)
        description: Human-readable summary, truncated if too long.
    """
    if len(description) > MAX_DESCRIPTION_LEN:
        logger.warning(f"Activity description too long ({len(description)} chars), truncating.")
        description = description[:MAX_DESCRIPTION_LEN - 1] + "…"

    activity = RecipeActivity(
        recipe_id=recipe_id,
        user_id=user_id,
        action=action,
        description=description,
        created_at=datetime.now(timezone.utc),
    )
    db.add(activity)
    # Caller commits together with the change being recorded.
    return activity


def recent_activity(db: Session, recipe_id: str, limit: int = RECENT_ACTIVITY_LIMIT) -> list[RecipeActivity]:
    return list(db.scalars(
        select(RecipeActivity)
        .options(joinedload(RecipeActivity.user))
        .where(RecipeActivity.recipe_id == recipe_id)
        .order_by(RecipeActivity.created_at.desc())
        .limit(limit)
    ).unique())
