"""FastAPI dependencies for CookShare API.

Provides:
- Current user resolution (header → env → anonymous)
- Recipe lookup
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .models import Recipe, User
from .settings import settings


def get_current_user_optional(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[User]:
    """Resolve the acting user, or None for anonymous requests.

    Resolution order:
    1. X-User-Id header (if present):
       - Try as user id
       - Try as email
       - If not found -> 401 (a stale header must not silently become anonymous)
    2. settings.default_user_id (auth-free local development)
    3. Anonymous
    """
    if x_user_id:
        user = db.get(User, x_user_id)
        if user is None:
            user = db.query(User).filter(User.email == x_user_id).first()
        if user is not None:
            return user
        raise HTTPException(status_code=401, detail=f"Unknown user '{x_user_id}'")

    if settings.default_user_id:
        return db.get(User, settings.default_user_id)

    return None


def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def load_recipe(db: Session, recipe_id: str) -> Recipe:
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe
