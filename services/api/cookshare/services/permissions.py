"""Recipe roles and what each one may do.

Role strings are stored on collaborators rows; everything else goes
through the Role enum and the capability table below.
"""

import logging
from enum import Enum
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Collaborator, Recipe, User

logger = logging.getLogger("cookshare.permissions")


class Role(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"
    INVITE = "invite"
    DELETE = "delete"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.OWNER: frozenset({Capability.READ, Capability.WRITE, Capability.INVITE, Capability.DELETE}),
    Role.EDITOR: frozenset({Capability.READ, Capability.WRITE}),
    Role.VIEWER: frozenset({Capability.READ}),
}

DENIED_MESSAGES = {
    Capability.DELETE: "Only the owner can delete this recipe",
    Capability.INVITE: "Only the owner can manage collaborators",
}


def parse_role(value: Optional[str]) -> Optional[Role]:
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        logger.warning(f"Unknown collaborator role '{value}', treating as no access")
        return None


def can(role: Optional[Role], capability: Capability) -> bool:
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES[role]


def get_role(db: Session, recipe_id: str, user_id: str) -> Optional[Role]:
    """Role of user on recipe, or None when they are not a collaborator.

    Pending invitations grant nothing until accepted.
    """
    value = db.scalar(
        select(Collaborator.role).where(
            Collaborator.recipe_id == recipe_id,
            Collaborator.user_id == user_id,
            Collaborator.accepted_at.is_not(None),
        )
    )
    return parse_role(value)


def require_capability(db: Session, recipe: Recipe, user: Optional[User], capability: Capability) -> Optional[Role]:
    """Raise 401/403 unless user may exercise capability on recipe.

    Public recipes are readable by anyone, signed in or not.
    """
    if capability == Capability.READ and recipe.is_public:
        return get_role(db, recipe.id, user.id) if user else None

    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    role = get_role(db, recipe.id, user.id)
    if not can(role, capability):
        raise HTTPException(
            status_code=403,
            detail=DENIED_MESSAGES.get(capability, "Access denied"),
        )
    return role
