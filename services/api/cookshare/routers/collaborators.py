"""Recipe sharing: collaborators and the activity feed.

Endpoints:
- GET /api/recipes/{id}/collaborators - List collaborators (readers)
- POST /api/recipes/{id}/collaborators - Invite by email (owner, idempotent)
- POST /api/recipes/{id}/collaborators/accept - Accept a pending invite
- DELETE /api/recipes/{id}/collaborators/{user_id} - Remove (owner) or leave (self)
- GET /api/recipes/{id}/activity - Recent activity
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..deps import get_current_user, get_current_user_optional, load_recipe
from ..infra.idempotency import claim_idempotency_key
from ..infra.rate_limit import limiter
from ..models import Collaborator, User
from ..schemas import (
    ActivityOut, CollaboratorOut,
    InviteCollaboratorRequest, InviteCollaboratorResponse,
)
from ..services.activity import log_activity, recent_activity
from ..services.permissions import Capability, Role, parse_role, require_capability


router = APIRouter()
logger = logging.getLogger("cookshare.collaborators")


def _find_collaborator(db: Session, recipe_id: str, user_id: str) -> Optional[Collaborator]:
    return db.scalar(
        select(Collaborator).where(
            Collaborator.recipe_id == recipe_id,
            Collaborator.user_id == user_id,
        )
    )


@router.get("/recipes/{recipe_id}/collaborators", response_model=list[CollaboratorOut])
def list_collaborators(
    recipe_id: str,
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.READ)
    return db.scalars(
        select(Collaborator)
        .options(joinedload(Collaborator.user))
        .where(Collaborator.recipe_id == recipe.id)
        .order_by(Collaborator.invited_at)
    ).unique().all()


@router.post("/recipes/{recipe_id}/collaborators", response_model=InviteCollaboratorResponse, status_code=201)
@limiter.limit("20/minute")
async def invite_collaborator(
    request: Request,
    recipe_id: str,
    body: InviteCollaboratorRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Invite someone to collaborate.

    Known users get a pending collaborator row (or their role changed if
    already present). Unknown emails are acknowledged without a row; they
    join once they have an account and are invited again.
    Requires an Idempotency-Key header.
    """
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.INVITE)

    claim = await claim_idempotency_key(request, user_id=user.id, scope=f"invite:{recipe.id}")
    if isinstance(claim, JSONResponse):
        return claim

    try:
        email = body.email.lower()
        invitee = db.scalar(select(User).where(User.email == email))

        if invitee is None:
            logger.info(f"Invitation for {email} to recipe {recipe.id} recorded without account")
            log_activity(
                db, recipe_id=recipe.id, user_id=user.id,
                action="invited_collaborator", description=f"Invited {email} as {body.role}",
            )
            db.commit()
            resp = InviteCollaboratorResponse(
                message="Invitation sent", email=email, role=body.role, status="pending",
            )
        else:
            existing = _find_collaborator(db, recipe.id, invitee.id)
            if existing is not None and parse_role(existing.role) == Role.OWNER:
                raise HTTPException(status_code=409, detail="The owner is already a collaborator")

            if existing is None:
                collaborator = Collaborator(recipe_id=recipe.id, user_id=invitee.id, role=body.role)
                db.add(collaborator)
                message = "Invitation sent"
            else:
                collaborator = existing
                collaborator.role = body.role
                message = "Collaborator role updated"

            log_activity(
                db, recipe_id=recipe.id, user_id=user.id,
                action="invited_collaborator", description=f"Invited {email} as {body.role}",
            )
            db.commit()
            db.refresh(collaborator)
            resp = InviteCollaboratorResponse(
                message=message,
                email=email,
                role=collaborator.role,
                status="added" if collaborator.accepted_at else "pending",
                collaborator=CollaboratorOut.model_validate(collaborator),
            )

        await claim.complete(201, resp.model_dump(mode="json"))
        return resp
    except Exception:
        await claim.release()
        raise


@router.post("/recipes/{recipe_id}/collaborators/accept", response_model=CollaboratorOut)
def accept_invitation(
    recipe_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    recipe = load_recipe(db, recipe_id)
    collaborator = _find_collaborator(db, recipe.id, user.id)
    if collaborator is None:
        raise HTTPException(status_code=404, detail="No invitation for this recipe")

    if collaborator.accepted_at is None:
        collaborator.accepted_at = datetime.now(timezone.utc)
        log_activity(
            db, recipe_id=recipe.id, user_id=user.id,
            action="joined", description=f"{user.display_name} joined as {collaborator.role}",
        )
        db.commit()
        db.refresh(collaborator)
    return collaborator


@router.delete("/recipes/{recipe_id}/collaborators/{user_id}", status_code=204)
def remove_collaborator(
    recipe_id: str,
    user_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owner removes anyone but themselves; any collaborator may leave."""
    recipe = load_recipe(db, recipe_id)
    if user_id != user.id:
        require_capability(db, recipe, user, Capability.INVITE)

    collaborator = _find_collaborator(db, recipe.id, user_id)
    if collaborator is None:
        raise HTTPException(status_code=404, detail="Collaborator not found")
    if parse_role(collaborator.role) == Role.OWNER:
        raise HTTPException(status_code=409, detail="The owner cannot be removed")

    who = collaborator.user.display_name
    db.delete(collaborator)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id,
        action="left" if user_id == user.id else "removed_collaborator",
        description=f"{who} left" if user_id == user.id else f"Removed {who}",
    )
    db.commit()
    return Response(status_code=204)


@router.get("/recipes/{recipe_id}/activity", response_model=list[ActivityOut])
def get_activity(
    recipe_id: str,
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.READ)
    return recent_activity(db, recipe.id)
