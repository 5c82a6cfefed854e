"""Instruction step endpoints.

Step numbers are unique within a recipe; the cook timer looks steps up by
number.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.text import clean_step_text
from ..db import get_db
from ..deps import get_current_user, load_recipe
from ..models import Instruction, User
from ..schemas import InstructionCreate, InstructionOut, InstructionPatch
from ..services.activity import log_activity
from ..services.permissions import Capability, require_capability

router = APIRouter()
logger = logging.getLogger("cookshare.instructions")


def _ensure_step_free(db: Session, recipe_id: str, step_number: int, exclude_id: str | None = None) -> None:
    stmt = select(Instruction.id).where(
        Instruction.recipe_id == recipe_id,
        Instruction.step_number == step_number,
    )
    if exclude_id:
        stmt = stmt.where(Instruction.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise HTTPException(status_code=409, detail=f"Step {step_number} already exists")


def _load_instruction(db: Session, instruction_id: str) -> Instruction:
    instruction = db.get(Instruction, instruction_id)
    if instruction is None:
        raise HTTPException(status_code=404, detail="Instruction not found")
    return instruction


@router.post("/recipes/{recipe_id}/instructions", response_model=InstructionOut, status_code=201)
def add_instruction(
    recipe_id: str,
    payload: InstructionCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.WRITE)
    _ensure_step_free(db, recipe.id, payload.step_number)

    instruction = Instruction(
        recipe_id=recipe.id,
        step_number=payload.step_number,
        instruction=clean_step_text(payload.instruction),
        timer_minutes=payload.timer_minutes,
    )
    db.add(instruction)
    recipe.updated_at = datetime.now(timezone.utc)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="added_instruction",
        description=f"Added step {payload.step_number}",
    )
    db.commit()
    db.refresh(instruction)
    return instruction


@router.patch("/instructions/{instruction_id}", response_model=InstructionOut)
def update_instruction(
    instruction_id: str,
    payload: InstructionPatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    instruction = _load_instruction(db, instruction_id)
    recipe = instruction.recipe
    require_capability(db, recipe, user, Capability.WRITE)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        return instruction

    if data.get("step_number") is not None and data["step_number"] != instruction.step_number:
        _ensure_step_free(db, recipe.id, data["step_number"], exclude_id=instruction.id)
        instruction.step_number = data["step_number"]
    if data.get("instruction") is not None:
        instruction.instruction = clean_step_text(data["instruction"])
    if "timer_minutes" in data:
        # Explicit null clears the step's timer
        instruction.timer_minutes = data["timer_minutes"]

    recipe.updated_at = datetime.now(timezone.utc)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="updated_instruction",
        description=f"Updated step {instruction.step_number}",
    )
    db.commit()
    db.refresh(instruction)
    return instruction


@router.delete("/instructions/{instruction_id}", status_code=204)
def delete_instruction(
    instruction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    instruction = _load_instruction(db, instruction_id)
    recipe = instruction.recipe
    require_capability(db, recipe, user, Capability.WRITE)

    step_number = instruction.step_number
    db.delete(instruction)
    recipe.updated_at = datetime.now(timezone.utc)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="removed_instruction",
        description=f"Removed step {step_number}",
    )
    db.commit()
    return Response(status_code=204)
