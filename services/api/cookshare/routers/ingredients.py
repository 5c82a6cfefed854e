"""Ingredient line endpoints.

- POST /api/recipes/{id}/ingredients
- PATCH /api/ingredients/{id}
- DELETE /api/ingredients/{id}
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user, load_recipe
from ..models import Ingredient, Recipe, User
from ..schemas import IngredientCreate, IngredientOut, IngredientPatch
from ..services.activity import log_activity
from ..services.permissions import Capability, require_capability
from ..services.scaling import compose_quantity

router = APIRouter()
logger = logging.getLogger("cookshare.ingredients")


def _touch(recipe: Recipe) -> None:
    recipe.updated_at = datetime.now(timezone.utc)


def _load_ingredient(db: Session, ingredient_id: str) -> Ingredient:
    ingredient = db.get(Ingredient, ingredient_id)
    if ingredient is None:
        raise HTTPException(status_code=404, detail="Ingredient not found")
    return ingredient


@router.post("/recipes/{recipe_id}/ingredients", response_model=IngredientOut, status_code=201)
def add_ingredient(
    recipe_id: str,
    payload: IngredientCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.WRITE)

    order = payload.order
    if order is None:
        last = db.scalar(select(func.max(Ingredient.order)).where(Ingredient.recipe_id == recipe.id))
        order = 0 if last is None else last + 1

    ingredient = Ingredient(
        recipe_id=recipe.id,
        name=payload.name.strip(),
        quantity=payload.quantity,
        unit=payload.unit.strip(),
        order=order,
    )
    db.add(ingredient)
    _touch(recipe)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="added_ingredient",
        description=f"Added {compose_quantity(payload.quantity, ingredient.unit)} {ingredient.name}",
    )
    db.commit()
    db.refresh(ingredient)
    return ingredient


@router.patch("/ingredients/{ingredient_id}", response_model=IngredientOut)
def update_ingredient(
    ingredient_id: str,
    payload: IngredientPatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ingredient = _load_ingredient(db, ingredient_id)
    recipe = ingredient.recipe
    require_capability(db, recipe, user, Capability.WRITE)

    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not data:
        return ingredient

    for field, value in data.items():
        if isinstance(value, str):
            value = value.strip()
        setattr(ingredient, field, value)

    _touch(recipe)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="updated_ingredient",
        description=f"Updated ingredient {ingredient.name}",
    )
    db.commit()
    db.refresh(ingredient)
    return ingredient


@router.delete("/ingredients/{ingredient_id}", status_code=204)
def delete_ingredient(
    ingredient_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ingredient = _load_ingredient(db, ingredient_id)
    recipe = ingredient.recipe
    require_capability(db, recipe, user, Capability.WRITE)

    name = ingredient.name
    db.delete(ingredient)
    _touch(recipe)
    log_activity(
        db, recipe_id=recipe.id, user_id=user.id, action="removed_ingredient",
        description=f"Removed ingredient {name}",
    )
    db.commit()
    return Response(status_code=204)
