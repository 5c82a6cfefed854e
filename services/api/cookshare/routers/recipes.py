"""Recipes CRUD API router.

Endpoints:
- GET /api/recipes - Recipes the caller owns or collaborates on
- GET /api/recipes/public - Public recipes (cached), optional search/tag filter
- POST /api/recipes - Create recipe with ingredients and steps
- GET /api/recipes/{id} - Recipe with children, collaborators and activity
- PATCH /api/recipes/{id} - Update recipe fields
- DELETE /api/recipes/{id} - Delete recipe (owner only)
- GET /api/recipes/{id}/scaled - Ingredient quantities for another serving count
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..core.text import clean_md, clean_step_text, normalize_tags
from ..db import get_db
from ..deps import get_current_user, get_current_user_optional, load_recipe
from ..infra.rate_limit import limiter
from ..infra.redis_cache import get_or_set_json_sync, invalidate, invalidate_async
from ..models import Collaborator, Ingredient, Instruction, Recipe, User
from ..schemas import (
    ActivityOut, CollaboratorOut, IngredientOut, InstructionOut, UserOut,
    RecipeCreate, RecipeDetailOut, RecipeOut, RecipePatch,
    ScaledIngredientOut, ScaledRecipeOut,
)
from ..services.activity import log_activity, recent_activity
from ..services.permissions import Capability, Role, require_capability
from ..services.scaling import ScalingError, compose_quantity, scale_factor, scale_quantity
from ..settings import settings
from ..timers import TimerRegistry, get_timer_registry

router = APIRouter()
logger = logging.getLogger("cookshare.recipes")

PUBLIC_RECIPES_CACHE_KEY = "cookshare:recipes:public"


def _recipe_to_detail(db: Session, recipe: Recipe, role: Optional[Role]) -> RecipeDetailOut:
    base = RecipeOut.model_validate(recipe).model_dump()
    return RecipeDetailOut(
        **base,
        creator=UserOut.model_validate(recipe.creator),
        original_author=UserOut.model_validate(recipe.original_creator_user),
        ingredients=[IngredientOut.model_validate(i) for i in recipe.ingredients],
        instructions=[InstructionOut.model_validate(i) for i in recipe.instructions],
        collaborators=[CollaboratorOut.model_validate(c) for c in recipe.collaborators],
        activities=[ActivityOut.model_validate(a) for a in recent_activity(db, recipe.id)],
        my_role=role.value if role else None,
    )


def _check_unique_steps(step_numbers: list[int]) -> None:
    seen = set()
    for n in step_numbers:
        if n in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate step number {n}")
        seen.add(n)


def _load_public_recipes(db: Session) -> list[dict]:
    recipes = db.scalars(
        select(Recipe)
        .where(Recipe.is_public.is_(True))
        .order_by(Recipe.created_at.desc())
    ).all()
    return [RecipeOut.model_validate(r).model_dump(mode="json") for r in recipes]


@router.get("/recipes", response_model=list[RecipeOut])
def list_my_recipes(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Recipes where the caller holds an accepted role."""
    stmt = (
        select(Recipe)
        .join(Collaborator, Collaborator.recipe_id == Recipe.id)
        .where(Collaborator.user_id == user.id, Collaborator.accepted_at.is_not(None))
        .order_by(Recipe.updated_at.desc(), Recipe.created_at.desc())
    )
    return db.scalars(stmt).unique().all()


@router.get("/recipes/public", response_model=list[RecipeOut])
def list_public_recipes(
    search: Optional[str] = Query(None, max_length=200),
    tag: Optional[str] = Query(None, max_length=80),
    db: Session = Depends(get_db),
):
    """Public recipes, newest first.

    The unfiltered list is cached in Redis; search and tag filters apply
    on top of the cached copy.
    """
    items, hit = get_or_set_json_sync(
        PUBLIC_RECIPES_CACHE_KEY,
        settings.public_recipes_cache_ttl_sec,
        lambda: _load_public_recipes(db),
    )
    logger.debug(f"Public recipes cache {'hit' if hit else 'miss'}")

    if search:
        needle = search.strip().lower()
        items = [
            r for r in items
            if needle in r["title"].lower() or needle in (r.get("description") or "").lower()
        ]
    if tag:
        wanted = tag.strip().lower()
        items = [r for r in items if wanted in [t.lower() for t in (r.get("tags") or [])]]
    return items


@router.post("/recipes", response_model=RecipeDetailOut, status_code=201)
def create_recipe(
    payload: RecipeCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a recipe. The creator becomes its owner."""
    if payload.instructions:
        _check_unique_steps([i.step_number for i in payload.instructions])

    recipe = Recipe(
        title=clean_md(payload.title),
        description=payload.description,
        created_by=user.id,
        original_creator=user.id,
        servings=payload.servings,
        prep_time=payload.prep_time,
        cook_time=payload.cook_time,
        tags=normalize_tags(payload.tags),
        is_public=payload.is_public,
        hero_image_url=payload.hero_image_url,
    )
    db.add(recipe)
    db.flush()

    for idx, ing in enumerate(payload.ingredients or []):
        db.add(Ingredient(
            recipe_id=recipe.id,
            name=ing.name.strip(),
            quantity=ing.quantity,
            unit=ing.unit.strip(),
            order=ing.order if ing.order is not None else idx,
        ))
    for step in payload.instructions or []:
        db.add(Instruction(
            recipe_id=recipe.id,
            step_number=step.step_number,
            instruction=clean_step_text(step.instruction),
            timer_minutes=step.timer_minutes,
        ))

    db.add(Collaborator(
        recipe_id=recipe.id,
        user_id=user.id,
        role=Role.OWNER.value,
        accepted_at=datetime.now(timezone.utc),
    ))
    log_activity(db, recipe_id=recipe.id, user_id=user.id, action="created", description="Created this recipe")
    db.commit()
    db.refresh(recipe)

    if recipe.is_public:
        invalidate(PUBLIC_RECIPES_CACHE_KEY)

    logger.info(f"User {user.id} created recipe {recipe.id}")
    return _recipe_to_detail(db, recipe, Role.OWNER)


@router.get("/recipes/{recipe_id}", response_model=RecipeDetailOut)
def get_recipe(
    recipe_id: str,
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    recipe = db.scalar(
        select(Recipe)
        .options(
            selectinload(Recipe.ingredients),
            selectinload(Recipe.instructions),
            selectinload(Recipe.collaborators).selectinload(Collaborator.user),
        )
        .where(Recipe.id == recipe_id)
    )
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    role = require_capability(db, recipe, user, Capability.READ)
    return _recipe_to_detail(db, recipe, role)


@router.patch("/recipes/{recipe_id}", response_model=RecipeOut)
def update_recipe(
    recipe_id: str,
    payload: RecipePatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update recipe fields. Owners and editors only."""
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.WRITE)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        return recipe

    changed = []
    for field, value in data.items():
        if field == "title" and value is not None:
            value = clean_md(value)
        elif field == "tags":
            value = normalize_tags(value)
        if getattr(recipe, field) != value:
            setattr(recipe, field, value)
            changed.append(field)

    if changed:
        log_activity(
            db, recipe_id=recipe.id, user_id=user.id,
            action="updated", description=f"Updated {', '.join(changed)}",
        )
        db.commit()
        db.refresh(recipe)
        invalidate(PUBLIC_RECIPES_CACHE_KEY)
    return recipe


@router.delete("/recipes/{recipe_id}", status_code=204)
async def delete_recipe(
    recipe_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: TimerRegistry = Depends(get_timer_registry),
):
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.DELETE)

    db.delete(recipe)
    db.commit()
    await invalidate_async(PUBLIC_RECIPES_CACHE_KEY)

    # Runs on the loop thread that owns the timers' tick handles
    stopped = registry.discard_recipe(recipe_id)
    if stopped:
        logger.info(f"Stopped {stopped} timer(s) on deleted recipe {recipe_id}")
    return Response(status_code=204)


@router.get("/recipes/{recipe_id}/scaled", response_model=ScaledRecipeOut)
@limiter.limit("60/minute")
def get_scaled_recipe(
    request: Request,
    recipe_id: str,
    servings: int = Query(..., description="Target serving count"),
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    """Ingredient quantities rescaled from the recipe's servings to `servings`."""
    recipe = load_recipe(db, recipe_id)
    require_capability(db, recipe, user, Capability.READ)

    try:
        ratio = scale_factor(recipe.servings, servings)
        ingredients = []
        for ing in recipe.ingredients:
            original = compose_quantity(ing.quantity, ing.unit)
            ingredients.append(ScaledIngredientOut(
                id=ing.id,
                name=ing.name,
                original=original,
                scaled=scale_quantity(original, recipe.servings, servings),
                order=ing.order,
            ))
    except ScalingError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ScaledRecipeOut(
        recipe_id=recipe.id,
        original_servings=recipe.servings,
        servings=servings,
        ratio=ratio,
        ingredients=ingredients,
    )
