"""Pydantic schemas for CookShare API.

Request/response models for:
- Users
- Recipes (with nested ingredients and instructions)
- Collaborators and activity
- Serving scaling
- Step timers
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal

from pydantic import BaseModel, EmailStr, Field


# --- User ---

class UserCreate(BaseModel):
    id: Optional[str] = Field(None, min_length=1, max_length=36)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=120)
    last_name: Optional[str] = Field(None, max_length=120)
    profile_image_url: Optional[str] = None


class UserOut(BaseModel):
    id: str
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    profile_image_url: Optional[str]

    class Config:
        from_attributes = True


# --- Ingredient ---

class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., ge=0, max_digits=10, decimal_places=3)
    unit: str = Field("", max_length=40)
    order: Optional[int] = Field(None, ge=0)  # Appended when omitted


class IngredientPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    quantity: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=3)
    unit: Optional[str] = Field(None, max_length=40)
    order: Optional[int] = Field(None, ge=0)


class IngredientOut(BaseModel):
    id: str
    recipe_id: str
    name: str
    quantity: float
    unit: str
    order: int

    class Config:
        from_attributes = True


# --- Instruction ---

class InstructionCreate(BaseModel):
    step_number: int = Field(..., ge=1)
    instruction: str = Field(..., min_length=1)
    timer_minutes: Optional[int] = Field(None, ge=1)


class InstructionPatch(BaseModel):
    step_number: Optional[int] = Field(None, ge=1)
    instruction: Optional[str] = Field(None, min_length=1)
    timer_minutes: Optional[int] = Field(None, ge=1)


class InstructionOut(BaseModel):
    id: str
    recipe_id: str
    step_number: int
    instruction: str
    timer_minutes: Optional[int]

    class Config:
        from_attributes = True


# --- Recipe ---

class RecipeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    servings: int = Field(4, ge=1)
    prep_time: Optional[int] = Field(None, ge=0)
    cook_time: Optional[int] = Field(None, ge=0)
    tags: Optional[list[str]] = None
    is_public: bool = False
    hero_image_url: Optional[str] = None
    ingredients: Optional[list[IngredientCreate]] = None
    instructions: Optional[list[InstructionCreate]] = None


class RecipePatch(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    servings: Optional[int] = Field(None, ge=1)
    prep_time: Optional[int] = Field(None, ge=0)
    cook_time: Optional[int] = Field(None, ge=0)
    tags: Optional[list[str]] = None
    is_public: Optional[bool] = None
    hero_image_url: Optional[str] = None


class RecipeOut(BaseModel):
    """Recipe without children, for list views."""
    id: str
    title: str
    description: Optional[str]
    created_by: str
    original_creator: str
    servings: int
    prep_time: Optional[int]
    cook_time: Optional[int]
    tags: list[str] = []
    is_public: bool
    hero_image_url: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


# --- Collaboration ---

class CollaboratorOut(BaseModel):
    id: str
    recipe_id: str
    user_id: str
    role: str
    invited_at: Optional[datetime]
    accepted_at: Optional[datetime]
    user: UserOut

    class Config:
        from_attributes = True


class InviteCollaboratorRequest(BaseModel):
    email: EmailStr
    role: Literal["editor", "viewer"] = "editor"


class InviteCollaboratorResponse(BaseModel):
    message: str
    email: str
    role: str
    status: Literal["added", "pending"]
    collaborator: Optional[CollaboratorOut] = None


class ActivityOut(BaseModel):
    id: str
    recipe_id: str
    user_id: str
    action: str
    description: str
    created_at: datetime
    user: UserOut

    class Config:
        from_attributes = True


class RecipeDetailOut(RecipeOut):
    creator: UserOut
    original_author: UserOut
    ingredients: list[IngredientOut] = []
    instructions: list[InstructionOut] = []
    collaborators: list[CollaboratorOut] = []
    activities: list[ActivityOut] = []
    my_role: Optional[str] = None


# --- Scaling ---

class ScaledIngredientOut(BaseModel):
    id: str
    name: str
    original: str  # e.g. "2cups"
    scaled: str    # e.g. "4cups"
    order: int


class ScaledRecipeOut(BaseModel):
    recipe_id: str
    original_servings: int
    servings: int
    ratio: float
    ingredients: list[ScaledIngredientOut]


# --- Timers ---

TimerPhaseLiteral = Literal["running", "paused", "completed"]
PermissionLiteral = Literal["granted", "denied", "default"]


class TimerStartRequest(BaseModel):
    step_number: int = Field(..., ge=1)
    minutes: Optional[float] = Field(None, gt=0, le=24 * 60)  # Overrides the step's timer_minutes
    description: Optional[str] = Field(None, max_length=200)


class TimerOut(BaseModel):
    id: str
    step_number: int
    description: str
    total_seconds: int
    remaining_seconds: int
    phase: TimerPhaseLiteral
    progress: float
    emphasis: Literal["normal", "warning", "critical"]
    display: str


class TimerAlertPrefsPatch(BaseModel):
    sound_enabled: Optional[bool] = None
    notification_permission: Optional[PermissionLiteral] = None


class TimerAlertPrefsOut(BaseModel):
    sound_enabled: bool
    notification_permission: PermissionLiteral
