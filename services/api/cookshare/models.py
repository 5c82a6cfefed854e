"""SQLAlchemy ORM models for CookShare.

Tables:
- users: People who create, edit and cook recipes
- recipes: Core recipe data with visibility flag
- ingredients: Ordered ingredient lines (quantity + unit)
- instructions: Numbered steps with an optional timer length
- collaborators: Per-recipe role assignments (owner/editor/viewer)
- recipe_activity: Audit trail of recipe edits
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Boolean,
    ForeignKey,
    Index,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .db import Base
from .orm_types import TagList


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """A person known to the service.

    Identity comes from an external provider; this table only mirrors
    the profile fields the UI renders.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[Optional[str]] = mapped_column(String(320), unique=True, nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    collaborations: Mapped[list["Collaborator"]] = relationship(
        "Collaborator", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        if parts:
            return " ".join(parts)
        return self.email or self.id


class Recipe(Base):
    """Core recipe. Private unless is_public is set."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_created_by", "created_by"),
        Index("ix_recipes_is_public", "is_public"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    original_creator: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)

    servings: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    prep_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    cook_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    tags: Mapped[Optional[list[str]]] = mapped_column(TagList(), nullable=True, default=list)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hero_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    creator: Mapped["User"] = relationship("User", foreign_keys="[Recipe.created_by]")
    original_creator_user: Mapped["User"] = relationship("User", foreign_keys="[Recipe.original_creator]")

    ingredients: Mapped[list["Ingredient"]] = relationship(
        "Ingredient", back_populates="recipe", cascade="all, delete-orphan",
        order_by="Ingredient.order"
    )
    instructions: Mapped[list["Instruction"]] = relationship(
        "Instruction", back_populates="recipe", cascade="all, delete-orphan",
        order_by="Instruction.step_number"
    )
    collaborators: Mapped[list["Collaborator"]] = relationship(
        "Collaborator", back_populates="recipe", cascade="all, delete-orphan"
    )
    activities: Mapped[list["RecipeActivity"]] = relationship(
        "RecipeActivity", back_populates="recipe", cascade="all, delete-orphan",
        order_by="desc(RecipeActivity.created_at)"
    )

    def instruction_for_step(self, step_number: int) -> Optional["Instruction"]:
        for instruction in self.instructions:
            if instruction.step_number == step_number:
                return instruction
        return None


class Ingredient(Base):
    """One ingredient line; `order` fixes display position."""
    __tablename__ = "ingredients"
    __table_args__ = (
        Index("ix_ingredients_recipe_id", "recipe_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")


class Instruction(Base):
    """Numbered cooking step; timer_minutes enables the step timer."""
    __tablename__ = "instructions"
    __table_args__ = (
        Index("ix_instructions_recipe_id", "recipe_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    instruction: Mapped[str] = mapped_column(Text, nullable=False)
    timer_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="instructions")


class Collaborator(Base):
    """Role of a user on a specific recipe.

    accepted_at stays NULL until the invited user accepts.
    """
    __tablename__ = "collaborators"
    __table_args__ = (
        Index("ix_collaborators_recipe_id", "recipe_id"),
        UniqueConstraint("recipe_id", "user_id", name="uq_collaborator_recipe_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="editor")
    invited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="collaborators")
    user: Mapped["User"] = relationship("User", back_populates="collaborations")


class RecipeActivity(Base):
    """Append-only activity entry (created, updated, added_ingredient, ...)."""
    __tablename__ = "recipe_activity"
    __table_args__ = (
        Index("ix_recipe_activity_recipe_id", "recipe_id"),
        Index("ix_recipe_activity_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="activities")
    user: Mapped["User"] = relationship("User")
