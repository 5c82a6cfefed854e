from typing import List
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from ..db import get_db
from ..deps import get_current_user
from ..models import User
from ..schemas import UserCreate, UserOut

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger("cookshare.users")


@router.get("/", response_model=List[UserOut])
def list_users(db: Session = Depends(get_db)):
    """List all users sorted by creation date."""
    return db.query(User).order_by(User.created_at).all()


@router.get("/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    return user


@router.post("/", response_model=UserOut)
def upsert_user(
    data: UserCreate,
    db: Session = Depends(get_db)
):
    """Create or update a user, matched by id first and then by email."""
    if not data.id and not data.email:
        raise HTTPException(status_code=400, detail="Either id or email is required")

    email = data.email.lower() if data.email else None

    user = db.get(User, data.id) if data.id else None
    if user is None and email:
        user = db.query(User).filter(User.email == email).first()

    if user is None:
        user = User(id=data.id) if data.id else User()
        db.add(user)
        logger.info(f"Creating user {data.id or email}")

    if email is not None:
        user.email = email
    for field in ("first_name", "last_name", "profile_image_url"):
        value = getattr(data, field)
        if value is not None:
            setattr(user, field, value)

    try:
        db.commit()
        db.refresh(user)
        return user
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Could not save user")
