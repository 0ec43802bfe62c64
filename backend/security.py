from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from auth import get_current_user
from models import Profile, UserAccount


def require_user(user: UserAccount = Depends(get_current_user)) -> UserAccount:
    return user


def require_admin(user: UserAccount = Depends(get_current_user)) -> UserAccount:
    # Route-level gate; hiding a button client side is not a security boundary.
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def get_current_profile(
    user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Profile:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member profile not found. Please contact an administrator.",
        )
    return profile
