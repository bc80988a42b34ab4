import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from studystack.api.deps import get_current_user, get_db
from studystack.api.serializers import user_profile
from studystack.core.errors import validation_error
from studystack.core.response import ok
from studystack.models.user import User
from studystack.schemas.user import ProfileUpdateIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me")
def me(request: Request, user: User = Depends(get_current_user)):
    return ok(request, user_profile(user))


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise validation_error("No fields to update")
    if "name" in data and not data["name"]:
        raise validation_error("name cannot be empty")
    for k, v in data.items():
        setattr(user, k, v)
    db.commit()
    db.refresh(user)
    logger.info("Profile updated user=%s fields=%s", user.id, sorted(data))
    return ok(request, user_profile(user), "Profile updated successfully")
