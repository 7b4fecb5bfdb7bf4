from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.auth.dependencies import ROLES, require_roles
from backend.models.user import User

router = APIRouter(tags=["auth"])


class CurrentUserResponse(BaseModel):
    email: str
    role: str
    therapist_id: str | None = None


@router.get("/me", response_model=CurrentUserResponse)
def read_current_user(user: User = Depends(require_roles(*ROLES))):
    return CurrentUserResponse(
        email=user.email,
        role=user.role,
        therapist_id=user.therapist_id,
    )
