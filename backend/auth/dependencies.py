from typing import Callable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from backend.auth import jwt_handler
from backend.database import SessionLocal
from backend.models.user import User

ROLE_ADMIN = "admin"
ROLE_RECEPTION = "reception"
ROLE_THERAPIST = "therapist"
ROLES = (ROLE_ADMIN, ROLE_RECEPTION, ROLE_THERAPIST)

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    db = SessionLocal()
    try:
        user = db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Database unavailable.") from exc
    finally:
        db.close()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_roles(*roles: str) -> Callable[[User], User]:
    """Dependency that only lets users with one of ``roles`` through."""
    allowed = frozenset(roles)

    def check_role(user: User = Depends(get_current_user)) -> User:
        if (user.role or "").strip().lower() not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role for this action.")
        return user

    return check_role
