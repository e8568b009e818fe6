import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from pqr_scheduling.auth import jwt_handler
from pqr_scheduling.database import get_db
from pqr_scheduling.models.common import only_active
from pqr_scheduling.models.user import User
from pqr_scheduling.scheduling.assignments import ADMIN_ROLE

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = (
        only_active(db.query(User), User)
        .filter((User.username == subject) | (User.email == subject))
        .first()
    )
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Only administrators can perform this action.")
    return current_user
