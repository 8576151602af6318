"""
Caller identity and role dependencies.

Authentication happens upstream; the gateway forwards the authenticated
account id in the ``X-User-Id`` header. Here it is only mapped onto the
caller's role and employee record.
"""
import logging
from typing import Callable, List, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from hrflow.database import get_db
from hrflow.models.user import UserRole
from hrflow.services.authorization import CallerIdentity, IdentityResolver

logger = logging.getLogger(__name__)

identity_resolver = IdentityResolver()


def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> CallerIdentity:
    """Resolves the forwarded account id into a ``CallerIdentity``."""
    if not x_user_id:
        logger.warning("Authentication failed: missing user id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        logger.warning("Authentication failed: malformed user id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    caller = identity_resolver.resolve(db, user_id)
    if caller is None:
        logger.warning(f"Authentication failed: user {user_id} not found or inactive")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return caller


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the caller has one of the allowed roles.
    Relationship checks still happen in the services.
    """
    def role_checker(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return current_user
    return role_checker


def require_hr():
    return require_role([UserRole.HR_ADMIN])


def require_manager():
    return require_role([UserRole.HR_ADMIN, UserRole.MANAGER])
