from typing import Optional

from fastapi import Depends

from auth import get_current_user, get_optional_user
from errors import Unauthenticated, Unauthorized
from models import Role, User


def require_role(user: Optional[User], role: Role) -> User:
    """Single capability check used by every role-restricted route and service."""
    if user is None:
        raise Unauthenticated()
    if role == Role.USER:
        return user
    if user.role != role:
        raise Unauthorized(f"{role.value.title()} access required")
    return user


def require_user(user: User = Depends(get_current_user)) -> User:
    return require_role(user, Role.USER)


def require_admin(user: Optional[User] = Depends(get_optional_user)) -> User:
    return require_role(user, Role.ADMIN)
