from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


class Role(str, Enum):
    """Actor roles known to the verification dashboard."""

    ADMIN = "admin"
    PAID_USER = "paid_user"
    ATS_STAFF = "ats_staff"
    CUSTOMS_STAFF = "customs_staff"
    MARKETPLACE_STAFF = "marketplace_staff"

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]


_ROLE_LABELS: dict[Role, str] = {
    Role.ADMIN: "Administrators",
    Role.PAID_USER: "Paid users",
    Role.ATS_STAFF: "ATS staff",
    Role.CUSTOMS_STAFF: "Customs staff",
    Role.MARKETPLACE_STAFF: "Marketplace staff",
}


def coerce_role(value: "Role | str | None") -> Role | None:
    """Return the ``Role`` for ``value`` or ``None`` when it is not a known role."""

    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(str(value))
    except ValueError:
        return None


class User:
    """Authenticated actor; every account carries exactly one role."""

    def __init__(self, username: str, role: Role):
        self.username = username
        self.role = role

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


# Static token map standing in for the JWT session layer.
TOKEN_USER_MAP: dict[str, tuple[str, Role]] = {
    "admin-token": ("admin", Role.ADMIN),
    "ats-token": ("ats", Role.ATS_STAFF),
    "customs-token": ("customs", Role.CUSTOMS_STAFF),
    "marketplace-token": ("marketplace", Role.MARKETPLACE_STAFF),
    "paid-token": ("paid", Role.PAID_USER),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return the user associated with a bearer token."""

    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, role = TOKEN_USER_MAP[token]
    return User(username=username, role=role)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds one of ``roles``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(*roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
