"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from forno.core.security import decode_access_token


class UserRole(str, Enum):
    """Staff roles."""

    ADMIN = "ADMIN"
    CASHIER = "CASHIER"
    WAITER = "WAITER"
    KITCHEN = "KITCHEN"


# Role hierarchy: admin > cashier > waiter > kitchen
ROLE_HIERARCHY = {
    UserRole.ADMIN: 4,
    UserRole.CASHIER: 3,
    UserRole.WAITER: 2,
    UserRole.KITCHEN: 1,
}

# Roles allowed to authorize courtesies and off-schedule discounts
ELEVATED_ROLES = frozenset({UserRole.ADMIN, UserRole.CASHIER})


class TokenData:
    """The acting staff member.

    Attributes:
        user_id: The user's database ID.
        name: Display name, used when recording authorizations.
        role: The user's role.
        branch_id: The branch the terminal operates in, when the token carries one.
    """

    def __init__(self, user_id: int, name: str, role: UserRole, branch_id: int | None = None):
        self.user_id = user_id
        self.id = user_id
        self.name = name
        self.role = role
        self.branch_id = branch_id

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    def __repr__(self) -> str:
        return f"<TokenData {self.user_id} {self.name!r} {self.role.value}>"


async def get_current_user(request: Request) -> TokenData:
    """Get the current user from the Authorization bearer token."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    role = payload.get("role")
    if user_id is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    branch_id = payload.get("branch_id")
    return TokenData(
        user_id=int(user_id),
        name=payload.get("name") or f"user-{user_id}",
        role=user_role,
        branch_id=int(branch_id) if branch_id else None,
    )


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        user_level = ROLE_HIERARCHY.get(current_user.role, 0)
        required_level = ROLE_HIERARCHY.get(minimum_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return current_user

    return role_checker


# Common role dependencies
RequireAdmin = Annotated[TokenData, Depends(require_role(UserRole.ADMIN))]
RequireCashier = Annotated[TokenData, Depends(require_role(UserRole.CASHIER))]
RequireWaiter = Annotated[TokenData, Depends(require_role(UserRole.WAITER))]
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
