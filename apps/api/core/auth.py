"""
Authentication and authorization dependencies.

The bearer token is resolved exactly once per request into an AuthContext.
Route handlers pass that context explicitly into service calls; nothing
downstream reads identity from ambient request state.

- get_auth_context: identity + capabilities of the calling member
- require_capability: capability check at the request boundary
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import ForbiddenError, UnauthorizedError
from core.security import decode_access_token
from models import Member

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)

CAPABILITY_READ_ANY_MEMBER = "coaching.read_any"

# Capabilities granted by role. Members only ever act on their own data.
ROLE_CAPABILITIES = {
    "member": frozenset(),
    "coach": frozenset({CAPABILITY_READ_ANY_MEMBER}),
    "admin": frozenset({CAPABILITY_READ_ANY_MEMBER}),
    "owner": frozenset({CAPABILITY_READ_ANY_MEMBER}),
}


@dataclass(frozen=True)
class AuthContext:
    """Who is calling and what they may do."""
    user_id: UUID
    role: str = "member"
    timezone: str = settings.COACHING_DEFAULT_TIMEZONE
    capabilities: FrozenSet[str] = field(default_factory=frozenset)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @classmethod
    def for_member(cls, member: Member) -> "AuthContext":
        role = member.role or "member"
        return cls(
            user_id=member.id,
            role=role,
            timezone=member.timezone or settings.COACHING_DEFAULT_TIMEZONE,
            capabilities=ROLE_CAPABILITIES.get(role, frozenset()),
        )


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> AuthContext:
    """
    Resolve the bearer token into an AuthContext.

    Raises UnauthorizedError if the token is missing, invalid, or names an unknown member.
    """
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        user_id_uuid = UUID(user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user ID format")

    member = db.query(Member).filter(Member.id == user_id_uuid).first()
    if not member:
        raise UnauthorizedError("User not found")

    return AuthContext.for_member(member)


def require_capability(capability: str):
    """
    Dependency factory for capability checks.

    Usage:
        @router.get("/admin-only")
        def endpoint(ctx: AuthContext = Depends(require_capability(CAPABILITY_READ_ANY_MEMBER))):
            ...
    """
    def capability_checker(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not ctx.can(capability):
            raise ForbiddenError()
        return ctx

    return capability_checker
