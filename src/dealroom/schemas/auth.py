"""Pydantic schemas for authentication API endpoints and the session user."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.dealroom.access.roles import Role, normalize_role


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class SessionUser(BaseModel):
    """The authenticated user as seen by the access logic.

    Built from the users table on every request. ``role`` is normalized on
    the way in; an unrecognized stored role becomes None, which carries no
    capabilities.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str | None = None
    role: Role | None = None
    lender_id: str | None = None
    deal_access: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: object) -> Role | None:
        if value is None or isinstance(value, Role):
            return value
        return normalize_role(str(value))

    def can_access_deal(self, deal_id: str) -> bool:
        """Deal-level membership. Only investors are held to their access set."""
        if self.role is Role.INVESTOR:
            return deal_id in self.deal_access
        return self.role is not None


class StoredUser(SessionUser):
    """Session user plus the credential fields only login needs."""

    hashed_password: str | None = None
    is_active: bool = True

    def to_session(self) -> SessionUser:
        return SessionUser(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            lender_id=self.lender_id,
            deal_access=self.deal_access,
        )


class UserResponse(BaseModel):
    """Response schema for current user info."""

    id: str
    email: str
    name: str | None = None
    role: str | None = None
    lender_id: str | None = None
    deal_access: list[str] = Field(default_factory=list)


class RolePreferenceResponse(BaseModel):
    """Effective role preference for the current user."""

    role: Role
    source: str  # "query", "stored" or "default"


class RolePreferenceUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        if normalize_role(value) is None:
            raise ValueError(f"Unknown role: {value}")
        return value
