"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from src.adapters.passwords import BCRYPT_MAX_PASSWORD_BYTES
from src.domain.ports import TokenState, TokenStatus


class CredentialsRequest(BaseModel):
    """Request model for signup and login."""

    email: EmailStr
    password: str = Field(
        ..., min_length=8, description="User password (8 characters to 72 bytes)"
    )

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode()) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return value


class IssueTokenRequest(BaseModel):
    """Request model for issuing an admin registration token."""

    email: EmailStr | None = Field(
        default=None, description="Only this email may redeem the token"
    )
    expires_in_days: int | None = Field(
        default=None, ge=1, description="Token lifetime in days (default 7)"
    )


class IssueTokenResponse(BaseModel):
    """Response model for a newly issued token."""

    token: str
    registration_url: str
    email: str | None
    expires_at: datetime


class TokenSummary(BaseModel):
    """Token as listed for administrators."""

    token: str
    email: str | None
    status: TokenState
    issued_at: datetime
    expires_at: datetime
    consumed_at: datetime | None
    consumed_by_account_id: str | None
    created_by_account_id: str | None


class TokenListResponse(BaseModel):
    """Response model for the administrator token listing."""

    tokens: list[TokenSummary]


class BannerResponse(BaseModel):
    """Response model for token banner lookup."""

    state: str
    status: TokenStatus | None
    message: str | None
    email: str | None
    lock_email: bool


class AccountResponse(BaseModel):
    """Authenticated account."""

    id: str
    email: str
    is_admin: bool


class AdminGrantResponse(BaseModel):
    """Outcome of the privilege grant attached to an authentication."""

    granted: bool
    reason: TokenStatus | None = None
    retryable: bool = False


class OnboardingResponse(BaseModel):
    """Response model for signup and login."""

    status: str = Field(description="'authenticated' or 'login_required'")
    message: str | None = None
    account: AccountResponse | None = None
    admin_grant: AdminGrantResponse | None = None
    login_url: str | None = Field(
        default=None, description="Where to continue when the account already exists"
    )
    token_status: TokenStatus | None = Field(
        default=None, description="Status of the attached token when signup was re-routed"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
