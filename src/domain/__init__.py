"""
Domain layer - Pure business logic with zero framework imports.

This package contains the admin registration token lifecycle and the
onboarding coordinator that redeems tokens across the signup and login
paths. It defines its own port interfaces so storage and identity
adapters stay outside the domain.
"""

from .exceptions import (
    AccountAlreadyExists,
    AdminTokenError,
    AuthenticationFailed,
    IdentityError,
    InvalidTransition,
    StorageFailure,
)
from .onboarding import (
    LoginRedirect,
    OnboardingCoordinator,
    OnboardingOutcome,
    OnboardingState,
    TokenBanner,
)
from .ports import (
    Account,
    AdminToken,
    ConsumeResult,
    IdentityProvider,
    InvitationSender,
    PrivilegeCache,
    TokenRepository,
    TokenState,
    TokenStatus,
    ValidationResult,
)
from .tokens import AdminTokenService, evaluate_token, normalize_email

__all__ = [
    "Account",
    "AccountAlreadyExists",
    "AdminToken",
    "AdminTokenError",
    "AdminTokenService",
    "AuthenticationFailed",
    "ConsumeResult",
    "IdentityError",
    "IdentityProvider",
    "InvalidTransition",
    "InvitationSender",
    "LoginRedirect",
    "OnboardingCoordinator",
    "OnboardingOutcome",
    "OnboardingState",
    "PrivilegeCache",
    "StorageFailure",
    "TokenBanner",
    "TokenRepository",
    "TokenState",
    "TokenStatus",
    "ValidationResult",
    "evaluate_token",
    "normalize_email",
]
