"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
Adapters are created once during lifespan startup and stored in app.state.
"""

from datetime import timedelta

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from src.adapters.smtp.console import ConsoleInvitationSender
from src.config.settings import get_settings
from src.domain.exceptions import AuthenticationFailed, StorageFailure
from src.domain.onboarding import OnboardingCoordinator
from src.domain.ports import Account, IdentityProvider, PrivilegeCache, TokenRepository
from src.domain.tokens import AdminTokenService

# Module-level singleton - ConsoleInvitationSender is stateless
_invitation_sender = ConsoleInvitationSender()


def get_token_repository(request: Request) -> TokenRepository:
    """Token repository created during app lifespan startup."""
    return request.app.state.token_repository


def get_identity_provider(request: Request) -> IdentityProvider:
    """Account directory created during app lifespan startup."""
    return request.app.state.identity_provider


def get_privilege_cache(request: Request) -> PrivilegeCache:
    return request.app.state.privilege_cache


def get_invitation_sender() -> ConsoleInvitationSender:
    """Get console invitation sender (singleton)."""
    return _invitation_sender


def get_token_service(request: Request) -> AdminTokenService:
    """
    Create token service with injected dependencies.

    Wires together the repository, invitation sender and token settings.
    """
    settings = get_settings()
    return AdminTokenService(
        repository=get_token_repository(request),
        invitation_sender=get_invitation_sender(),
        public_base_url=settings.public_base_url,
        default_ttl=timedelta(days=settings.token_ttl_days),
    )


def get_onboarding_coordinator(
    request: Request,
    tokens: AdminTokenService = Depends(get_token_service),
) -> OnboardingCoordinator:
    """Create onboarding coordinator over the token service and identity provider."""
    return OnboardingCoordinator(
        tokens=tokens,
        identity=get_identity_provider(request),
        privileges=get_privilege_cache(request),
    )


def storage_unavailable() -> HTTPException:
    """503 raised when the store failed; the request may be retried."""
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Service temporarily unavailable",
        headers={"Retry-After": str(get_settings().storage_retry_after_seconds)},
    )


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


def get_basic_auth_credentials(
    credentials: HTTPBasicCredentials = Depends(http_basic),
) -> tuple[str, str]:
    """
    Extract and normalize credentials from HTTP BASIC AUTH header.

    FastAPI's HTTPBasic automatically:
    - Returns 401 for missing Authorization header
    - Returns 401 for malformed base64 encoding
    - Parses base64(email:password) format

    Returns:
        Tuple of (normalized_email, password)
    """
    email = credentials.username.strip().lower()
    password = credentials.password
    return email, password


def get_admin_account(
    request: Request,
    credentials: tuple[str, str] = Depends(get_basic_auth_credentials),
) -> Account:
    """
    Authenticate the caller and require the administrator flag.

    Raises:
        HTTPException: 401 for bad credentials, 403 for non-admins,
            503 when the account store is unavailable
    """
    email, password = credentials
    try:
        account = get_identity_provider(request).sign_in(email, password)
    except AuthenticationFailed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        ) from None
    except StorageFailure:
        raise storage_unavailable() from None

    if not account.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return account
