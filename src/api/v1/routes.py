"""
API v1 routes.

Defines REST endpoints for admin registration tokens:
- POST /v1/admin/tokens - Issue a token (administrators only)
- GET  /v1/admin/tokens - List tokens with status (administrators only)
- GET  /v1/tokens/{token}/banner - Read-only banner for a presented token
- POST /v1/signup - Create an account, redeeming an attached token
- POST /v1/login - Log in, redeeming an attached token
"""

from datetime import timedelta
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.api.dependencies import (
    get_admin_account,
    get_onboarding_coordinator,
    get_token_service,
    storage_unavailable,
)
from src.api.models import (
    AccountResponse,
    AdminGrantResponse,
    BannerResponse,
    CredentialsRequest,
    ErrorResponse,
    IssueTokenRequest,
    IssueTokenResponse,
    OnboardingResponse,
    TokenListResponse,
    TokenSummary,
)
from src.config.settings import get_settings
from src.domain.exceptions import AuthenticationFailed, StorageFailure
from src.domain.onboarding import OnboardingCoordinator, OnboardingOutcome
from src.domain.ports import Account
from src.domain.tokens import AdminTokenService

router = APIRouter(tags=["v1"])

TokenParam = Annotated[
    str | None,
    Query(
        min_length=1,
        max_length=256,
        description="Admin registration token carried from the invitation URL",
    ),
]


def login_url(token: str | None) -> str:
    """Login endpoint URL that forwards the token unchanged."""
    if not token:
        return "/v1/login"
    return f"/v1/login?{urlencode({'token': token})}"


def _onboarding_response(outcome: OnboardingOutcome) -> OnboardingResponse:
    if outcome.redirect is not None:
        return OnboardingResponse(
            status="login_required",
            message=outcome.redirect.message,
            token_status=outcome.redirect.token_status,
            login_url=login_url(outcome.redirect.token),
        )

    account = outcome.account
    grant = None
    if outcome.grant is not None:
        grant = AdminGrantResponse(
            granted=outcome.grant.granted,
            reason=outcome.grant.reason,
            retryable=outcome.grant_retryable,
        )
    return OnboardingResponse(
        status="authenticated",
        message=outcome.message,
        account=AccountResponse(id=account.id, email=account.email, is_admin=account.is_admin),
        admin_grant=grant,
    )


@router.post(
    "/admin/tokens",
    response_model=IssueTokenResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Administrator access required"},
        422: {"description": "Validation error"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry later"},
    },
    summary="Issue an admin registration token",
    description="Create a single-use token that grants administrator access when redeemed. "
    "Optionally bind it to one email address.",
)
async def issue_token(
    request_data: IssueTokenRequest,
    admin: Account = Depends(get_admin_account),
    service: AdminTokenService = Depends(get_token_service),
) -> IssueTokenResponse:
    """
    Issue a new admin registration token.

    - **email**: Optional email that alone may redeem the token
    - **expires_in_days**: Optional lifetime in days (default 7)
    """
    settings = get_settings()
    ttl = None
    if request_data.expires_in_days is not None:
        if request_data.expires_in_days > settings.max_token_ttl_days:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"expires_in_days must be at most {settings.max_token_ttl_days}",
            )
        ttl = timedelta(days=request_data.expires_in_days)

    try:
        token = service.issue(
            bound_email=request_data.email, ttl=ttl, created_by_account_id=admin.id
        )
    except StorageFailure:
        raise storage_unavailable() from None

    return IssueTokenResponse(
        token=token.id,
        registration_url=service.registration_url(token.id),
        email=token.bound_email,
        expires_at=token.expires_at,
    )


@router.get(
    "/admin/tokens",
    response_model=TokenListResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Administrator access required"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry later"},
    },
    summary="List admin registration tokens",
)
async def list_tokens(
    admin: Account = Depends(get_admin_account),
    service: AdminTokenService = Depends(get_token_service),
) -> TokenListResponse:
    """List every issued token, newest first, with status unused/used/expired."""
    try:
        tokens = service.list_tokens()
    except StorageFailure:
        raise storage_unavailable() from None

    return TokenListResponse(
        tokens=[
            TokenSummary(
                token=token.id,
                email=token.bound_email,
                status=state,
                issued_at=token.issued_at,
                expires_at=token.expires_at,
                consumed_at=token.consumed_at,
                consumed_by_account_id=token.consumed_by_account_id,
                created_by_account_id=token.created_by_account_id,
            )
            for token, state in tokens
        ]
    )


@router.get(
    "/tokens/{token}/banner",
    response_model=BannerResponse,
    responses={503: {"model": ErrorResponse, "description": "Store unavailable, retry later"}},
    summary="Describe a presented token",
    description="Read-only check used to show a banner and pre-fill the email field. "
    "Never consumes the token.",
)
async def token_banner(
    token: str,
    email: str | None = Query(default=None, description="Email typed so far, if any"),
    coordinator: OnboardingCoordinator = Depends(get_onboarding_coordinator),
) -> BannerResponse:
    try:
        banner = coordinator.present(token, email)
    except StorageFailure:
        raise storage_unavailable() from None
    return BannerResponse(
        state=banner.state.value,
        status=banner.status,
        message=banner.message,
        email=banner.bound_email,
        lock_email=banner.lock_email,
    )


@router.post(
    "/signup",
    response_model=OnboardingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": OnboardingResponse, "description": "Account exists, continue at login_url"},
        422: {"description": "Validation error"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry later"},
    },
    summary="Sign up, redeeming an optional admin token",
    description="Create an account. If a token is attached it is redeemed after the account "
    "exists. When the email already has an account the response points to the login "
    "endpoint with the same token.",
)
async def signup(
    request_data: CredentialsRequest,
    response: Response,
    token: TokenParam = None,
    coordinator: OnboardingCoordinator = Depends(get_onboarding_coordinator),
) -> OnboardingResponse:
    """
    Sign up and redeem an attached admin token.

    - **email**: Email address for the new account
    - **password**: Password (minimum 8 characters)
    """
    try:
        outcome = coordinator.sign_up(request_data.email, request_data.password, token)
    except StorageFailure:
        raise storage_unavailable() from None

    if outcome.redirect is not None:
        response.status_code = status.HTTP_200_OK
    return _onboarding_response(outcome)


@router.post(
    "/login",
    response_model=OnboardingResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        422: {"description": "Validation error"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry later"},
    },
    summary="Log in, redeeming an optional admin token",
)
async def login(
    request_data: CredentialsRequest,
    token: TokenParam = None,
    coordinator: OnboardingCoordinator = Depends(get_onboarding_coordinator),
) -> OnboardingResponse:
    """
    Log in and redeem an attached admin token.

    A rejected token never fails the login; only admin_grant reports it.
    """
    try:
        outcome = coordinator.log_in(request_data.email, request_data.password, token)
    except AuthenticationFailed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        ) from None
    except StorageFailure:
        raise storage_unavailable() from None
    return _onboarding_response(outcome)
