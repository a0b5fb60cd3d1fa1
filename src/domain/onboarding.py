"""
Onboarding coordinator - routes token-bearing requests to signup or login.

Onboarding State Machine (one instance per request)
===================================================

    TOKEN_PRESENTED -> BANNER_VALID | BANNER_EXPIRED | BANNER_USED
                       | BANNER_MISMATCH | BANNER_ABSENT
    TOKEN_PRESENTED | BANNER_* -> SIGNUP_SUBMITTED | LOGIN_SUBMITTED
    SIGNUP_SUBMITTED  -> REROUTED_TO_LOGIN | AUTHENTICATED
    REROUTED_TO_LOGIN -> LOGIN_SUBMITTED
    LOGIN_SUBMITTED   -> AUTHENTICATED
    AUTHENTICATED     -> GRANTED | GRANT_REJECTED

The token is request-scoped data. It is never stored by the coordinator;
a signup that hits an existing account hands it back inside a
LoginRedirect so the next request can carry it unchanged.

A bad token never blocks authentication. It only withholds the grant.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import AccountAlreadyExists, InvalidTransition, StorageFailure
from .ports import Account, ConsumeResult, IdentityProvider, PrivilegeCache, TokenStatus
from .tokens import AdminTokenService, normalize_email, token_prefix

logger = logging.getLogger(__name__)


class OnboardingState(str, Enum):
    TOKEN_PRESENTED = "token_presented"
    BANNER_VALID = "banner_valid"
    BANNER_EXPIRED = "banner_expired"
    BANNER_USED = "banner_used"
    BANNER_MISMATCH = "banner_mismatch"
    BANNER_ABSENT = "banner_absent"
    SIGNUP_SUBMITTED = "signup_submitted"
    LOGIN_SUBMITTED = "login_submitted"
    REROUTED_TO_LOGIN = "rerouted_to_login"
    AUTHENTICATED = "authenticated"
    GRANTED = "granted"
    GRANT_REJECTED = "grant_rejected"


_BANNERS = (
    OnboardingState.BANNER_VALID,
    OnboardingState.BANNER_EXPIRED,
    OnboardingState.BANNER_USED,
    OnboardingState.BANNER_MISMATCH,
    OnboardingState.BANNER_ABSENT,
)

_SUBMISSIONS = (OnboardingState.SIGNUP_SUBMITTED, OnboardingState.LOGIN_SUBMITTED)

TRANSITIONS: dict[OnboardingState, tuple[OnboardingState, ...]] = {
    OnboardingState.TOKEN_PRESENTED: _BANNERS + _SUBMISSIONS,
    **{banner: _SUBMISSIONS for banner in _BANNERS},
    OnboardingState.SIGNUP_SUBMITTED: (
        OnboardingState.REROUTED_TO_LOGIN,
        OnboardingState.AUTHENTICATED,
    ),
    OnboardingState.REROUTED_TO_LOGIN: (OnboardingState.LOGIN_SUBMITTED,),
    OnboardingState.LOGIN_SUBMITTED: (OnboardingState.AUTHENTICATED,),
    OnboardingState.AUTHENTICATED: (
        OnboardingState.GRANTED,
        OnboardingState.GRANT_REJECTED,
    ),
    OnboardingState.GRANTED: (),
    OnboardingState.GRANT_REJECTED: (),
}

_BANNER_FOR_STATUS = {
    TokenStatus.VALID: OnboardingState.BANNER_VALID,
    TokenStatus.EXPIRED: OnboardingState.BANNER_EXPIRED,
    TokenStatus.ALREADY_USED: OnboardingState.BANNER_USED,
    TokenStatus.EMAIL_MISMATCH: OnboardingState.BANNER_MISMATCH,
    TokenStatus.NOT_FOUND: OnboardingState.BANNER_ABSENT,
}

BANNER_MESSAGES = {
    TokenStatus.VALID: "You've been invited as an administrator. "
    "Admin access is activated when you sign up or log in.",
    TokenStatus.EXPIRED: "This admin invitation has expired. "
    "You can still sign up or log in as a regular user.",
    TokenStatus.ALREADY_USED: "This admin invitation has already been used. "
    "You can still sign up or log in as a regular user.",
    TokenStatus.EMAIL_MISMATCH: "This admin invitation was issued for a different email address.",
    TokenStatus.NOT_FOUND: "This admin invitation link is not valid.",
}

GRANT_FAILURE_MESSAGES = {
    TokenStatus.NOT_FOUND: "token not found",
    TokenStatus.EXPIRED: "token expired",
    TokenStatus.ALREADY_USED: "token already used",
    TokenStatus.EMAIL_MISMATCH: "token was issued for a different email address",
    TokenStatus.ACCOUNT_NOT_FOUND: "account not found",
    TokenStatus.STORAGE_FAILURE: "temporary problem, please log in again to retry",
}

ACCOUNT_EXISTS_MESSAGE = "An account with this email already exists. Please log in to continue."
ACCOUNT_EXISTS_WITH_TOKEN_MESSAGE = (
    "An account with this email already exists. "
    "Log in and your admin access will be activated."
)

# Reroute message when the attached token can no longer grant admin
REROUTE_MESSAGES = {
    TokenStatus.VALID: ACCOUNT_EXISTS_WITH_TOKEN_MESSAGE,
    TokenStatus.ALREADY_USED: "An account with this email already exists and this admin "
    "invitation has already been used. Please log in to continue.",
    TokenStatus.EXPIRED: "An account with this email already exists and this admin "
    "invitation has expired. Please log in to continue.",
    TokenStatus.EMAIL_MISMATCH: "An account with this email already exists, but this admin "
    "invitation was issued for a different email address. Please log in to continue.",
    TokenStatus.NOT_FOUND: "An account with this email already exists and this admin "
    "invitation link is not valid. Please log in to continue.",
}

GRANTED_MESSAGE = "Admin access activated."


@dataclass
class OnboardingFlow:
    """Per-request state machine; rejects moves not listed in TRANSITIONS."""

    token: str | None = None
    state: OnboardingState = OnboardingState.TOKEN_PRESENTED
    history: list[OnboardingState] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.history.append(self.state)

    def advance(self, target: OnboardingState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state.value, target.value)
        self.state = target
        self.history.append(target)


@dataclass(frozen=True)
class TokenBanner:
    """UI signal derived from read-only validation."""

    state: OnboardingState
    status: TokenStatus | None
    message: str | None
    bound_email: str | None = None

    @property
    def lock_email(self) -> bool:
        """Email field is pre-filled and locked for a usable bound token."""
        return self.status is TokenStatus.VALID and self.bound_email is not None


@dataclass(frozen=True)
class LoginRedirect:
    """Instruction to continue on the login path with the same token."""

    email: str
    token: str | None
    message: str
    token_status: TokenStatus | None = None


@dataclass(frozen=True)
class OnboardingOutcome:
    """Result of one signup or login request."""

    state: OnboardingState
    history: tuple[OnboardingState, ...]
    account: Account | None = None
    grant: ConsumeResult | None = None
    redirect: LoginRedirect | None = None
    message: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.account is not None

    @property
    def grant_retryable(self) -> bool:
        return (
            self.grant is not None
            and self.grant.reason is not None
            and self.grant.reason.is_retryable
        )


@dataclass
class OnboardingCoordinator:
    """
    Orchestrates token redemption across the signup and login paths.

    Calls consume() exactly once per successful authentication. A repeated
    call for the same event resolves to ALREADY_USED through the token's
    own single-use rule.
    """

    tokens: AdminTokenService
    identity: IdentityProvider
    privileges: PrivilegeCache

    def present(self, token: str | None, email: str | None = None) -> TokenBanner:
        """Validate a presented token for display only."""
        flow = OnboardingFlow(token=token)
        if not token:
            flow.advance(OnboardingState.BANNER_ABSENT)
            return TokenBanner(state=flow.state, status=None, message=None)

        result = self.tokens.validate(token, email)
        flow.advance(_BANNER_FOR_STATUS[result.status])
        return TokenBanner(
            state=flow.state,
            status=result.status,
            message=BANNER_MESSAGES[result.status],
            bound_email=result.bound_email,
        )

    def sign_up(self, email: str, password: str, token: str | None = None) -> OnboardingOutcome:
        """
        Create an account, then redeem the token if one was attached.

        An existing account is not an error: the outcome carries a
        LoginRedirect with the token forwarded unchanged, plus the token's
        current status so a spent or expired token is not announced as
        redeemable.

        Raises:
            StorageFailure: If the account or token store is unavailable
        """
        flow = OnboardingFlow(token=token)
        flow.advance(OnboardingState.SIGNUP_SUBMITTED)
        try:
            account = self.identity.sign_up(email, password)
        except AccountAlreadyExists:
            flow.advance(OnboardingState.REROUTED_TO_LOGIN)
            token_status = None
            message = ACCOUNT_EXISTS_MESSAGE
            if token:
                token_status = self.tokens.validate(token, email).status
                message = REROUTE_MESSAGES[token_status]
            logger.info(
                "Signup re-routed to login (token status: %s)",
                token_status.value if token_status else "none",
            )
            return OnboardingOutcome(
                state=flow.state,
                history=tuple(flow.history),
                redirect=LoginRedirect(
                    email=normalize_email(email),
                    token=token,
                    message=message,
                    token_status=token_status,
                ),
                message=message,
            )
        return self._complete(flow, account)

    def log_in(self, email: str, password: str, token: str | None = None) -> OnboardingOutcome:
        """
        Authenticate an existing account, then redeem the token if attached.

        Raises:
            AuthenticationFailed: If the credentials do not match
        """
        flow = OnboardingFlow(token=token)
        flow.advance(OnboardingState.LOGIN_SUBMITTED)
        account = self.identity.sign_in(email, password)
        return self._complete(flow, account)

    def _complete(self, flow: OnboardingFlow, account: Account) -> OnboardingOutcome:
        flow.advance(OnboardingState.AUTHENTICATED)
        if not flow.token:
            return OnboardingOutcome(
                state=flow.state, history=tuple(flow.history), account=account
            )

        try:
            grant = self.tokens.consume(flow.token, account.id, account.email)
        except StorageFailure:
            logger.exception(
                "Admin grant for account %s failed on storage (token %s)",
                account.id,
                token_prefix(flow.token),
            )
            grant = ConsumeResult.rejected(TokenStatus.STORAGE_FAILURE)

        if grant.granted:
            flow.advance(OnboardingState.GRANTED)
            refreshed = self.privileges.refresh(account.id)
            return OnboardingOutcome(
                state=flow.state,
                history=tuple(flow.history),
                account=refreshed or account,
                grant=grant,
                message=GRANTED_MESSAGE,
            )

        flow.advance(OnboardingState.GRANT_REJECTED)
        logger.warning(
            "Admin grant rejected for account %s: %s (token %s)",
            account.id,
            grant.reason.value if grant.reason else "unknown",
            token_prefix(flow.token),
        )
        return OnboardingOutcome(
            state=flow.state,
            history=tuple(flow.history),
            account=account,
            grant=grant,
            message=grant_failure_message(grant.reason),
        )


def grant_failure_message(reason: TokenStatus | None) -> str:
    detail = GRANT_FAILURE_MESSAGES.get(reason, "unknown reason") if reason else "unknown reason"
    return f"You're signed in, but admin activation failed: {detail}."
