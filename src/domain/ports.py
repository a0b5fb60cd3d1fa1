"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the value types the admin token domain exchanges
with infrastructure, and the interfaces (ports) adapters implement.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol


class TokenStatus(str, Enum):
    """
    Classified outcome of validating or consuming a token.

    Evaluation order (first match wins):
        NOT_FOUND -> ALREADY_USED -> EXPIRED -> EMAIL_MISMATCH -> VALID

    ACCOUNT_NOT_FOUND is only produced by consumption, when the target
    account row is missing. STORAGE_FAILURE is never returned by the
    store; the onboarding coordinator uses it to report a grant that
    failed on infrastructure, and it is the only retryable reason.
    """

    VALID = "valid"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    EMAIL_MISMATCH = "email_mismatch"
    ACCOUNT_NOT_FOUND = "account_not_found"
    STORAGE_FAILURE = "storage_failure"

    @property
    def is_retryable(self) -> bool:
        return self is TokenStatus.STORAGE_FAILURE


class TokenState(str, Enum):
    """Lifecycle state of a token as shown to administrators."""

    UNUSED = "unused"
    USED = "used"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AdminToken:
    """Persisted admin registration token."""

    id: str
    bound_email: str | None
    issued_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None
    consumed_by_account_id: str | None = None
    created_by_account_id: str | None = None

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def state_at(self, now: datetime) -> TokenState:
        if self.is_consumed:
            return TokenState.USED
        if now >= self.expires_at:
            return TokenState.EXPIRED
        return TokenState.UNUSED


@dataclass(frozen=True)
class ValidationResult:
    """Read-only usability verdict for a token."""

    status: TokenStatus
    bound_email: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status is TokenStatus.VALID


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of a consumption attempt."""

    granted: bool
    reason: TokenStatus | None = None

    @classmethod
    def success(cls) -> "ConsumeResult":
        return cls(granted=True)

    @classmethod
    def rejected(cls, reason: TokenStatus) -> "ConsumeResult":
        return cls(granted=False, reason=reason)


@dataclass(frozen=True)
class Account:
    """Identity provider account as seen by the token domain."""

    id: str
    email: str
    is_admin: bool = False


class TokenRepository(Protocol):
    """Port interface for token persistence."""

    def insert(self, token: AdminToken) -> None:
        """
        Persist a newly issued token.

        Raises:
            StorageFailure: If the store cannot be written
        """
        ...

    def get(self, token_id: str) -> AdminToken | None:
        """Read a token without locking or mutating it."""
        ...

    def list_tokens(self) -> list[AdminToken]:
        """Return all tokens, most recently issued first."""
        ...

    def consume(
        self, token_id: str, account_id: str, account_email: str, now: datetime
    ) -> ConsumeResult:
        """
        Atomically consume a token and grant the admin flag.

        Must run as a single store transaction:
        1. Re-read the token under the store's isolation
        2. Re-evaluate usability at ``now`` for ``account_email``
        3. Set the account's admin flag
        4. Set consumed_at / consumed_by_account_id
        5. Commit, or roll back on any failed check

        Returns:
            ConsumeResult with granted=True only for the single winner

        Raises:
            StorageFailure: If the transaction could not complete
        """
        ...


class IdentityProvider(Protocol):
    """Port interface for account creation and authentication."""

    def sign_up(self, email: str, password: str) -> Account:
        """
        Create an account.

        Raises:
            AccountAlreadyExists: If the email already has an account
        """
        ...

    def sign_in(self, email: str, password: str) -> Account:
        """
        Authenticate an existing account.

        Raises:
            AuthenticationFailed: If the credentials do not match
        """
        ...

    def get_account(self, account_id: str) -> Account | None:
        """Read an account by id."""
        ...


class PrivilegeCache(Protocol):
    """Port interface for reloading an account's privileges after a grant."""

    def refresh(self, account_id: str) -> Account | None:
        """Reload the account's privilege state and return it."""
        ...


class InvitationSender(Protocol):
    """Port interface for out-of-band token delivery."""

    def send_admin_invitation(self, email: str, registration_url: str) -> None:
        """
        Deliver a registration URL to the bound email.

        Args:
            email: Recipient email address
            registration_url: URL carrying the token as a query parameter
        """
        ...
