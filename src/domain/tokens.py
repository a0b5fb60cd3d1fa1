"""
Admin token domain service - Issuer, Validator and Consumer.

Token Lifecycle (forward-only)
==============================

    issued --validate (any number of times, read-only)--> issued
    issued --consume (exactly once, atomic with the admin grant)--> consumed

A token is usable if and only if:
- it exists
- consumed_at is NULL
- now < expires_at
- bound_email is NULL, or equals the candidate email case-insensitively

Consumption never happens here. The service re-states the rules for
read-only validation and delegates the authoritative check-and-write to
the repository, which must perform it inside one store transaction.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from .ports import (
    AdminToken,
    ConsumeResult,
    InvitationSender,
    TokenRepository,
    TokenState,
    TokenStatus,
    ValidationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(days=7)

# 32 random bytes, 256 bits of entropy
TOKEN_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """Strip whitespace and lowercase."""
    return email.strip().lower()


def token_prefix(token_id: str) -> str:
    """Loggable prefix of a bearer token."""
    return token_id[:8]


def evaluate_token(
    token: AdminToken | None, now: datetime, candidate_email: str | None
) -> TokenStatus:
    """
    Classify a token's usability at ``now`` for ``candidate_email``.

    Shared by read-only validation and by repositories re-checking a
    locked row inside the consume transaction, so both apply the same
    ordering. The email check is skipped when no candidate is supplied.
    """
    if token is None:
        return TokenStatus.NOT_FOUND
    if token.is_consumed:
        return TokenStatus.ALREADY_USED
    if now >= token.expires_at:
        return TokenStatus.EXPIRED
    if (
        token.bound_email is not None
        and candidate_email is not None
        and normalize_email(token.bound_email) != normalize_email(candidate_email)
    ):
        return TokenStatus.EMAIL_MISMATCH
    return TokenStatus.VALID


@dataclass
class AdminTokenService:
    """
    Domain service for admin registration tokens.

    Issues tokens, validates them for UI signaling and routes consumption
    to the repository's atomic transaction.
    """

    repository: TokenRepository
    invitation_sender: InvitationSender | None = None
    public_base_url: str = "http://localhost:8000"
    default_ttl: timedelta = DEFAULT_TOKEN_TTL
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue(
        self,
        bound_email: str | None = None,
        ttl: timedelta | None = None,
        created_by_account_id: str | None = None,
    ) -> AdminToken:
        """
        Issue a new single-use token.

        Args:
            bound_email: Optional email that alone may redeem the token
            ttl: Lifetime of the token (defaults to 7 days)
            created_by_account_id: Administrator issuing the token

        Returns:
            The persisted token

        Raises:
            ValueError: If ttl is not positive
            StorageFailure: If the token could not be persisted
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")

        issued_at = self.clock()
        token = AdminToken(
            id=self._generate_token_id(),
            bound_email=normalize_email(bound_email) if bound_email else None,
            issued_at=issued_at,
            expires_at=issued_at + ttl,
            created_by_account_id=created_by_account_id,
        )
        self.repository.insert(token)
        logger.info(
            "Issued admin token %s (bound=%s, expires_at=%s)",
            token_prefix(token.id),
            token.bound_email is not None,
            token.expires_at.isoformat(),
        )

        if token.bound_email and self.invitation_sender is not None:
            self.invitation_sender.send_admin_invitation(
                token.bound_email, self.registration_url(token.id)
            )
        return token

    def validate(self, token_id: str, candidate_email: str | None = None) -> ValidationResult:
        """
        Check a token's usability without changing any state.

        Safe to call repeatedly; used to drive banners and to pre-fill or
        lock the email field. The authoritative check happens again inside
        consume().
        """
        token = self.repository.get(token_id)
        status = evaluate_token(token, self.clock(), candidate_email)
        bound_email = token.bound_email if token is not None else None
        return ValidationResult(status=status, bound_email=bound_email)

    def consume(self, token_id: str, account_id: str, account_email: str) -> ConsumeResult:
        """
        Consume a token and grant the administrator flag to one account.

        At most one caller ever observes granted=True for a given token.
        Rejections are returned as data; only StorageFailure is raised.
        """
        result = self.repository.consume(
            token_id, account_id, normalize_email(account_email), self.clock()
        )
        if result.granted:
            logger.info(
                "Admin token %s consumed by account %s", token_prefix(token_id), account_id
            )
        return result

    def list_tokens(self) -> list[tuple[AdminToken, TokenState]]:
        """Return (token, state) pairs for the administrator listing."""
        now = self.clock()
        return [(token, token.state_at(now)) for token in self.repository.list_tokens()]

    def registration_url(self, token_id: str) -> str:
        """URL delivered out of band; carries the token as a query parameter."""
        base = self.public_base_url.rstrip("/")
        return f"{base}/register?{urlencode({'token': token_id})}"

    def _generate_token_id(self) -> str:
        """
        Generate an unguessable bearer identifier.

        Uses the secrets module; URL-safe so it survives redirects unchanged.
        """
        return secrets.token_urlsafe(TOKEN_BYTES)
