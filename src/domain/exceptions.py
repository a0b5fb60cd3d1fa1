"""
Domain exceptions - Semantic error types for admin token onboarding.

Expected token rejections (expired, used, mismatched) are never raised;
they are returned as data. Only infrastructure failures and identity
provider outcomes that change the flow are modelled as exceptions here.
"""


class AdminTokenError(Exception):
    """Base class for admin token domain errors."""

    pass


class StorageFailure(AdminTokenError):
    """Transient store failure; the operation rolled back and may be retried."""

    pass


class IdentityError(AdminTokenError):
    """Base class for identity provider outcomes."""

    pass


class AccountAlreadyExists(IdentityError):
    """Signup attempted for an email that already has an account."""

    pass


class AuthenticationFailed(IdentityError):
    """Email/password pair did not authenticate."""

    pass


class InvalidTransition(AdminTokenError):
    """Onboarding state machine was asked for a move it does not allow."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move from {current} to {target}")
        self.current = current
        self.target = target
