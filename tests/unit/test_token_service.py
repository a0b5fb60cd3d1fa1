"""
Unit tests for AdminTokenService domain logic.

Tests verify:
- Token issuance (entropy, binding, lifetime, invitation delivery)
- Read-only validation ordering and boundaries
- Consumption through the in-memory store
- Storage failures propagate as StorageFailure
"""

from collections.abc import Callable
from datetime import timedelta
from unittest.mock import Mock

import pytest

from src.adapters.repository.memory import InMemoryDatabase, InMemoryTokenRepository
from src.domain.exceptions import StorageFailure
from src.domain.ports import Account, AdminToken, TokenState, TokenStatus
from src.domain.tokens import AdminTokenService, evaluate_token, normalize_email


def issue_raw(
    repository: InMemoryTokenRepository,
    clock,
    *,
    token_id: str = "tok-1",
    bound_email: str | None = None,
    expires_in: timedelta = timedelta(days=7),
) -> AdminToken:
    """Insert a token with an exact expiry relative to the clock."""
    token = AdminToken(
        id=token_id,
        bound_email=bound_email,
        issued_at=clock() - timedelta(days=1),
        expires_at=clock() + expires_in,
    )
    repository.insert(token)
    return token


class TestIssue:
    """Tests for token issuance."""

    def test_issue_persists_unconsumed_token(
        self, token_service: AdminTokenService, token_repository: InMemoryTokenRepository
    ) -> None:
        token = token_service.issue()

        stored = token_repository.get(token.id)
        assert stored == token
        assert stored.consumed_at is None
        assert stored.consumed_by_account_id is None

    def test_issue_default_lifetime_is_seven_days(
        self, token_service: AdminTokenService, clock
    ) -> None:
        token = token_service.issue()
        assert token.issued_at == clock()
        assert token.expires_at - token.issued_at == timedelta(days=7)

    def test_issue_custom_lifetime(self, token_service: AdminTokenService) -> None:
        token = token_service.issue(ttl=timedelta(hours=2))
        assert token.expires_at - token.issued_at == timedelta(hours=2)

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-1)])
    def test_issue_rejects_non_positive_lifetime(
        self, token_service: AdminTokenService, ttl: timedelta
    ) -> None:
        with pytest.raises(ValueError):
            token_service.issue(ttl=ttl)

    def test_issue_normalizes_bound_email(self, token_service: AdminTokenService) -> None:
        token = token_service.issue(bound_email="  Admin@Example.COM ")
        assert token.bound_email == "admin@example.com"

    def test_issue_unbound_when_email_empty(self, token_service: AdminTokenService) -> None:
        assert token_service.issue(bound_email="").bound_email is None

    def test_issue_records_creator(self, token_service: AdminTokenService) -> None:
        token = token_service.issue(created_by_account_id="admin-1")
        assert token.created_by_account_id == "admin-1"

    def test_token_ids_are_long_and_unique(self, token_service: AdminTokenService) -> None:
        """Ids carry 256 bits of entropy: 43 URL-safe characters."""
        ids = {token_service.issue().id for _ in range(50)}
        assert len(ids) == 50
        assert all(len(token_id) >= 43 for token_id in ids)

    def test_token_ids_are_url_safe(self, token_service: AdminTokenService) -> None:
        token_id = token_service.issue().id
        assert all(c.isalnum() or c in "-_" for c in token_id)

    def test_issue_does_not_grant_anything(
        self, token_service: AdminTokenService, make_account: Callable[..., Account], directory
    ) -> None:
        account = make_account("someone@example.com")
        token_service.issue(bound_email="someone@example.com")
        assert directory.get_account(account.id).is_admin is False

    def test_bound_token_sends_invitation(self, token_repository, clock) -> None:
        sender = Mock()
        service = AdminTokenService(
            repository=token_repository,
            invitation_sender=sender,
            public_base_url="https://journal.example/",
            clock=clock,
        )

        token = service.issue(bound_email="new@example.com")

        sender.send_admin_invitation.assert_called_once_with(
            "new@example.com", f"https://journal.example/register?token={token.id}"
        )

    def test_unbound_token_sends_no_invitation(self, token_repository, clock) -> None:
        sender = Mock()
        service = AdminTokenService(
            repository=token_repository, invitation_sender=sender, clock=clock
        )
        service.issue()
        sender.send_admin_invitation.assert_not_called()

    def test_issue_propagates_storage_failure(self, clock) -> None:
        repo = Mock()
        repo.insert.side_effect = StorageFailure("down")
        sender = Mock()
        service = AdminTokenService(repository=repo, invitation_sender=sender, clock=clock)

        with pytest.raises(StorageFailure):
            service.issue(bound_email="x@example.com")
        sender.send_admin_invitation.assert_not_called()


class TestValidate:
    """Tests for read-only validation."""

    def test_unknown_token_not_found(self, token_service: AdminTokenService) -> None:
        result = token_service.validate("missing")
        assert result.status is TokenStatus.NOT_FOUND
        assert result.bound_email is None

    def test_fresh_token_valid(self, token_service: AdminTokenService) -> None:
        token = token_service.issue()
        assert token_service.validate(token.id).status is TokenStatus.VALID

    def test_expired_one_second_ago(self, token_service, token_repository, clock) -> None:
        issue_raw(token_repository, clock, expires_in=timedelta(seconds=-1))
        assert token_service.validate("tok-1").status is TokenStatus.EXPIRED

    def test_expires_in_one_second_is_valid(self, token_service, token_repository, clock) -> None:
        issue_raw(token_repository, clock, expires_in=timedelta(seconds=1))
        assert token_service.validate("tok-1").status is TokenStatus.VALID

    def test_expires_exactly_now_is_expired(self, token_service, token_repository, clock) -> None:
        issue_raw(token_repository, clock, expires_in=timedelta(0))
        assert token_service.validate("tok-1").status is TokenStatus.EXPIRED

    def test_token_expires_as_clock_advances(self, token_service: AdminTokenService, clock) -> None:
        token = token_service.issue(ttl=timedelta(hours=1))
        clock.advance(timedelta(hours=1))
        assert token_service.validate(token.id).status is TokenStatus.EXPIRED

    def test_email_mismatch(self, token_service: AdminTokenService) -> None:
        token = token_service.issue(bound_email="a@x.com")
        result = token_service.validate(token.id, "b@x.com")
        assert result.status is TokenStatus.EMAIL_MISMATCH
        assert result.bound_email == "a@x.com"

    def test_email_match_is_case_insensitive(self, token_service: AdminTokenService) -> None:
        token = token_service.issue(bound_email="a@x.com")
        assert token_service.validate(token.id, "A@X.com").status is TokenStatus.VALID

    def test_bound_token_without_candidate_is_valid(self, token_service: AdminTokenService) -> None:
        """Banner lookups before the email is typed report VALID and the bound email."""
        token = token_service.issue(bound_email="a@x.com")
        result = token_service.validate(token.id)
        assert result.status is TokenStatus.VALID
        assert result.bound_email == "a@x.com"

    def test_used_reported_before_expired(
        self, token_service, token_repository, clock, make_account
    ) -> None:
        account = make_account("a@x.com")
        issue_raw(token_repository, clock, bound_email="a@x.com", expires_in=timedelta(hours=1))
        assert token_service.consume("tok-1", account.id, account.email).granted
        clock.advance(timedelta(days=1))

        assert token_service.validate("tok-1", "b@x.com").status is TokenStatus.ALREADY_USED

    def test_expired_reported_before_mismatch(self, token_service, token_repository, clock) -> None:
        issue_raw(
            token_repository, clock, bound_email="a@x.com", expires_in=timedelta(seconds=-1)
        )
        assert token_service.validate("tok-1", "b@x.com").status is TokenStatus.EXPIRED

    def test_validation_is_idempotent(
        self, token_service: AdminTokenService, token_repository: InMemoryTokenRepository
    ) -> None:
        token = token_service.issue()
        before = token_repository.get(token.id)

        results = [token_service.validate(token.id) for _ in range(25)]

        assert all(r.status is TokenStatus.VALID for r in results)
        assert token_repository.get(token.id) == before

    def test_validate_propagates_storage_failure(self, clock) -> None:
        repo = Mock()
        repo.get.side_effect = StorageFailure("down")
        service = AdminTokenService(repository=repo, clock=clock)
        with pytest.raises(StorageFailure):
            service.validate("tok")


class TestConsume:
    """Tests for consumption through the service."""

    def test_consume_grants_and_records(
        self, token_service, token_repository, directory, make_account, clock
    ) -> None:
        account = make_account("new@example.com")
        token = token_service.issue()

        result = token_service.consume(token.id, account.id, account.email)

        assert result.granted is True
        stored = token_repository.get(token.id)
        assert stored.consumed_at == clock()
        assert stored.consumed_by_account_id == account.id
        assert directory.get_account(account.id).is_admin is True

    def test_second_consume_already_used(self, token_service, make_account) -> None:
        first = make_account("first@example.com")
        second = make_account("second@example.com")
        token = token_service.issue()

        assert token_service.consume(token.id, first.id, first.email).granted
        result = token_service.consume(token.id, second.id, second.email)

        assert result.granted is False
        assert result.reason is TokenStatus.ALREADY_USED

    def test_same_account_retry_already_used(self, token_service, make_account) -> None:
        account = make_account("retry@example.com")
        token = token_service.issue()

        token_service.consume(token.id, account.id, account.email)
        result = token_service.consume(token.id, account.id, account.email)

        assert result.reason is TokenStatus.ALREADY_USED

    def test_consume_normalizes_account_email(self, token_service, make_account) -> None:
        account = make_account("a@x.com")
        token = token_service.issue(bound_email="a@x.com")
        assert token_service.consume(token.id, account.id, "  A@X.com ").granted

    def test_consume_email_mismatch(self, token_service, make_account, directory) -> None:
        account = make_account("b@x.com")
        token = token_service.issue(bound_email="a@x.com")

        result = token_service.consume(token.id, account.id, account.email)

        assert result.reason is TokenStatus.EMAIL_MISMATCH
        assert directory.get_account(account.id).is_admin is False

    def test_consume_expired(self, token_service, make_account, clock) -> None:
        account = make_account("late@example.com")
        token = token_service.issue(ttl=timedelta(seconds=30))
        clock.advance(timedelta(seconds=31))

        assert token_service.consume(token.id, account.id, account.email).reason is (
            TokenStatus.EXPIRED
        )

    def test_consume_unknown_token(self, token_service, make_account) -> None:
        account = make_account("who@example.com")
        assert token_service.consume("nope", account.id, account.email).reason is (
            TokenStatus.NOT_FOUND
        )

    def test_consume_passes_clock_time_to_repository(self, clock) -> None:
        repo = Mock()
        service = AdminTokenService(repository=repo, clock=clock)
        service.consume("tok", "acct", "User@Example.com")
        repo.consume.assert_called_once_with("tok", "acct", "user@example.com", clock())

    def test_consume_propagates_storage_failure(self, clock) -> None:
        repo = Mock()
        repo.consume.side_effect = StorageFailure("down")
        service = AdminTokenService(repository=repo, clock=clock)
        with pytest.raises(StorageFailure):
            service.consume("tok", "acct", "user@example.com")


class TestListTokens:
    """Tests for the administrator listing."""

    def test_list_reports_states_newest_first(
        self, token_service, token_repository, clock, make_account
    ) -> None:
        account = make_account("used@example.com")
        used = token_service.issue()
        token_service.consume(used.id, account.id, account.email)
        clock.advance(timedelta(minutes=1))
        expiring = token_service.issue(ttl=timedelta(minutes=5))
        clock.advance(timedelta(minutes=1))
        fresh = token_service.issue()
        clock.advance(timedelta(minutes=10))

        listing = token_service.list_tokens()

        assert [token.id for token, _ in listing] == [fresh.id, expiring.id, used.id]
        assert [state for _, state in listing] == [
            TokenState.UNUSED,
            TokenState.EXPIRED,
            TokenState.USED,
        ]

    def test_empty_listing(self) -> None:
        service = AdminTokenService(repository=InMemoryTokenRepository(InMemoryDatabase()))
        assert service.list_tokens() == []


class TestRegistrationUrl:
    def test_token_is_query_encoded(self) -> None:
        service = AdminTokenService(repository=Mock(), public_base_url="http://localhost:8000")
        assert service.registration_url("ab-c_d") == "http://localhost:8000/register?token=ab-c_d"


class TestEvaluateToken:
    """Tests for the shared evaluation function."""

    def test_none_is_not_found(self, clock) -> None:
        assert evaluate_token(None, clock(), "a@x.com") is TokenStatus.NOT_FOUND

    def test_normalize_email(self) -> None:
        assert normalize_email("  MiXeD@Example.Com\n") == "mixed@example.com"
