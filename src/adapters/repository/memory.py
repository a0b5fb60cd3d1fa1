"""
In-memory repository adapters - Implement TokenRepository and IdentityProvider.

Backs local runs (STORAGE_BACKEND=memory) and the test suite. The
InMemoryDatabase plays the role of the store: every read-modify-write
runs inside its transaction() block, which serializes transactions the
way PostgreSQL row locks do for the production adapter. Nothing outside
the store takes a lock.
"""

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from src.adapters.passwords import check_password, hash_password
from src.domain.exceptions import AccountAlreadyExists, AuthenticationFailed, StorageFailure
from src.domain.ports import Account, AdminToken, ConsumeResult, TokenStatus
from src.domain.tokens import evaluate_token, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountRecord:
    id: str
    email: str
    password_hash: str
    is_admin: bool
    created_at: datetime

    def to_account(self) -> Account:
        return Account(id=self.id, email=self.email, is_admin=self.is_admin)


class InMemoryDatabase:
    """Process-local store with serializable transactions."""

    def __init__(self) -> None:
        self.tokens: dict[str, AdminToken] = {}
        self.accounts: dict[str, AccountRecord] = {}
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDatabase"]:
        with self._lock:
            yield self

    def ping(self) -> None:
        with self.transaction():
            pass


class InMemoryTokenRepository:
    """
    Implements TokenRepository protocol over an InMemoryDatabase.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, database: InMemoryDatabase) -> None:
        self._db = database

    def insert(self, token: AdminToken) -> None:
        with self._db.transaction() as db:
            if token.id in db.tokens:
                raise StorageFailure("Could not persist admin token")
            db.tokens[token.id] = token

    def get(self, token_id: str) -> AdminToken | None:
        with self._db.transaction() as db:
            return db.tokens.get(token_id)

    def list_tokens(self) -> list[AdminToken]:
        with self._db.transaction() as db:
            tokens = list(db.tokens.values())
        return sorted(tokens, key=lambda token: token.issued_at, reverse=True)

    def consume(
        self, token_id: str, account_id: str, account_email: str, now: datetime
    ) -> ConsumeResult:
        """
        Consume a token and grant admin in one transaction.

        Both records are replaced only after every check passes, so a
        rejected attempt leaves no trace.
        """
        with self._db.transaction() as db:
            token = db.tokens.get(token_id)
            status = evaluate_token(token, now, account_email)
            if status is not TokenStatus.VALID:
                return ConsumeResult.rejected(status)

            account = db.accounts.get(account_id)
            if account is None:
                return ConsumeResult.rejected(TokenStatus.ACCOUNT_NOT_FOUND)

            db.accounts[account_id] = replace(account, is_admin=True)
            db.tokens[token_id] = replace(
                token, consumed_at=now, consumed_by_account_id=account_id
            )
            return ConsumeResult.success()


class InMemoryAccountDirectory:
    """
    Implements IdentityProvider protocol over an InMemoryDatabase.

    Emails are normalized (strip + lowercase) before storage and lookup.
    """

    def __init__(self, database: InMemoryDatabase, bcrypt_cost: int = 10) -> None:
        self._db = database
        self._bcrypt_cost = bcrypt_cost

    def sign_up(self, email: str, password: str) -> Account:
        normalized_email = normalize_email(email)
        password_hash = hash_password(password, self._bcrypt_cost)
        with self._db.transaction() as db:
            if any(record.email == normalized_email for record in db.accounts.values()):
                raise AccountAlreadyExists(normalized_email)
            record = AccountRecord(
                id=str(uuid.uuid4()),
                email=normalized_email,
                password_hash=password_hash,
                is_admin=False,
                created_at=datetime.now(timezone.utc),
            )
            db.accounts[record.id] = record
        logger.info("Created account %s", record.id)
        return record.to_account()

    def sign_in(self, email: str, password: str) -> Account:
        normalized_email = normalize_email(email)
        with self._db.transaction() as db:
            record = next(
                (r for r in db.accounts.values() if r.email == normalized_email), None
            )
        stored_hash = record.password_hash if record is not None else None
        if not check_password(password, stored_hash) or record is None:
            raise AuthenticationFailed(normalized_email)
        return record.to_account()

    def get_account(self, account_id: str) -> Account | None:
        with self._db.transaction() as db:
            record = db.accounts.get(account_id)
        return record.to_account() if record is not None else None
