"""
PostgreSQL repository adapters - Implement TokenRepository and IdentityProvider.

This module provides the PostgreSQL implementations of the domain's
ports using psycopg3 with raw SQL.

Consumption Atomicity:
---------------------
consume() runs one transaction on one pooled connection:

1. **SELECT ... FOR UPDATE** locks the token row. A concurrent consumer
   blocks here until the first transaction commits or rolls back, then
   re-reads the row and sees consumed_at set.

2. **evaluate_token()** re-applies the usability rules to the locked row,
   with the same ordering the read-only validator uses.

3. **UPDATE accounts** sets is_admin. Zero rows means the account is
   missing and the whole transaction rolls back.

4. **UPDATE admin_registration_tokens ... WHERE consumed_at IS NULL**
   records the consumption. The guard makes the write a compare-and-set
   even if the row lock were ever dropped.

5. **COMMIT** publishes both writes together. Any exception rolls back.

psycopg errors are wrapped in StorageFailure so the domain never sees
driver types.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.adapters.passwords import check_password, hash_password
from src.domain.exceptions import AccountAlreadyExists, AuthenticationFailed, StorageFailure
from src.domain.ports import Account, AdminToken, ConsumeResult, TokenStatus
from src.domain.tokens import evaluate_token, normalize_email, token_prefix

logger = logging.getLogger(__name__)

_TOKEN_COLUMNS = """
    id, bound_email, issued_at, expires_at,
    consumed_at, consumed_by_account_id, created_by_account_id
"""


def _row_to_token(row: dict) -> AdminToken:
    return AdminToken(
        id=row["id"],
        bound_email=row["bound_email"],
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        consumed_at=row["consumed_at"],
        consumed_by_account_id=row["consumed_by_account_id"],
        created_by_account_id=row["created_by_account_id"],
    )


class PostgresTokenRepository:
    """
    Implements TokenRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def insert(self, token: AdminToken) -> None:
        sql = """
            INSERT INTO admin_registration_tokens
                (id, bound_email, issued_at, expires_at, created_by_account_id)
            VALUES (%s, %s, %s, %s, %s)
        """
        try:
            with self._pool.connection() as conn:
                conn.execute(
                    sql,
                    (
                        token.id,
                        token.bound_email,
                        token.issued_at,
                        token.expires_at,
                        token.created_by_account_id,
                    ),
                )
                conn.commit()
        except psycopg.Error as e:
            logger.error("Failed to persist admin token %s: %s", token_prefix(token.id), e)
            raise StorageFailure("Could not persist admin token") from e

    def get(self, token_id: str) -> AdminToken | None:
        sql = f"SELECT {_TOKEN_COLUMNS} FROM admin_registration_tokens WHERE id = %s"
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, (token_id,))
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise StorageFailure("Could not read admin token") from e
        return _row_to_token(row) if row is not None else None

    def list_tokens(self) -> list[AdminToken]:
        sql = f"""
            SELECT {_TOKEN_COLUMNS}
            FROM admin_registration_tokens
            ORDER BY issued_at DESC
        """
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql)
                rows = cursor.fetchall()
        except psycopg.Error as e:
            raise StorageFailure("Could not list admin tokens") from e
        return [_row_to_token(row) for row in rows]

    def consume(
        self, token_id: str, account_id: str, account_email: str, now: datetime
    ) -> ConsumeResult:
        """
        Consume a token and grant admin in one transaction.

        Args:
            token_id: Bearer token identifier
            account_id: Account receiving the admin flag
            account_email: Normalized email of that account
            now: Evaluation time for the expiry check

        Returns:
            ConsumeResult; granted=True for exactly one caller per token

        Raises:
            StorageFailure: On any database error (transaction rolled back)
        """
        select_sql = f"""
            SELECT {_TOKEN_COLUMNS}
            FROM admin_registration_tokens
            WHERE id = %s
            FOR UPDATE
        """

        grant_sql = """
            UPDATE accounts
            SET is_admin = TRUE
            WHERE id = %s
        """

        consume_sql = """
            UPDATE admin_registration_tokens
            SET consumed_at = %s, consumed_by_account_id = %s
            WHERE id = %s AND consumed_at IS NULL
        """

        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                # Lock the token row for the rest of the transaction
                cursor.execute(select_sql, (token_id,))
                row = cursor.fetchone()
                token = _row_to_token(row) if row is not None else None

                status = evaluate_token(token, now, account_email)
                if status is not TokenStatus.VALID:
                    conn.rollback()
                    return ConsumeResult.rejected(status)

                cursor.execute(grant_sql, (account_id,))
                if cursor.rowcount != 1:
                    conn.rollback()
                    return ConsumeResult.rejected(TokenStatus.ACCOUNT_NOT_FOUND)

                cursor.execute(consume_sql, (now, account_id, token_id))
                if cursor.rowcount != 1:
                    conn.rollback()
                    return ConsumeResult.rejected(TokenStatus.ALREADY_USED)

                conn.commit()
                return ConsumeResult.success()
        except psycopg.Error as e:
            logger.error("Admin token %s consumption rolled back: %s", token_prefix(token_id), e)
            raise StorageFailure("Could not consume admin token") from e


class PostgresAccountDirectory:
    """
    Implements IdentityProvider protocol via psycopg3.

    Passwords are stored as bcrypt hashes; sign-in always runs bcrypt,
    against a dummy hash for unknown emails.
    """

    def __init__(self, pool: ConnectionPool, bcrypt_cost: int = 10) -> None:
        self._pool = pool
        self._bcrypt_cost = bcrypt_cost

    def sign_up(self, email: str, password: str) -> Account:
        """
        Create an account.

        INSERT ... ON CONFLICT (email) DO NOTHING makes the claim atomic;
        the UNIQUE constraint decides which of two racing signups wins.
        """
        normalized_email = normalize_email(email)
        password_hash = hash_password(password, self._bcrypt_cost)
        sql = """
            INSERT INTO accounts (id, email, password_hash)
            VALUES (%s, %s, %s)
            ON CONFLICT (email) DO NOTHING
        """
        account_id = str(uuid.uuid4())
        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (account_id, normalized_email, password_hash))
                conn.commit()
                created = cursor.rowcount == 1
        except psycopg.Error as e:
            raise StorageFailure("Could not create account") from e

        if not created:
            raise AccountAlreadyExists(normalized_email)
        logger.info("Created account %s", account_id)
        return Account(id=account_id, email=normalized_email, is_admin=False)

    def sign_in(self, email: str, password: str) -> Account:
        normalized_email = normalize_email(email)
        sql = "SELECT id, email, password_hash, is_admin FROM accounts WHERE email = %s"
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, (normalized_email,))
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise StorageFailure("Could not read account") from e

        # Always run bcrypt, even for unknown emails
        stored_hash = row["password_hash"] if row is not None else None
        if not check_password(password, stored_hash) or row is None:
            raise AuthenticationFailed(normalized_email)
        return Account(id=row["id"], email=row["email"], is_admin=row["is_admin"])

    def get_account(self, account_id: str) -> Account | None:
        sql = "SELECT id, email, is_admin FROM accounts WHERE id = %s"
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(sql, (account_id,))
                row = cursor.fetchone()
        except psycopg.Error as e:
            raise StorageFailure("Could not read account") from e
        if row is None:
            return None
        return Account(id=row["id"], email=row["email"], is_admin=row["is_admin"])


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
