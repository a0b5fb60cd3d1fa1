"""
Operator command line for admin registration tokens.

Seeds the first administrator, who cannot use the admin API yet:

    journal-admin-tokens issue-token --email admin@example.com --days 3

prints a registration URL; signing up (or logging in) with it grants
admin. Runs against the PostgreSQL store named by DATABASE_URL.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from typing import Annotated, Optional

import typer
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresTokenRepository, run_migrations
from src.adapters.smtp.console import ConsoleInvitationSender
from src.config.settings import Settings, get_settings
from src.domain.exceptions import StorageFailure
from src.domain.tokens import AdminTokenService

app = typer.Typer(add_completion=False, help="Admin registration token operator CLI")


@contextmanager
def open_token_service(settings: Settings) -> Iterator[AdminTokenService]:
    """
    Token service over a short-lived connection pool.

    The in-memory backend lives inside the API process, so a token issued
    from here would vanish on exit; only PostgreSQL is accepted.
    """
    if settings.storage_backend != "postgres":
        typer.echo(
            f"STORAGE_BACKEND={settings.storage_backend} keeps tokens in the API process; "
            "the CLI needs STORAGE_BACKEND=postgres",
            err=True,
        )
        raise typer.Exit(code=1)

    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=2)
    try:
        run_migrations(pool)
        yield AdminTokenService(
            repository=PostgresTokenRepository(pool),
            invitation_sender=ConsoleInvitationSender(),
            public_base_url=settings.public_base_url,
            default_ttl=timedelta(days=settings.token_ttl_days),
        )
    finally:
        pool.close()


@app.command("issue-token")
def issue_token(
    email: Annotated[
        Optional[str], typer.Option("--email", help="Only this email may redeem the token")
    ] = None,
    days: Annotated[
        Optional[int], typer.Option("--days", min=1, help="Token lifetime in days (default 7)")
    ] = None,
) -> None:
    """Issue a single-use admin registration token and print its URL."""
    settings = get_settings()
    if days is not None and days > settings.max_token_ttl_days:
        typer.echo(f"--days must be at most {settings.max_token_ttl_days}", err=True)
        raise typer.Exit(code=2)

    ttl = timedelta(days=days) if days is not None else None
    try:
        with open_token_service(settings) as service:
            token = service.issue(bound_email=email, ttl=ttl)
            url = service.registration_url(token.id)
    except StorageFailure as e:
        typer.echo(f"Could not issue token: {e}", err=True)
        raise typer.Exit(code=1) from e

    typer.echo(f"Token:      {token.id}")
    typer.echo(f"Email:      {token.bound_email or '(any)'}")
    typer.echo(f"Expires at: {token.expires_at.isoformat()}")
    typer.echo(f"URL:        {url}")


@app.command("list-tokens")
def list_tokens() -> None:
    """List issued tokens, newest first, with their status."""
    settings = get_settings()
    try:
        with open_token_service(settings) as service:
            tokens = service.list_tokens()
    except StorageFailure as e:
        typer.echo(f"Could not list tokens: {e}", err=True)
        raise typer.Exit(code=1) from e

    if not tokens:
        typer.echo("No tokens issued")
        return
    for token, state in tokens:
        typer.echo(
            f"{token.id}  {state.value:<7}  {token.bound_email or '(any)'}  "
            f"expires {token.expires_at.isoformat()}"
        )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app()


if __name__ == "__main__":
    main()
