"""Repository adapters - Database implementations."""

from .memory import InMemoryAccountDirectory, InMemoryDatabase, InMemoryTokenRepository
from .postgres import PostgresAccountDirectory, PostgresTokenRepository, run_migrations

__all__ = [
    "InMemoryAccountDirectory",
    "InMemoryDatabase",
    "InMemoryTokenRepository",
    "PostgresAccountDirectory",
    "PostgresTokenRepository",
    "run_migrations",
]
