"""
Persistent storage adapters for the job database.

Requires asyncpg: pip install asyncpg
"""

from .postgres import PostgresJobDatabase

__all__ = [
    "PostgresJobDatabase",
]
