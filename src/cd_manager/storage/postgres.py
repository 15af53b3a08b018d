"""
PostgreSQL storage adapter for the job database.

Tables (created on first use, names prefixed with ``table_prefix``):
- {prefix}_jobs: latest state per job id
- {prefix}_job_history: every state ever saved, append-only
- {prefix}_deploy_hashes: commit hash currently deployed per component
"""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ..jobs.types import DeployComponent, JobStage, JobState, JobType, PARAMS_BY_TYPE
from ..store import JobDatabase, JobFilter


def _sanitize_table_name(name: str) -> str:
    """Ensure the table name is safe for SQL interpolation."""
    if not name:
        raise ValueError("table_prefix cannot be empty")
    if not re.fullmatch(r"[a-zA-Z0-9_]+", name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _to_timestamptz(value: float) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class PostgresJobDatabase(JobDatabase):
    """PostgreSQL implementation of JobDatabase.

    Jobs table schema:
    - id (TEXT PRIMARY KEY)
    - type, stage (TEXT)
    - ts (TIMESTAMPTZ)
    - params (JSONB)
    - error, error_code (TEXT)
    """

    TABLE_PREFIX = "cd"

    def __init__(
        self,
        pool: asyncpg.Pool,
        table_prefix: str | None = None,
    ):
        self._pool = pool
        prefix = _sanitize_table_name(table_prefix or self.TABLE_PREFIX)
        self._jobs = f"{prefix}_jobs"
        self._history = f"{prefix}_job_history"
        self._hashes = f"{prefix}_deploy_hashes"
        self._ensured = False
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, dsn: str, **kwargs: Any) -> PostgresJobDatabase:
        """Create a connection pool and wrap it."""
        pool = await asyncpg.create_pool(dsn)
        return cls(pool, **kwargs)

    async def _ensure_tables(self) -> None:
        """Create the tables if they don't exist."""
        async with self._lock:
            if self._ensured:
                return

            ddl = f'''
            CREATE TABLE IF NOT EXISTS "{self._jobs}" (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                stage TEXT NOT NULL,
                ts TIMESTAMPTZ NOT NULL,
                params JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                error TEXT,
                error_code TEXT
            );
            CREATE INDEX IF NOT EXISTS "{self._jobs}_stage_idx" ON "{self._jobs}" (stage);
            CREATE INDEX IF NOT EXISTS "{self._jobs}_type_idx" ON "{self._jobs}" (type);
            CREATE TABLE IF NOT EXISTS "{self._history}" (
                seq BIGSERIAL PRIMARY KEY,
                id TEXT NOT NULL,
                type TEXT NOT NULL,
                stage TEXT NOT NULL,
                ts TIMESTAMPTZ NOT NULL,
                params JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                error TEXT,
                error_code TEXT
            );
            CREATE INDEX IF NOT EXISTS "{self._history}_id_idx" ON "{self._history}" (id);
            CREATE TABLE IF NOT EXISTS "{self._hashes}" (
                component TEXT PRIMARY KEY,
                sha TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            '''

            async with self._pool.acquire() as conn:
                for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
                    await conn.execute(stmt)

            self._ensured = True

    def _job_to_row(self, job: JobState) -> list[Any]:
        return [
            job.id,
            job.type.value,
            job.stage.value,
            _to_timestamptz(job.ts),
            json.dumps(job.params.to_dict()),
            job.error,
            job.error_code,
        ]

    def _row_to_job(self, row: Any) -> JobState:
        job_type = JobType(row["type"])
        params = row["params"] if isinstance(row["params"], dict) else json.loads(row["params"] or "{}")
        ts = row["ts"]
        return JobState(
            id=row["id"],
            type=job_type,
            stage=JobStage(row["stage"]),
            ts=ts.timestamp() if hasattr(ts, "timestamp") else float(ts),
            params=PARAMS_BY_TYPE[job_type].from_dict(params),
            error=row["error"],
            error_code=row["error_code"],
        )

    async def save_job(self, job: JobState) -> None:
        await self._ensure_tables()

        upsert = f'''
        INSERT INTO "{self._jobs}" (id, type, stage, ts, params, error, error_code)
        VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
        ON CONFLICT (id) DO UPDATE SET
            type = EXCLUDED.type,
            stage = EXCLUDED.stage,
            ts = EXCLUDED.ts,
            params = EXCLUDED.params,
            error = EXCLUDED.error,
            error_code = EXCLUDED.error_code
        '''
        append = f'''
        INSERT INTO "{self._history}" (id, type, stage, ts, params, error, error_code)
        VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
        '''

        row = self._job_to_row(job)
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(upsert, *row)
                await conn.execute(append, *row)

    async def get_job(self, job_id: str) -> JobState | None:
        await self._ensure_tables()

        q = f'SELECT * FROM "{self._jobs}" WHERE id = $1'

        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(q, job_id)
            if row is None:
                return None
            return self._row_to_job(row)

    async def list_jobs(self, filter: JobFilter | None = None) -> list[JobState]:
        await self._ensure_tables()
        filter = filter or JobFilter()

        q = f'SELECT * FROM "{self._jobs}"'
        params: list[Any] = []
        conditions: list[str] = []

        if filter.job_type:
            params.append(filter.job_type.value)
            conditions.append(f"type = ${len(params)}")
        stages: set[JobStage] | None = None
        if filter.stage:
            stages = filter.stage if isinstance(filter.stage, set) else {filter.stage}
        if filter.active_only:
            active = {s for s in JobStage if s.is_active}
            stages = stages & active if stages is not None else active
        if stages is not None:
            params.append([s.value for s in stages])
            conditions.append(f"stage = ANY(${len(params)}::text[])")

        if conditions:
            q += " WHERE " + " AND ".join(conditions)

        order_dir = "DESC" if filter.order_desc else "ASC"
        params.extend([filter.limit, filter.offset])
        q += f" ORDER BY ts {order_dir} LIMIT ${len(params) - 1} OFFSET ${len(params)}"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(q, *params)
            return [self._row_to_job(row) for row in rows]

    async def job_history(self, job_id: str) -> list[JobState]:
        await self._ensure_tables()

        q = f'SELECT * FROM "{self._history}" WHERE id = $1 ORDER BY seq ASC'

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(q, job_id)
            return [self._row_to_job(row) for row in rows]

    async def get_deploy_hashes(self) -> dict[DeployComponent, str]:
        await self._ensure_tables()

        q = f'SELECT component, sha FROM "{self._hashes}"'

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(q)
        hashes: dict[DeployComponent, str] = {}
        for row in rows:
            try:
                hashes[DeployComponent(row["component"])] = row["sha"]
            except ValueError:
                continue  # retired component
        return hashes

    async def update_deploy_hash(self, component: DeployComponent, sha: str) -> None:
        await self._ensure_tables()

        q = f'''
        INSERT INTO "{self._hashes}" (component, sha, updated_at)
        VALUES ($1, $2, NOW())
        ON CONFLICT (component) DO UPDATE SET sha = EXCLUDED.sha, updated_at = NOW()
        '''

        async with self._pool.acquire() as conn:
            await conn.execute(q, component.value, sha)

    async def close(self) -> None:
        await self._pool.close()


__all__ = [
    "PostgresJobDatabase",
]
