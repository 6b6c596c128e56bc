"""SQLite-backed job queue and usage meter for blocked-answer follow-ups."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from uuid import uuid4

import aiosqlite

from answer_engine.storage.migrations import initialize_jobs_db


class SQLiteJobStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_jobs_db(self._db_path)

    async def enqueue(self, job_name: str, payload: dict) -> str:
        job_id = str(uuid4())
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO jobs (job_id, job_name, payload, created_at) VALUES (?, ?, ?, ?)",
                (job_id, job_name, json.dumps(payload), datetime.now(timezone.utc).isoformat()),
            )
            await db.commit()
        return job_id

    async def record_usage(
        self,
        org_id: str,
        event_type: str,
        credits: int,
        actor_id: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO usage_events "
                "(event_id, org_id, event_type, credits, actor_id, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(uuid4()),
                    org_id,
                    event_type,
                    credits,
                    actor_id,
                    json.dumps(metadata or {}),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            await db.commit()

    async def list_jobs(self, job_name: str | None = None) -> list[dict]:
        sql = "SELECT job_id, job_name, payload, status, created_at FROM jobs"
        params: tuple = ()
        if job_name:
            sql += " WHERE job_name = ?"
            params = (job_name,)
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql + " ORDER BY created_at", params) as cursor:
                rows = await cursor.fetchall()
        return [{**dict(row), "payload": json.loads(row["payload"])} for row in rows]

    async def list_usage_events(self, org_id: str) -> list[dict]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT event_type, credits, actor_id, metadata, created_at FROM usage_events "
                "WHERE org_id = ? ORDER BY created_at",
                (org_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [{**dict(row), "metadata": json.loads(row["metadata"])} for row in rows]
