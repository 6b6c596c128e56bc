"""Protocols for best-effort side effects: follow-up jobs and usage metering."""

from __future__ import annotations

from typing import Protocol


class JobScheduler(Protocol):
    async def enqueue(self, job_name: str, payload: dict) -> str: ...


class UsageMeter(Protocol):
    async def record_usage(
        self,
        org_id: str,
        event_type: str,
        credits: int,
        actor_id: str | None = None,
        metadata: dict | None = None,
    ) -> None: ...
