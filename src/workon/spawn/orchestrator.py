"""Spawn orchestration: submit one batch, then wait for the session to grow."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, Sequence

from ..layout import Layout
from ..manifest import Resource
from ..session import SessionStore
from ..tools import CommandResult
from .awesome import SpawnError
from .models import SpawnBatch

logger = logging.getLogger(__name__)

SUCCESS = "success"
TIMEOUT = "timeout"
DRY_RUN = "dry_run"


class SpawnerProtocol(Protocol):
    """Minimal spawn primitive API used by the orchestrator."""

    def render(self, batch: SpawnBatch) -> str:
        ...

    async def submit(self, batch: SpawnBatch) -> CommandResult:
        ...


@dataclass(slots=True)
class LaunchReport:
    """Outcome of a ``launch`` call."""

    status: str
    requested: int
    baseline: int
    observed: int
    elapsed: float = 0.0
    output: str = ""
    batch: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in {SUCCESS, DRY_RUN}

    @property
    def new_entries(self) -> int:
        return max(self.observed - self.baseline, 0)


class SpawnOrchestrator:
    """Turn resolved resources into a spawn batch and track its results."""

    def __init__(
        self,
        spawner: SpawnerProtocol,
        *,
        timeout: float = 15.0,
        poll_interval: float = 0.5,
        dry_run: bool = False,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._spawner = spawner
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._dry_run = dry_run
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

    async def launch(
        self,
        session: SessionStore | Path,
        resources: Sequence[Resource],
        layout: Layout | None = None,
    ) -> LaunchReport:
        """Spawn ``resources`` and wait until the session records new entries.

        Partial success is success: the report is ``success`` as soon as any
        new entry shows up. Nothing already spawned is rolled back on timeout.
        """

        store = session if isinstance(session, SessionStore) else SessionStore(session)
        if not resources:
            raise SpawnError("No resources to spawn")

        batch = SpawnBatch(session_file=store.path, resources=list(resources), layout=layout)
        payload = batch.to_payload()
        baseline = store.count()
        logger.debug("Spawn batch prepared", extra={"batch": payload, "baseline": baseline})
        if baseline:
            logger.warning(
                "Session already holds %d entries; new resources will be appended", baseline
            )

        if self._dry_run:
            return LaunchReport(
                status=DRY_RUN,
                requested=len(batch),
                baseline=baseline,
                observed=baseline,
                output=self._spawner.render(batch),
                batch=payload,
            )

        started = self._clock()
        result = await self._spawner.submit(batch)
        output = result.stdout.strip()

        deadline = started + self._timeout
        while True:
            current = store.count()
            if current > baseline:
                elapsed = self._clock() - started
                logger.info(
                    "Session file updated with %d entries",
                    current,
                    extra={"baseline": baseline, "elapsed": round(elapsed, 2)},
                )
                return LaunchReport(
                    status=SUCCESS,
                    requested=len(batch),
                    baseline=baseline,
                    observed=current,
                    elapsed=elapsed,
                    output=output,
                    batch=payload,
                )
            if self._clock() >= deadline:
                break
            await self._sleep(self._poll_interval)

        elapsed = self._clock() - started
        logger.warning(
            "Session file not updated within timeout",
            extra={"timeout": self._timeout, "session_file": str(store.path)},
        )
        return LaunchReport(
            status=TIMEOUT,
            requested=len(batch),
            baseline=baseline,
            observed=store.count(),
            elapsed=elapsed,
            output=output,
            batch=payload,
        )


__all__ = ["DRY_RUN", "LaunchReport", "SUCCESS", "SpawnOrchestrator", "SpawnerProtocol", "TIMEOUT"]
