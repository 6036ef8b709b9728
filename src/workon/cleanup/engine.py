"""Session teardown across the strategy cascade."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..session import SessionCorruptError, SessionEntry, SessionNotFoundError, SessionStore
from ..tools import ToolError, ToolRunner
from .signals import Signaller
from .strategies import CleanupStrategy, default_strategies

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StopOutcome:
    """Result for one session entry."""

    name: str
    pid: int
    strategy: str | None

    @property
    def stopped(self) -> bool:
        return self.strategy is not None


@dataclass(slots=True)
class StopReport:
    """Aggregate result of ``stop_all``."""

    outcomes: list[StopOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def stopped(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.stopped)

    @property
    def failures(self) -> list[str]:
        return [outcome.name for outcome in self.outcomes if not outcome.stopped]

    def as_tuple(self) -> tuple[int, int]:
        return (self.stopped, self.attempted)


class CleanupEngine:
    """Stop every recorded resource, then forget the session."""

    def __init__(self, strategies: Sequence[CleanupStrategy]) -> None:
        self._strategies = list(strategies)

    @classmethod
    def default(
        cls,
        runner: ToolRunner | None = None,
        signaller: Signaller | None = None,
        *,
        grace: float = 1.0,
    ) -> "CleanupEngine":
        return cls(default_strategies(runner or ToolRunner(), signaller, grace=grace))

    @property
    def strategies(self) -> list[CleanupStrategy]:
        return list(self._strategies)

    async def stop_entry(self, entry: SessionEntry) -> StopOutcome:
        """Try each strategy in order and stop at the first success."""

        for strategy in self._strategies:
            try:
                stopped = await strategy.attempt(entry)
            except (OSError, ToolError) as exc:
                logger.warning(
                    "Cleanup strategy %s failed for %s: %s", strategy.name, entry.name, exc
                )
                continue
            if stopped:
                logger.info(
                    "Stopped resource",
                    extra={"resource": entry.name, "pid": entry.pid, "strategy": strategy.name},
                )
                return StopOutcome(name=entry.name, pid=entry.pid, strategy=strategy.name)

        logger.warning("Could not stop %s (no reliable method found)", entry.name or "unknown")
        return StopOutcome(name=entry.name, pid=entry.pid, strategy=None)

    async def stop_all(self, session: SessionStore | Path) -> StopReport:
        """Stop all entries of ``store`` and delete the session unconditionally.

        A missing or corrupt session is an empty session.
        """

        store = session if isinstance(session, SessionStore) else SessionStore(session)
        report = StopReport()
        try:
            try:
                entries = store.read()
            except SessionNotFoundError:
                logger.info("No active session", extra={"session_file": str(store.path)})
                entries = []
            except SessionCorruptError:
                entries = []

            for entry in entries:
                report.outcomes.append(await self.stop_entry(entry))
        finally:
            store.delete()

        logger.info(
            "Cleanup complete",
            extra={"stopped": report.stopped, "attempted": report.attempted},
        )
        return report


__all__ = ["CleanupEngine", "StopOutcome", "StopReport"]
