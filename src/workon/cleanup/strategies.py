"""Cascading termination strategies for session entries."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from ..session import SessionEntry
from ..tools import ToolRunner
from .signals import Signaller

logger = logging.getLogger(__name__)

# Terminal emulators host unrelated shells; a class-wide close would kill them all.
TERMINAL_CLASSES = frozenset(
    {
        "alacritty",
        "kitty",
        "xterm",
        "uxterm",
        "urxvt",
        "rxvt",
        "gnome-terminal",
        "gnome-terminal-server",
        "konsole",
        "xfce4-terminal",
        "terminator",
        "tilix",
        "st",
        "st-256color",
        "foot",
        "wezterm",
        "org.wezfurlong.wezterm",
        "lxterminal",
        "sakura",
        "terminology",
        "qterminal",
    }
)

_ERE_SPECIAL = set(".[]()*+?{}|^$\\")


def is_terminal_class(value: str) -> bool:
    return value.strip().lower() in TERMINAL_CLASSES


def is_terminal_entry(entry: SessionEntry) -> bool:
    return is_terminal_class(entry.window_class) or is_terminal_class(entry.instance)


def exact_pattern(value: str) -> str:
    """Anchored POSIX extended regex matching ``value`` literally."""

    escaped = "".join(f"\\{char}" if char in _ERE_SPECIAL else char for char in value)
    return f"^{escaped}$"


class CleanupStrategy(ABC):
    """One way of terminating the process or windows behind an entry."""

    name: str = "strategy"

    @abstractmethod
    async def attempt(self, entry: SessionEntry) -> bool:
        """Return True when the entry was stopped."""


class PidStrategy(CleanupStrategy):
    """SIGTERM the recorded pid, then SIGKILL it after a grace period."""

    name = "pid"

    def __init__(
        self,
        signaller: Signaller | None = None,
        *,
        grace: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._signaller = signaller or Signaller()
        self._grace = grace
        self._sleep = sleep or asyncio.sleep

    async def attempt(self, entry: SessionEntry) -> bool:
        pid = entry.pid
        if pid <= 0 or not self._signaller.alive(pid):
            logger.debug("Process not running or invalid pid", extra={"resource": entry.name, "pid": pid})
            return False

        if not self._signaller.terminate(pid):
            return False

        await self._sleep(self._grace)
        if self._signaller.alive(pid):
            logger.warning("Process %s still running, force killing", pid)
            self._signaller.kill(pid)
        return True


class WindowStrategy(CleanupStrategy):
    """Base for strategies that close windows through an external tool.

    Strategies flagged ``broad`` match windows by class or instance rather
    than by a concrete window or process, and are refused for terminal
    emulator classes before any tool runs.
    """

    tool = "xdotool"
    broad = False

    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner

    async def attempt(self, entry: SessionEntry) -> bool:
        if self.broad and is_terminal_entry(entry):
            logger.warning(
                "Skipping %s cleanup for terminal class '%s' to avoid closing unrelated windows",
                self.name,
                entry.window_class or entry.instance,
            )
            return False
        if not self.applicable(entry):
            return False
        if not self._runner.available(self.tool):
            logger.debug("%s not available, skipping %s cleanup", self.tool, self.name)
            return False
        return await self._close(entry)

    @abstractmethod
    def applicable(self, entry: SessionEntry) -> bool:
        ...

    @abstractmethod
    async def _close(self, entry: SessionEntry) -> bool:
        ...

    async def _close_windows(self, window_ids: list[str]) -> bool:
        closed = False
        for window_id in window_ids:
            result = await self._runner.run("xdotool", "windowclose", window_id)
            if result.ok:
                closed = True
            else:
                logger.debug("Failed to close window", extra={"window_id": window_id, "stderr": result.stderr.strip()})
        return closed

    async def _search(self, *criteria: str) -> list[str]:
        result = await self._runner.run("xdotool", "search", *criteria)
        return result.lines if result.ok else []


class WindowIdStrategy(WindowStrategy):
    """Close the exact window recorded by the client callback."""

    name = "window_id"

    def applicable(self, entry: SessionEntry) -> bool:
        return bool(entry.window_id)

    async def _close(self, entry: SessionEntry) -> bool:
        return await self._close_windows([entry.window_id])


class PidWindowSearchStrategy(WindowStrategy):
    """Close the windows owned by the recorded pid."""

    name = "pid_window_search"

    def applicable(self, entry: SessionEntry) -> bool:
        return entry.pid > 0

    async def _close(self, entry: SessionEntry) -> bool:
        window_ids = await self._search("--pid", str(entry.pid))
        if not window_ids:
            logger.debug("No windows found for pid", extra={"pid": entry.pid})
            return False
        return await self._close_windows(window_ids)


class ClassSearchStrategy(WindowStrategy):
    """Close windows whose WM_CLASS class or instance matches exactly."""

    name = "class_search"
    broad = True

    def applicable(self, entry: SessionEntry) -> bool:
        return bool(entry.window_class or entry.instance)

    async def _close(self, entry: SessionEntry) -> bool:
        if entry.window_class:
            window_ids = await self._search("--class", exact_pattern(entry.window_class))
            if window_ids and await self._close_windows(window_ids):
                return True
        if entry.instance:
            window_ids = await self._search("--classname", exact_pattern(entry.instance))
            if window_ids and await self._close_windows(window_ids):
                return True
        return False


def _wm_class_matches(wm_class: str, entry: SessionEntry) -> bool:
    """Exact match of a ``wmctrl -l -x`` ``instance.Class`` field against ``entry``."""

    suffix = f".{entry.window_class}"
    if not wm_class.endswith(suffix):
        return False
    instance = wm_class[: -len(suffix)]
    if not instance or is_terminal_class(instance):
        return False
    return not entry.instance or instance == entry.instance


class WmctrlClassStrategy(WindowStrategy):
    """Window-manager level fallback through ``wmctrl``.

    ``wmctrl -c`` matches substrings, so windows are listed with
    ``wmctrl -l -x`` and closed one by one by id after an exact class match.
    """

    name = "wmctrl_class"
    tool = "wmctrl"
    broad = True

    def applicable(self, entry: SessionEntry) -> bool:
        return bool(entry.window_class)

    async def _close(self, entry: SessionEntry) -> bool:
        listing = await self._runner.run("wmctrl", "-l", "-x")
        if not listing.ok:
            return False

        window_ids = []
        for line in listing.lines:
            fields = line.split(None, 3)
            if len(fields) >= 3 and _wm_class_matches(fields[2], entry):
                window_ids.append(fields[0])
        if not window_ids:
            logger.debug("No windows matched class", extra={"window_class": entry.window_class})
            return False

        closed = False
        for window_id in window_ids:
            result = await self._runner.run("wmctrl", "-i", "-c", window_id)
            closed = result.ok or closed
        return closed


def default_strategies(
    runner: ToolRunner,
    signaller: Signaller | None = None,
    *,
    grace: float = 1.0,
) -> list[CleanupStrategy]:
    """Strategies in cascade order, most precise first."""

    return [
        PidStrategy(signaller, grace=grace),
        WindowIdStrategy(runner),
        PidWindowSearchStrategy(runner),
        ClassSearchStrategy(runner),
        WmctrlClassStrategy(runner),
    ]


__all__ = [
    "CleanupStrategy",
    "ClassSearchStrategy",
    "PidStrategy",
    "PidWindowSearchStrategy",
    "TERMINAL_CLASSES",
    "WindowIdStrategy",
    "WindowStrategy",
    "WmctrlClassStrategy",
    "default_strategies",
    "exact_pattern",
    "is_terminal_entry",
]
