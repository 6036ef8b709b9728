"""Async runner for the external desktop tools workon depends on."""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

DEFAULT_TIMEOUT = 10.0


class ToolError(RuntimeError):
    """Base class for external tool errors."""


class ToolNotFoundError(ToolError):
    """Raised when an external tool cannot be located."""


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external tool invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def lines(self) -> list[str]:
        return [line.strip() for line in self.stdout.splitlines() if line.strip()]


class ToolRunner:
    """Locate and execute external tools asynchronously."""

    def __init__(
        self,
        overrides: Mapping[str, str | Path | None] | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._overrides = {name: Path(path) for name, path in (overrides or {}).items() if path}
        self._timeout = timeout

    def resolve(self, tool: str) -> Path | None:
        explicit = self._overrides.get(tool)
        if explicit is not None:
            return explicit if explicit.is_file() else None
        binary = shutil.which(tool)
        return Path(binary) if binary else None

    def available(self, tool: str) -> bool:
        return self.resolve(tool) is not None

    async def run(self, tool: str, *args: str) -> CommandResult:
        executable = self.resolve(tool)
        if executable is None:
            raise ToolNotFoundError(f"{tool} executable not found")
        return await self._invoke(str(executable), *args)

    async def _invoke(self, *cmd: str) -> CommandResult:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(
                args=tuple(cmd),
                returncode=-9,
                stdout="",
                stderr=f"timed out after {self._timeout}s",
            )
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


Responder = Callable[[tuple[str, ...]], CommandResult]


class FakeToolRunner(ToolRunner):
    """Test double that simulates external tools."""

    def __init__(  # type: ignore[override]
        self,
        tools: Iterable[str] = (),
        responder: Responder | None = None,
    ) -> None:
        self._tools = set(tools)
        self._responder = responder
        self._invocations: list[tuple[str, ...]] = []

    def resolve(self, tool: str) -> Path | None:  # type: ignore[override]
        return Path(f"/usr/bin/{tool}") if tool in self._tools else None

    async def run(self, tool: str, *args: str) -> CommandResult:  # type: ignore[override]
        if tool not in self._tools:
            raise ToolNotFoundError(f"{tool} executable not found")
        invocation = (tool, *args)
        self._invocations.append(invocation)
        if self._responder is not None:
            return self._responder(invocation)
        return CommandResult(args=invocation, returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "CommandResult",
    "FakeToolRunner",
    "ToolError",
    "ToolNotFoundError",
    "ToolRunner",
    "sanitize_environment",
]
