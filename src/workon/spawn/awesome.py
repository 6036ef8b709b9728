"""AwesomeWM spawn primitive driven through ``awesome-client``."""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from ..tools import CommandResult, ToolNotFoundError, ToolRunner
from .models import SpawnBatch, SpawnRequest

logger = logging.getLogger(__name__)

AWESOME_CLIENT = "awesome-client"


class SpawnError(RuntimeError):
    """Raised when a spawn batch cannot be handed to the window manager."""


class AwesomeClientNotFoundError(SpawnError):
    """Raised when ``awesome-client`` is not installed."""


def lua_string(value: str) -> str:
    """Quote ``value`` as a Lua string literal."""

    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\0", "\\0")
    )
    return f'"{escaped}"'


def lua_list(values: Sequence[str]) -> str:
    return "{" + ", ".join(lua_string(value) for value in values) + "}"


def default_record_command() -> list[str]:
    return [sys.executable, "-m", "workon", "record"]


_PRELUDE = """\
local awful = require("awful")
local record_cmd = {record_cmd}

local function record(fields)
    local argv = {{}}
    for _, part in ipairs(record_cmd) do argv[#argv + 1] = part end
    for _, part in ipairs(fields) do argv[#argv + 1] = part end
    awful.spawn(argv, false)
end

local function target_tag(index)
    if not index then return nil end
    local s = awful.screen.focused()
    if not s then return nil end
    return s.tags[index]
end

local function spawn_resource(name, cmd, tag_index)
    local tag = target_tag(tag_index)
    local props = {{}}
    if tag then props.tag = tag end
    local ok, pid = pcall(awful.spawn, cmd, props, function(c)
        record({{
            "--name", name, "--cmd", cmd,
            "--pid", tostring(c.pid or 0),
            "--window-id", tostring(c.window or ""),
            "--class", c.class or "",
            "--instance", c.instance or "",
            "--name-prop", c.name or "",
        }})
        if tag and c.first_tag ~= tag then
            c:move_to_tag(tag)
        end
    end)
    if not ok or type(pid) ~= "number" then
        io.stderr:write("workon: failed to spawn " .. name .. ": " .. tostring(pid) .. "\\n")
        return false
    end
    record({{"--name", name, "--cmd", cmd, "--pid", tostring(pid), "--immediate"}})
    return true
end

local spawned = 0
"""

_EPILOGUE = """\
return "spawned " .. spawned .. "/{total}"
"""


class AwesomeSpawner:
    """Submit spawn batches to AwesomeWM as a single Lua program."""

    def __init__(
        self,
        runner: ToolRunner | None = None,
        *,
        record_command: Sequence[str] | None = None,
    ) -> None:
        self._runner = runner or ToolRunner()
        self._record_command = list(record_command or default_record_command())

    @property
    def available(self) -> bool:
        return self._runner.available(AWESOME_CLIENT)

    def render(self, batch: SpawnBatch) -> str:
        """Render the Lua program that spawns and records every resource."""

        record_cmd = [*self._record_command, "--session-file", str(batch.session_file)]
        lines = [_PRELUDE.format(record_cmd=lua_list(record_cmd))]
        for request in batch.requests():
            lines.append(self._render_request(request))
        lines.append(_EPILOGUE.format(total=len(batch)))
        return "\n".join(lines)

    @staticmethod
    def _render_request(request: SpawnRequest) -> str:
        tag = "nil" if request.tag is None else str(request.tag)
        return (
            f"if spawn_resource({lua_string(request.name)}, {lua_string(request.cmd)}, {tag}) then "
            "spawned = spawned + 1 end"
        )

    async def submit(self, batch: SpawnBatch) -> CommandResult:
        """Execute the batch inside the window manager."""

        program = self.render(batch)
        try:
            result = await self._runner.run(AWESOME_CLIENT, program)
        except ToolNotFoundError as exc:
            raise AwesomeClientNotFoundError(str(exc)) from exc

        if not result.ok:
            raise SpawnError(
                f"awesome-client failed (exit code: {result.returncode}): {result.stderr.strip()}"
            )
        if result.stderr.strip():
            logger.warning("awesome-client reported: %s", result.stderr.strip())
        logger.info("Spawn batch submitted", extra={"resources": len(batch), "output": result.stdout.strip()})
        return result

    async def ping(self) -> bool:
        """Check that ``awesome-client`` can reach the running window manager."""

        try:
            result = await self._runner.run(AWESOME_CLIENT, 'return "connectivity-test"')
        except ToolNotFoundError:
            return False
        return result.ok and "connectivity-test" in result.stdout


__all__ = [
    "AWESOME_CLIENT",
    "AwesomeClientNotFoundError",
    "AwesomeSpawner",
    "SpawnError",
    "default_record_command",
    "lua_list",
    "lua_string",
]
