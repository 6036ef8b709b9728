"""Spawn request batch passed to the window manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..layout import Layout, tag_assignments
from ..manifest import Resource


@dataclass(slots=True, frozen=True)
class SpawnRequest:
    """One resource to spawn, with its tag when a layout assigns one."""

    name: str
    cmd: str
    tag: int | None = None


@dataclass(slots=True)
class SpawnBatch:
    """All resources of one ``start`` invocation, submitted as a single request."""

    session_file: Path
    resources: list[Resource]
    layout: Layout | None = None
    _tags: dict[str, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._tags = tag_assignments(self.layout)

    def __len__(self) -> int:
        return len(self.resources)

    def requests(self) -> list[SpawnRequest]:
        """Spawn requests in manifest order; unplaced resources carry no tag."""

        return [
            SpawnRequest(name=resource.name, cmd=resource.cmd, tag=self._tags.get(resource.name))
            for resource in self.resources
        ]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "session_file": str(self.session_file),
            "resources": [{"name": resource.name, "cmd": resource.cmd} for resource in self.resources],
        }
        if self.layout:
            payload["layout"] = [list(group) for group in self.layout]
        return payload


__all__ = ["SpawnBatch", "SpawnRequest"]
