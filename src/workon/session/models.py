"""Session entry model persisted in the session file."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMMEDIATE_PID = "immediate_pid"
CLIENT_CALLBACK = "client_callback"

_WINDOW_FIELDS = ("window_id", "window_class", "instance", "name_prop")


class SessionEntry(BaseModel):
    """Record of one spawned resource instance."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    cmd: str = ""
    pid: int = 0
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    window_id: str = ""
    window_class: str = Field(default="", alias="class")
    instance: str = ""
    name_prop: str = ""
    tracking_method: str | None = None

    @field_validator("pid", mode="before")
    @classmethod
    def _coerce_pid(cls, value: Any):
        if value is None or value == "":
            return 0
        return value

    @field_validator("window_id", "window_class", "instance", "name_prop", "cmd", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any):
        if value is None:
            return ""
        return str(value)

    @property
    def key(self) -> tuple[str, int]:
        return (self.name, self.pid)

    @property
    def has_window(self) -> bool:
        return any(getattr(self, field) for field in _WINDOW_FIELDS)

    def merged(self, update: "SessionEntry") -> "SessionEntry":
        """Combine two records of the same process.

        Non-empty values from ``update`` win, but window metadata already
        recorded is never erased, and the earliest timestamp is kept.
        """

        data = self.model_dump()
        for field, value in update.model_dump().items():
            if field == "timestamp":
                continue
            if value not in ("", 0, None):
                data[field] = value
        if self.timestamp and update.timestamp:
            data["timestamp"] = min(self.timestamp, update.timestamp)
        merged = SessionEntry.model_validate(data)
        if merged.has_window:
            merged.tracking_method = CLIENT_CALLBACK
        return merged

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = ["CLIENT_CALLBACK", "IMMEDIATE_PID", "SessionEntry"]
