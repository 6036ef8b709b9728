"""Manifest models for workon project definitions."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Resource(BaseModel):
    """A named launch directive taken from the manifest."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Stable identifier used by layouts and session entries.")
    cmd: str = Field(..., description="Shell-ready command line.")


class Manifest(BaseModel):
    """Parsed ``workon.yaml`` document."""

    model_config = ConfigDict(extra="ignore")

    resources: dict[str, str] = Field(
        ...,
        description="Ordered mapping of resource name to command template.",
    )
    layouts: dict[str, Any] | None = Field(
        default=None,
        description="Named layouts; each is an ordered list of resource groups, one per tag.",
    )
    default_layout: str | None = Field(
        default=None,
        description="Layout used when none is requested explicitly.",
    )

    @field_validator("resources", mode="before")
    @classmethod
    def _coerce_resources(cls, value: Any):
        if value is None:
            raise ValueError("No resources defined in manifest")
        if not isinstance(value, dict):
            raise ValueError("'resources' must be a mapping of name to command")
        if not value:
            raise ValueError("No resources defined in manifest")
        coerced: dict[str, str] = {}
        for name, command in value.items():
            if command is None:
                raise ValueError(f"Resource '{name}' has no command")
            coerced[str(name)] = str(command)
        return coerced

    @field_validator("default_layout", mode="before")
    @classmethod
    def _blank_default(cls, value: Any):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return str(value)

    @property
    def resource_names(self) -> list[str]:
        return list(self.resources)

    def resource_list(self) -> list[Resource]:
        """Return resources in manifest order."""

        return [Resource(name=name, cmd=cmd) for name, cmd in self.resources.items()]


__all__ = ["Manifest", "Resource"]
