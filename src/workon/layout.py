"""Layout resolution: named layouts to validated tag groups."""

from __future__ import annotations

import logging
from typing import Any

from .manifest import Manifest

logger = logging.getLogger(__name__)

MAX_TAGS = 9

Layout = list[list[str]]


class LayoutError(ValueError):
    """Base class for structural layout errors."""

    def __init__(self, layout_name: str, message: str) -> None:
        super().__init__(message)
        self.layout_name = layout_name


class LayoutNotFoundError(LayoutError):
    """The requested layout is not declared in the manifest."""


class LayoutStructureError(LayoutError):
    """The layout value is not an array of resource groups."""


class LayoutTooLargeError(LayoutError):
    """The layout has more groups than the window manager has tags."""


class UnknownLayoutResourceError(LayoutError):
    """A layout group references a resource the manifest does not define."""

    def __init__(self, layout_name: str, resource: str) -> None:
        super().__init__(
            layout_name,
            f"Layout '{layout_name}' references undefined resource: '{resource}'",
        )
        self.resource = resource


class DuplicateLayoutResourceError(LayoutError):
    """A resource is placed on more than one tag."""

    def __init__(self, layout_name: str, resource: str, tags: tuple[int, int]) -> None:
        super().__init__(
            layout_name,
            f"Layout '{layout_name}' places resource '{resource}' on tags {tags[0]} and {tags[1]}; "
            "a resource may appear in only one group",
        )
        self.resource = resource
        self.tags = tags


def _coerce_rows(layout_name: str, value: Any) -> Layout:
    if not isinstance(value, list):
        raise LayoutStructureError(
            layout_name, f"Layout '{layout_name}' must be an array of resource groups"
        )
    rows: Layout = []
    for index, row in enumerate(value, start=1):
        if row is None:
            rows.append([])
            continue
        if isinstance(row, str):
            row = [row]
        if not isinstance(row, list) or not all(isinstance(item, str) for item in row):
            raise LayoutStructureError(
                layout_name,
                f"Layout '{layout_name}' group {index} must be an array of resource names",
            )
        rows.append(list(row))
    return rows


def resolve_layout(manifest: Manifest, layout_name: str | None = None) -> Layout | None:
    """Return the validated tag groups for ``layout_name``.

    ``None`` means "spawn every resource untagged": the manifest declares no
    layouts, or no layout was requested and there is no default. All checks
    run before anything is spawned.
    """

    if manifest.layouts is None:
        if layout_name:
            raise LayoutNotFoundError(layout_name, f"Layout '{layout_name}' not found in manifest")
        return None

    name = layout_name or manifest.default_layout
    if not name:
        return None

    if name not in manifest.layouts:
        raise LayoutNotFoundError(name, f"Layout '{name}' not found in manifest")

    rows = _coerce_rows(name, manifest.layouts[name])

    if len(rows) > MAX_TAGS:
        raise LayoutTooLargeError(
            name,
            f"Layout '{name}' has {len(rows)} rows, but maximum is {MAX_TAGS} (AwesomeWM tag limit)",
        )

    known = set(manifest.resources)
    for row in rows:
        for resource in row:
            if resource not in known:
                raise UnknownLayoutResourceError(name, resource)

    placed: dict[str, int] = {}
    for tag, row in enumerate(rows, start=1):
        for resource in row:
            if resource in placed:
                raise DuplicateLayoutResourceError(name, resource, (placed[resource], tag))
            placed[resource] = tag

    logger.debug("Resolved layout", extra={"layout": name, "rows": len(rows)})
    return rows


def tag_assignments(layout: Layout | None) -> dict[str, int]:
    """Map each resource name to its 1-based tag index."""

    if not layout:
        return {}
    return {resource: tag for tag, row in enumerate(layout, start=1) for resource in row}


__all__ = [
    "DuplicateLayoutResourceError",
    "Layout",
    "LayoutError",
    "LayoutNotFoundError",
    "LayoutStructureError",
    "LayoutTooLargeError",
    "MAX_TAGS",
    "UnknownLayoutResourceError",
    "resolve_layout",
    "tag_assignments",
]
