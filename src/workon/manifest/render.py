"""Command rendering: template variables and relative path expansion."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
from pathlib import Path
from typing import Iterable, Mapping

from .models import Resource

logger = logging.getLogger(__name__)

_TEMPLATE = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}\}")
_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def render_template(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Expand ``{{VAR}}`` and ``{{VAR:-default}}`` from the environment.

    Unset variables render as an empty string; the default applies when the
    variable is unset or empty.
    """

    env = os.environ if environ is None else environ

    def _substitute(match: re.Match[str]) -> str:
        value = env.get(match.group(1), "")
        if not value and match.group(2) is not None:
            return match.group(2)
        return value

    return _TEMPLATE.sub(_substitute, text)


def template_variables(text: str) -> list[str]:
    """Return the distinct variable names referenced by ``text``, sorted."""

    return sorted({match.group(1) for match in _TEMPLATE.finditer(text)})


def _looks_like_path(word: str, base: Path) -> bool:
    return "/" in word or (base / word).exists()


def _absolute(word: str, base: Path) -> str:
    return os.path.realpath(base / word)


def expand_word(word: str, base: Path) -> str:
    """Expand a single command word to an absolute path when it names one."""

    if _URL.match(word) or word.startswith("/") or word.startswith("-") or word == ".":
        return word
    if shutil.which(word) is not None:
        return word

    if "=@" in word:
        prefix, suffix = word.split("=@", 1)
        if _looks_like_path(suffix, base):
            return f"{prefix}=@{_absolute(suffix, base)}"
    elif "=" in word:
        prefix, suffix = word.split("=", 1)
        if _looks_like_path(suffix, base):
            return f"{prefix}={_absolute(suffix, base)}"

    if _looks_like_path(word, base):
        return _absolute(word, base)
    return word


def expand_relative_paths(command: str, base: Path) -> str:
    """Rewrite relative path arguments of ``command`` against ``base``."""

    try:
        words = shlex.split(command)
    except ValueError as exc:
        logger.warning("Cannot tokenize command, leaving it unchanged", extra={"cmd": command, "error": str(exc)})
        return command
    return " ".join(shlex.quote(expand_word(word, base)) for word in words)


def prepare_resources(
    resources: Iterable[Resource],
    base: Path,
    *,
    launcher: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Resource]:
    """Render templates and expand paths for every resource."""

    env = os.environ if environ is None else environ
    prepared: list[Resource] = []
    for resource in resources:
        unset = [name for name in template_variables(resource.cmd) if not env.get(name)]
        if unset:
            logger.info(
                "Template variables unset, using defaults or empty values",
                extra={"resource": resource.name, "variables": unset},
            )
        rendered = render_template(resource.cmd, env)
        expanded = expand_relative_paths(rendered, base)
        final = f"{launcher} {expanded}" if launcher else expanded
        if final != resource.cmd:
            logger.debug(
                "Prepared resource command",
                extra={"resource": resource.name, "raw": resource.cmd, "cmd": final},
            )
        prepared.append(Resource(name=resource.name, cmd=final))
    return prepared


__all__ = [
    "expand_relative_paths",
    "expand_word",
    "prepare_resources",
    "render_template",
    "template_variables",
]
