"""Manifest models, discovery and command rendering."""

from .loader import MANIFEST_NAME, ManifestError, ManifestLoader, Project
from .models import Manifest, Resource
from .render import expand_relative_paths, prepare_resources, render_template

__all__ = [
    "MANIFEST_NAME",
    "Manifest",
    "ManifestError",
    "ManifestLoader",
    "Project",
    "Resource",
    "expand_relative_paths",
    "prepare_resources",
    "render_template",
]
