"""Spawn primitive adapter and orchestration."""

from .awesome import AwesomeClientNotFoundError, AwesomeSpawner, SpawnError
from .models import SpawnBatch, SpawnRequest
from .orchestrator import LaunchReport, SpawnOrchestrator

__all__ = [
    "AwesomeClientNotFoundError",
    "AwesomeSpawner",
    "LaunchReport",
    "SpawnBatch",
    "SpawnError",
    "SpawnOrchestrator",
    "SpawnRequest",
]
