"""Cleanup engine and termination strategies."""

from .engine import CleanupEngine, StopOutcome, StopReport
from .signals import Signaller
from .strategies import (
    TERMINAL_CLASSES,
    CleanupStrategy,
    ClassSearchStrategy,
    PidStrategy,
    PidWindowSearchStrategy,
    WindowIdStrategy,
    WindowStrategy,
    WmctrlClassStrategy,
    default_strategies,
)

__all__ = [
    "CleanupEngine",
    "CleanupStrategy",
    "ClassSearchStrategy",
    "PidStrategy",
    "PidWindowSearchStrategy",
    "Signaller",
    "StopOutcome",
    "StopReport",
    "TERMINAL_CLASSES",
    "WindowIdStrategy",
    "WindowStrategy",
    "WmctrlClassStrategy",
    "default_strategies",
]
