"""
Core package initialisation for blemirror.

Kept lightweight: configuration, logging, errors and constants only.
"""

from blemirror.core.errors import (
    BlemirrorError,
    BestEffortResult,
    DeviceNotFoundError,
)

__all__ = [
    "BlemirrorError",
    "BestEffortResult",
    "DeviceNotFoundError",
]
