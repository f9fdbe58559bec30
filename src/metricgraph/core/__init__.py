"""Core module - configuration, logging, and shared models."""

from metricgraph.core.config import Settings, get_settings
from metricgraph.core.models.base import Result

__all__ = [
    "Result",
    "Settings",
    "get_settings",
]
