"""Shared models."""

from metricgraph.core.models.base import Result

__all__ = ["Result"]
