"""Degradation level management."""

from .controller import DegradationController

__all__ = ["DegradationController"]
