"""Shared helpers."""

from .best_effort import best_effort

__all__ = ["best_effort"]
