"""Utility exports."""

from nodekb.utils.cache import Clock, TTLCache

__all__ = ["Clock", "TTLCache"]
