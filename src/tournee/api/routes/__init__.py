"""Route group exports."""

from . import carrier, health, optimization, tournees

__all__ = ["carrier", "health", "optimization", "tournees"]
