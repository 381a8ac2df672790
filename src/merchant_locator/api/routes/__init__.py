"""Route group exports."""

from . import health, merchants

__all__ = ["health", "merchants"]
