"""Read-only confidence surface for the editor layer."""

from codetrust.surface.field import ConfidenceField

__all__ = ["ConfidenceField"]
