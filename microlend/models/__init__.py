"""Domain models for the lending back office."""

from microlend.models.base import Event

__all__ = ["Event"]
