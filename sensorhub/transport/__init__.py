"""Broker transport."""

from .mqtt import ConnectionManager

__all__ = ["ConnectionManager"]
