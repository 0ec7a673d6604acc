"""Primitives: resource identifiers, ID generation."""

from __future__ import annotations

from .id_generator import IIDGenerator, UUID4Generator
from .locking import ResourceIdentifier

__all__ = [
    "IIDGenerator",
    "ResourceIdentifier",
    "UUID4Generator",
]
