"""Shared service-layer exceptions."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for composition engine failures."""


class InvalidFeatureVector(EngineError, ValueError):
    """Structural precondition on a feature vector was violated."""
