"""Testing utilities for exercising agents without real processes."""

from .fakes import FakeBackend, FakeProxy

__all__ = ["FakeBackend", "FakeProxy"]
