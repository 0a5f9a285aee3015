"""Utility modules for the proxy agent harness."""

from .ports import FreePortAllocator, PortAllocator, find_free_port

__all__ = ["FreePortAllocator", "PortAllocator", "find_free_port"]
