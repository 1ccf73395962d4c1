"""Adapters - concrete implementations of the core's remote interfaces."""

from .cache import RunCache
from .memory import InMemoryAuthorizationService

__all__ = ["InMemoryAuthorizationService", "RunCache"]
