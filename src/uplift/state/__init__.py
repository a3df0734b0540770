"""State repositories for persisted engine state."""

from uplift.state.base import StateRepository
from uplift.state.json_backend import JsonStateRepository
from uplift.state.memory import InMemoryStateRepository

__all__ = ["InMemoryStateRepository", "JsonStateRepository", "StateRepository"]
