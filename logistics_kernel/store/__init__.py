"""Entity store capability surface and its adapters."""

from logistics_kernel.store.base import Entity, EntityStore, Record
from logistics_kernel.store.memory import InMemoryEntityStore
from logistics_kernel.store.sql import SqlEntityStore

__all__ = [
    "Entity",
    "EntityStore",
    "InMemoryEntityStore",
    "Record",
    "SqlEntityStore",
]
