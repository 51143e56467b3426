"""Adapters for the persistence backend and the offline queue."""

__all__ = [
    "CollectionGateway",
    "SqlAlchemyCollectionGateway",
    "OfflineActionStore",
    "InMemoryActionStore",
    "JsonFileActionStore",
]

from .action_store import InMemoryActionStore, JsonFileActionStore, OfflineActionStore
from .gateway import CollectionGateway, SqlAlchemyCollectionGateway
