"""Persistence adapters for the key-value store port."""

from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.persistence.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from musicmatch.infrastructure.persistence.repositories import (
    AppStateRepository,
    SnapshotRepository,
)

__all__ = [
    "AppStateRepository",
    "CredentialStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SnapshotRepository",
]
