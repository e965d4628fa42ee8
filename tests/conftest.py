"""Shared fixtures."""

import pytest

from musicmatch.config.settings import SpotifySettings
from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.persistence.key_value_store import InMemoryKeyValueStore


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def credentials(store: InMemoryKeyValueStore) -> CredentialStore:
    """Credential store over the in-memory store (no tokens yet)."""
    return CredentialStore(store)


@pytest.fixture
def spotify_settings() -> SpotifySettings:
    """Spotify settings without pacing delay so tests stay fast."""
    return SpotifySettings(
        api_base_url="https://api.test/v1",
        min_delay_seconds=0,
        max_parallel=3,
        page_size=50,
    )
