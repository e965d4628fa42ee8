"""Repositories persisting snapshots and session state in the key-value store.

Hey future me – the store only knows strings, so everything goes through pydantic TypeAdapters
(they validate AND (de)serialise our plain dataclasses). Corrupt or outdated JSON must NEVER
crash a session: we log it and fall back to empty defaults.
"""

import logging
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError

from musicmatch.domain.entities import Artist, ComparisonState, Track
from musicmatch.domain.ports import IKeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

FIRST_USER_SONGS_KEY = "firstUserSongs"
FIRST_USER_ARTISTS_KEY = "firstUserArtists"
APP_STATE_KEY = "appState"

_TRANSIENT_STATE_FIELDS = {"is_loading", "progress", "error"}

_tracks_adapter = TypeAdapter(list[Track])
_artists_adapter = TypeAdapter(list[Artist])
_state_adapter = TypeAdapter(ComparisonState)


class SnapshotRepository:
    """The first user's tracks and artists, kept until the second user is done."""

    def __init__(self, store: IKeyValueStore) -> None:
        self._store = store

    def save_first_user(self, tracks: list[Track], artists: list[Artist]) -> None:
        """Persist the first user's transformed tracks and merged artists."""
        self._store.set(FIRST_USER_SONGS_KEY, _tracks_adapter.dump_json(tracks).decode())
        self._store.set(FIRST_USER_ARTISTS_KEY, _artists_adapter.dump_json(artists).decode())
        logger.debug(
            "Saved first-user snapshot (%d tracks, %d artists)", len(tracks), len(artists)
        )

    def load_first_user(self) -> tuple[list[Track], list[Artist]]:
        """Load the first user's snapshot.

        Returns:
            (tracks, artists); each list is empty when missing or malformed
        """
        tracks = self._load(FIRST_USER_SONGS_KEY, _tracks_adapter)
        artists = self._load(FIRST_USER_ARTISTS_KEY, _artists_adapter)
        return tracks, artists

    def has_first_user(self) -> bool:
        """True if a first-user snapshot is stored."""
        return self._store.get(FIRST_USER_SONGS_KEY) is not None

    def delete_first_user(self) -> None:
        """Remove the first user's snapshot."""
        self._store.delete(FIRST_USER_SONGS_KEY)
        self._store.delete(FIRST_USER_ARTISTS_KEY)

    def _load(self, key: str, adapter: TypeAdapter[list[T]]) -> list[T]:
        raw = self._store.get(key)
        if raw is None:
            return []
        try:
            return adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed %s in store: %s", key, e.errors()[:1])
            return []


class AppStateRepository:
    """The serialised overall comparison state (profiles, step, results)."""

    def __init__(self, store: IKeyValueStore) -> None:
        self._store = store

    def save(self, state: ComparisonState) -> None:
        """Persist the non-transient part of the state."""
        payload = _state_adapter.dump_json(state, exclude=_TRANSIENT_STATE_FIELDS)
        self._store.set(APP_STATE_KEY, payload.decode())

    def load(self) -> ComparisonState | None:
        """Load the persisted state.

        Returns:
            The restored state, or None when missing or malformed
        """
        raw = self._store.get(APP_STATE_KEY)
        if raw is None:
            return None
        try:
            return _state_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("Error loading saved state, using defaults: %s", e.errors()[:1])
            return None

    def delete(self) -> None:
        """Remove the persisted state."""
        self._store.delete(APP_STATE_KEY)


__all__ = [
    "APP_STATE_KEY",
    "AppStateRepository",
    "FIRST_USER_ARTISTS_KEY",
    "FIRST_USER_SONGS_KEY",
    "SnapshotRepository",
]
