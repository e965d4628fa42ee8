"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

ProgressCallback = Callable[[float], None]


# Hey future me, IKeyValueStore is a PORT! It's the flat string-keyed store that used to be
# the browser's localStorage. Values are always strings (callers serialise JSON themselves).
# Implementations live in infrastructure/persistence/key_value_store.py; tests use the
# in-memory one. If you change this interface, ALL implementations must change too!
class IKeyValueStore(ABC):
    """Flat string-keyed store for credentials, snapshots and UI state."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get the value stored under key, or None if missing."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, overwriting any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key.

        Returns:
            True if the key existed, False otherwise
        """
        pass


class ISpotifyLibraryClient(ABC):
    """The four library operations the comparison engine needs.

    All methods return RAW Spotify JSON (dicts). Mapping to domain entities is
    the application layer's job.
    """

    @abstractmethod
    async def get_current_user(self) -> dict[str, Any]:
        """Get the current user's profile (``/me``)."""
        pass

    @abstractmethod
    async def get_all_liked_songs(
        self, on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """Get every saved-track entry of the current user.

        Args:
            on_progress: Receives fractional progress in [0, 100]
        """
        pass

    @abstractmethod
    async def get_top_artists(self, limit: int = 50) -> list[dict[str, Any]]:
        """Get the user's top artists (empty if the scope was not granted)."""
        pass

    @abstractmethod
    async def get_followed_artists(self) -> list[dict[str, Any]]:
        """Get the artists the user follows (empty if the scope was not granted)."""
        pass


__all__ = ["IKeyValueStore", "ISpotifyLibraryClient", "ProgressCallback"]
