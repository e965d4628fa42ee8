"""Domain entities.

Hey future me – these are the DOMAIN ENTITIES, not API payloads! Raw Spotify JSON stays a
plain dict until it passes through one of the `from_spotify...` constructors below. Everything
here is a dataclass (no Pydantic in the domain layer); the persistence layer serialises them
with pydantic TypeAdapters, which understand dataclasses natively.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def format_duration(duration_ms: int | None) -> str:
    """Render a millisecond duration as ``minutes:seconds``.

    Seconds are rounded to the nearest whole second and zero-padded; a value
    that rounds up to 60 seconds carries into the minutes.

    Args:
        duration_ms: Track duration in milliseconds (None counts as 0)

    Returns:
        Duration string such as ``"3:07"``
    """
    millis = max(int(duration_ms or 0), 0)
    minutes = millis // 60000
    seconds = int((millis % 60000) / 1000 + 0.5)
    if seconds == 60:
        minutes += 1
        seconds = 0
    return f"{minutes}:{seconds:02d}"


class ComparisonStep(str, Enum):
    """Where the two-user comparison flow currently stands."""

    FIRST = "first"  # awaiting/processing the first user
    SECOND = "second"  # first user done, awaiting/processing the second user
    COMPARING = "comparing"  # results ready, terminal until logout or refresh


# Yo, Track is IMMUTABLE once built! A new comparison run builds new Track objects instead of
# patching old ones. `artist` is the display string ("A, B"); the per-track artist IDs needed
# for the common-artist cross-reference live in UserSnapshot.song_artist_ids, not here.
@dataclass(frozen=True)
class Track:
    """A liked song as shown to the user."""

    id: str
    title: str
    artist: str
    album_cover: str | None = None
    duration: str = "0:00"
    preview_url: str | None = None

    @classmethod
    def from_saved_track(cls, item: dict[str, Any]) -> "Track":
        """Build a Track from one ``/me/tracks`` entry.

        Args:
            item: Saved-track object (``{"added_at": ..., "track": {...}}``)

        Returns:
            Track entity
        """
        track = item["track"]
        album_images = (track.get("album") or {}).get("images") or []
        return cls(
            id=track["id"],
            title=track.get("name", ""),
            artist=", ".join(a.get("name", "") for a in track.get("artists") or []),
            album_cover=album_images[0].get("url") if album_images else None,
            duration=format_duration(track.get("duration_ms")),
            preview_url=track.get("preview_url"),
        )


@dataclass(frozen=True)
class Artist:
    """One merged artist record (exactly one per artist ID per snapshot)."""

    id: str
    name: str
    image_url: str = ""
    genres: tuple[str, ...] = ()
    spotify_url: str = ""


@dataclass(frozen=True)
class UserProfile:
    """Profile card data for one connected account."""

    id: str
    username: str
    display_name: str
    avatar_url: str | None = None
    followers: int = 0
    following: int = 0
    top_genres: tuple[str, ...] = ()
    spotify_url: str | None = None

    # Hey future me – `following` is NOT Spotify's following count! It's the number of merged
    # artists we found for this user (liked-song artists + top + followed), same as the old UI
    # showed. top_genres are the first 4 distinct genres in merged-artist order.
    @classmethod
    def from_spotify(cls, raw: dict[str, Any], artists: list[Artist]) -> "UserProfile":
        """Build a profile from the ``/me`` payload and the user's merged artists.

        Args:
            raw: Current-user profile JSON
            artists: The user's reconciled artist list

        Returns:
            UserProfile entity
        """
        top_genres: list[str] = []
        for artist in artists:
            for genre in artist.genres:
                if genre not in top_genres:
                    top_genres.append(genre)
        images = raw.get("images") or []
        return cls(
            id=raw["id"],
            username=raw["id"],
            display_name=raw.get("display_name") or raw["id"],
            avatar_url=images[0].get("url") if images else None,
            followers=(raw.get("followers") or {}).get("total") or 0,
            following=len(artists),
            top_genres=tuple(top_genres[:4]),
            spotify_url=(raw.get("external_urls") or {}).get("spotify"),
        )


@dataclass(frozen=True)
class UserSnapshot:
    """One user's complete, reconciled library at a point in time.

    Attributes:
        profile: Profile card data
        tracks: Liked songs, unique by track ID, in library order
        artists: Reconciled artists, unique by artist ID
        song_artist_ids: Track ID -> IDs of the artists credited on it
    """

    profile: UserProfile
    tracks: list[Track]
    artists: list[Artist]
    song_artist_ids: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ComparisonResult:
    """Songs and artists two users have in common."""

    common_songs: list[Track] = field(default_factory=list)
    common_artists: list[Artist] = field(default_factory=list)


@dataclass
class UserProfiles:
    """The two profile slots of a session."""

    user1: UserProfile | None = None
    user2: UserProfile | None = None

    @property
    def complete(self) -> bool:
        """True once both users have been retrieved."""
        return self.user1 is not None and self.user2 is not None


# Listen up, ComparisonState is what the display collaborator renders and what we persist as
# "appState" for reload resilience. is_loading, progress and error are TRANSIENT - they are
# never written to the store (see AppStateRepository).
@dataclass
class ComparisonState:
    """Overall state of a comparison session."""

    profiles: UserProfiles = field(default_factory=UserProfiles)
    is_first_user_done: bool = False
    current_step: ComparisonStep = ComparisonStep.FIRST
    common_songs: list[Track] = field(default_factory=list)
    common_artists: list[Artist] = field(default_factory=list)
    is_loading: bool = False
    progress: float = 0.0
    error: str | None = None


__all__ = [
    "Artist",
    "ComparisonResult",
    "ComparisonState",
    "ComparisonStep",
    "Track",
    "UserProfile",
    "UserProfiles",
    "UserSnapshot",
    "format_duration",
]
