"""Two-user comparison engine.

Hey future me – this is the heart of MusicMatch! The flow is a tiny state machine:

    first ──(user 1 retrieved)──> second ──(user 2 retrieved)──> comparing

1. FIRST: a token for user 1 shows up → fetch profile, liked songs, top + followed artists
   (all four concurrently), reconcile artists, persist user 1's tracks/artists in the store.
   The store is what survives the "log in as somebody else" step in between!
2. SECOND: a token for user 2 shows up → same four fetches, then load user 1's snapshot and
   compute common songs + common artists. The persisted snapshot is deleted afterwards
   (unless this was a forced refresh).
3. COMPARING: terminal display state until logout() or refresh().

Failures never wipe what's already displayed - they only end loading and set `error`.
There's no cancellation: logout() during a fetch just makes us DROP the result when it lands.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from musicmatch.application.services.artist_reconciler import (
    artist_sources_from_songs,
    reconcile_artists,
)
from musicmatch.domain.entities import (
    Artist,
    ComparisonResult,
    ComparisonState,
    ComparisonStep,
    Track,
    UserProfile,
    UserSnapshot,
)
from musicmatch.domain.exceptions import AuthenticationError, DomainException
from musicmatch.domain.ports import IKeyValueStore, ISpotifyLibraryClient, ProgressCallback
from musicmatch.infrastructure.observability.logging import set_correlation_id
from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.persistence.repositories import (
    AppStateRepository,
    SnapshotRepository,
)

logger = logging.getLogger(__name__)

LOGIN_AGAIN_MESSAGE = "Session expired, please log in again"
GENERIC_FAILURE_MESSAGE = "Failed to load user data"

StateCallback = Callable[[ComparisonState], None]


def build_snapshot(
    profile: dict[str, Any],
    saved_tracks: list[dict[str, Any]],
    top_artists: list[dict[str, Any]],
    followed_artists: list[dict[str, Any]],
) -> UserSnapshot:
    """Turn one user's four raw retrievals into a reconciled snapshot.

    Saved-track entries without a track ID (removed or local tracks) are
    skipped; duplicate track IDs keep their first occurrence.

    Args:
        profile: Raw ``/me`` payload
        saved_tracks: Raw ``/me/tracks`` items
        top_artists: Raw top artists
        followed_artists: Raw followed artists

    Returns:
        UserSnapshot with unique tracks and unique artists
    """
    usable = [item for item in saved_tracks if (item.get("track") or {}).get("id")]

    tracks: list[Track] = []
    song_artist_ids: dict[str, tuple[str, ...]] = {}
    for item in usable:
        track = Track.from_saved_track(item)
        if track.id in song_artist_ids:
            continue
        song_artist_ids[track.id] = tuple(
            a["id"] for a in item["track"].get("artists") or [] if a.get("id")
        )
        tracks.append(track)

    artists = reconcile_artists(
        artist_sources_from_songs(usable), top_artists, followed_artists
    )
    return UserSnapshot(
        profile=UserProfile.from_spotify(profile, artists),
        tracks=tracks,
        artists=artists,
        song_artist_ids=song_artist_ids,
    )


def common_songs(first_tracks: Iterable[Track], second_tracks: Iterable[Track]) -> list[Track]:
    """Tracks of the second list whose ID also appears in the first (second-list order)."""
    first_ids = {track.id for track in first_tracks}
    return [track for track in second_tracks if track.id in first_ids]


def compare_snapshots(
    first_tracks: list[Track],
    first_artists: list[Artist],
    second: UserSnapshot,
) -> ComparisonResult:
    """Compute what the first user and the second user have in common.

    Common artists are the union of:
    1. artists present in both reconciled artist lists (direct intersection), and
    2. the second user's artists credited on at least one common song,
    deduplicated by artist ID with the direct intersection first.

    Args:
        first_tracks: First user's persisted tracks
        first_artists: First user's persisted merged artists
        second: Second user's fresh snapshot

    Returns:
        ComparisonResult ordered by the second user's lists
    """
    songs = common_songs(first_tracks, second.tracks)

    first_artist_ids = {artist.id for artist in first_artists}
    direct = [artist for artist in second.artists if artist.id in first_artist_ids]

    song_artist_ids: set[str] = set()
    for song in songs:
        song_artist_ids.update(second.song_artist_ids.get(song.id, ()))

    included = {artist.id for artist in direct}
    additional = [
        artist
        for artist in second.artists
        if artist.id in song_artist_ids and artist.id not in included
    ]
    return ComparisonResult(common_songs=songs, common_artists=direct + additional)


class ComparisonService:
    """Runs the two-user retrieval and comparison flow.

    Attributes:
        state: Current session state (what the display renders)
    """

    def __init__(
        self,
        client: ISpotifyLibraryClient,
        credentials: CredentialStore,
        store: IKeyValueStore,
        on_progress: ProgressCallback | None = None,
        on_change: StateCallback | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: Library client (reads the credential store's active token)
            credentials: Token slots for both users
            store: Key-value store for snapshots and session state
            on_progress: Receives liked-song progress in [0, 100]
            on_change: Receives the state after every transition
        """
        self.client = client
        self.credentials = credentials
        self.state = ComparisonState()
        self._snapshots = SnapshotRepository(store)
        self._app_state = AppStateRepository(store)
        self._on_progress = on_progress
        self._on_change = on_change
        # Bumped by logout(); passes that started under an older generation drop their results
        self._generation = 0

    def restore(self) -> ComparisonState:
        """Restore the persisted session state (profiles, step, results).

        Missing or malformed state leaves the defaults in place.
        """
        saved = self._app_state.load()
        if saved is not None:
            self.state = saved
            logger.debug("Restored session state at step %s", saved.current_step.value)
        self._notify()
        return self.state

    async def handle_token(self, token: str, is_second_user: bool) -> ComparisonState:
        """Entry point once a token was acquired out-of-band.

        Args:
            token: Bearer token for the user who just logged in
            is_second_user: Whether this is the second user of the session
        """
        self.credentials.store_token(token, is_second_user)
        return await self.compare_users(is_second_user=is_second_user)

    async def compare_users(
        self, force_refresh: bool = False, is_second_user: bool | None = None
    ) -> ComparisonState:
        """Retrieve the active user and advance the state machine.

        Args:
            force_refresh: Keep the persisted first-user snapshot after comparing
            is_second_user: Which pass to run (defaults to the credential store's active slot)

        Returns:
            The updated state
        """
        if not self.credentials.is_authenticated():
            logger.warning("No Spotify token available, nothing to compare")
            return self.state
        if is_second_user is None:
            is_second_user = self.credentials.is_second_user

        generation = self._generation
        correlation_id = set_correlation_id()
        logger.info(
            "Starting %s-user retrieval (force_refresh=%s, run=%s)",
            "second" if is_second_user else "first",
            force_refresh,
            correlation_id,
        )

        self.state.is_loading = True
        self.state.error = None
        self._set_progress(0.0)
        self._notify()

        def on_progress(value: float) -> None:
            if generation == self._generation:
                self._set_progress(value)

        try:
            snapshot = await self._retrieve_user(on_progress)
            if generation != self._generation:
                logger.info("Session was reset during retrieval, discarding results")
                return self.state
            if is_second_user:
                self._complete_second_user(snapshot, force_refresh)
            else:
                self._complete_first_user(snapshot, force_refresh)
        except AuthenticationError as e:
            logger.warning("Authentication failed: %s", e.message)
            if generation == self._generation:
                self.state.error = LOGIN_AGAIN_MESSAGE
        except DomainException as e:
            logger.error("Compare users error: %s", e.message, exc_info=True)
            if generation == self._generation:
                self.state.error = f"{GENERIC_FAILURE_MESSAGE}: {e.message}"
        finally:
            if generation == self._generation:
                self.state.is_loading = False
                self._app_state.save(self.state)
                self._notify()

        return self.state

    async def refresh(self) -> ComparisonState:
        """Re-run the full two-user pipeline with the stored tokens.

        Only available once both profiles exist. The first-user snapshot is
        kept afterwards so refresh can be repeated.
        """
        if not self.state.profiles.complete:
            logger.info("Refresh requested before both users were compared, ignoring")
            return self.state

        has_first_token = self.credentials.token_for(False) is not None
        if not has_first_token and not self._snapshots.has_first_user():
            self.state.error = LOGIN_AGAIN_MESSAGE
            self._notify()
            return self.state

        if has_first_token:
            self.credentials.use_slot(False)
            await self.compare_users(force_refresh=True, is_second_user=False)
            if self.state.error:
                return self.state

        if self.credentials.token_for(True) is None:
            self.state.error = LOGIN_AGAIN_MESSAGE
            self._notify()
            return self.state

        self.credentials.use_slot(True)
        return await self.compare_users(force_refresh=True, is_second_user=True)

    def logout(self) -> ComparisonState:
        """Forget credentials, snapshot, results and persisted state.

        In-flight retrievals keep running but their results are discarded.
        """
        self._generation += 1
        self.credentials.clear()
        self._snapshots.delete_first_user()
        self._app_state.delete()
        self.state = ComparisonState()
        logger.info("Logged out, session state cleared")
        self._notify()
        return self.state

    async def _retrieve_user(self, on_progress: ProgressCallback) -> UserSnapshot:
        # Hey future me – return_exceptions=True so ALL FOUR settle before we fail. Without it
        # a failing profile call would leave three orphaned requests whose errors nobody reads.
        results = await asyncio.gather(
            self.client.get_current_user(),
            self.client.get_all_liked_songs(on_progress),
            self.client.get_top_artists(),
            self.client.get_followed_artists(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        profile, saved_tracks, top_artists, followed_artists = results
        snapshot = build_snapshot(profile, saved_tracks, top_artists, followed_artists)
        logger.info(
            "Retrieved %s: %d tracks, %d artists",
            snapshot.profile.id,
            len(snapshot.tracks),
            len(snapshot.artists),
        )
        return snapshot

    def _complete_first_user(self, snapshot: UserSnapshot, force_refresh: bool) -> None:
        self.state.profiles.user1 = snapshot.profile
        self.state.is_first_user_done = True
        # A refresh keeps showing the previous comparison until the second pass replaces it
        if not (force_refresh and self.state.current_step is ComparisonStep.COMPARING):
            self.state.current_step = ComparisonStep.SECOND
        self._snapshots.save_first_user(snapshot.tracks, snapshot.artists)

    def _complete_second_user(self, snapshot: UserSnapshot, force_refresh: bool) -> None:
        if not self._snapshots.has_first_user():
            logger.warning("No first-user snapshot stored, comparing against an empty library")
        first_tracks, first_artists = self._snapshots.load_first_user()

        result = compare_snapshots(first_tracks, first_artists, snapshot)
        self.state.profiles.user2 = snapshot.profile
        self.state.common_songs = result.common_songs
        self.state.common_artists = result.common_artists
        self.state.current_step = ComparisonStep.COMPARING
        logger.info(
            "Comparison done: %d common songs, %d common artists",
            len(result.common_songs),
            len(result.common_artists),
        )

        if not force_refresh:
            self._snapshots.delete_first_user()

    def _set_progress(self, value: float) -> None:
        self.state.progress = value
        if self._on_progress is not None:
            self._on_progress(value)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)


__all__ = [
    "ComparisonService",
    "GENERIC_FAILURE_MESSAGE",
    "LOGIN_AGAIN_MESSAGE",
    "build_snapshot",
    "common_songs",
    "compare_snapshots",
]
