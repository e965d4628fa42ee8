"""Tests for the two-user comparison service."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from musicmatch.application.services.comparison_service import (
    GENERIC_FAILURE_MESSAGE,
    LOGIN_AGAIN_MESSAGE,
    ComparisonService,
    build_snapshot,
    common_songs,
    compare_snapshots,
)
from musicmatch.domain.entities import Artist, ComparisonState, ComparisonStep, Track
from musicmatch.domain.exceptions import AuthenticationError, SpotifyApiError
from musicmatch.domain.ports import ISpotifyLibraryClient, ProgressCallback
from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.persistence.key_value_store import InMemoryKeyValueStore
from musicmatch.infrastructure.persistence.repositories import (
    APP_STATE_KEY,
    FIRST_USER_SONGS_KEY,
)
from spotify_payloads import make_artist, make_image, make_profile, make_saved_track


@dataclass
class FakeLibrary:
    """Everything one fake account returns."""

    profile: dict[str, Any]
    saved_tracks: list[dict[str, Any]] = field(default_factory=list)
    top_artists: list[dict[str, Any]] = field(default_factory=list)
    followed_artists: list[dict[str, Any]] = field(default_factory=list)
    liked_songs_error: Exception | None = None


class FakeLibraryClient(ISpotifyLibraryClient):
    """In-memory library client answering for whichever token is active."""

    def __init__(self, credentials: CredentialStore, libraries: dict[str, FakeLibrary]) -> None:
        self.credentials = credentials
        self.libraries = libraries
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def _library(self) -> FakeLibrary:
        self.calls += 1
        token = self.credentials.active_token
        if token is None:
            raise AuthenticationError("Not authenticated")
        library = self.libraries[token]
        if self.gate is not None:
            await self.gate.wait()
        return library

    async def get_current_user(self) -> dict[str, Any]:
        return (await self._library()).profile

    async def get_all_liked_songs(
        self, on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        library = await self._library()
        if library.liked_songs_error is not None:
            raise library.liked_songs_error
        if on_progress is not None:
            on_progress(50.0)
            on_progress(100.0)
        return library.saved_tracks

    async def get_top_artists(self, limit: int = 50) -> list[dict[str, Any]]:
        return (await self._library()).top_artists

    async def get_followed_artists(self) -> list[dict[str, Any]]:
        return (await self._library()).followed_artists


@pytest.fixture
def libraries() -> dict[str, FakeLibrary]:
    return {
        "tok-a": FakeLibrary(
            profile=make_profile("alice", "Alice"),
            saved_tracks=[
                make_saved_track("t1", artist_ids=["s1"]),
                make_saved_track("t2", artist_ids=["s2"]),
            ],
            top_artists=[make_artist("x", images=[make_image("x-img", 300)], genres=["indie"])],
        ),
        "tok-b": FakeLibrary(
            profile=make_profile("bob"),
            saved_tracks=[
                make_saved_track("t2", artist_ids=["s2"]),
                make_saved_track("t3", artist_ids=["s3"]),
            ],
            followed_artists=[make_artist("x", images=[make_image("x-img", 300)])],
        ),
    }


@pytest.fixture
def client(credentials: CredentialStore, libraries: dict[str, FakeLibrary]) -> FakeLibraryClient:
    return FakeLibraryClient(credentials, libraries)


@pytest.fixture
def progress() -> list[float]:
    return []


@pytest.fixture
def service(
    client: FakeLibraryClient,
    credentials: CredentialStore,
    store: InMemoryKeyValueStore,
    progress: list[float],
) -> ComparisonService:
    return ComparisonService(client, credentials, store, on_progress=progress.append)


async def compare_both(service: ComparisonService) -> ComparisonState:
    await service.handle_token("tok-a", is_second_user=False)
    return await service.handle_token("tok-b", is_second_user=True)


def ids(items: list[Track] | list[Artist]) -> list[str]:
    return [item.id for item in items]


def make_track(track_id: str) -> Track:
    return Track(id=track_id, title=f"Song {track_id}", artist="Someone")


class TestBuildSnapshot:
    """Test turning raw retrievals into a snapshot."""

    def test_skips_entries_without_track_id(self) -> None:
        saved = [make_saved_track("t1"), {"added_at": "x", "track": None}]
        removed = make_saved_track("t2")
        removed["track"]["id"] = None
        saved.append(removed)

        snapshot = build_snapshot(make_profile("alice"), saved, [], [])

        assert ids(snapshot.tracks) == ["t1"]
        assert ids(snapshot.artists) == ["a-t1"]

    def test_duplicate_track_keeps_first_occurrence(self) -> None:
        saved = [
            make_saved_track("t1", name="First"),
            make_saved_track("t2"),
            make_saved_track("t1", name="Again"),
        ]

        snapshot = build_snapshot(make_profile("alice"), saved, [], [])

        assert ids(snapshot.tracks) == ["t1", "t2"]
        assert snapshot.tracks[0].title == "First"

    def test_records_song_artist_ids(self) -> None:
        saved = [make_saved_track("t1", artist_ids=["a1", "a2"])]

        snapshot = build_snapshot(make_profile("alice"), saved, [], [])

        assert snapshot.song_artist_ids == {"t1": ("a1", "a2")}

    def test_profile_counts_merged_artists(self) -> None:
        saved = [make_saved_track("t1", artist_ids=["a1"])]
        top = [make_artist("a1", images=[make_image("p", 300)], genres=["rock", "indie"])]
        followed = [make_artist("a2", genres=["indie", "jazz", "pop", "folk"])]

        snapshot = build_snapshot(make_profile("alice", "Alice"), saved, top, followed)

        assert snapshot.profile.following == 2
        assert snapshot.profile.top_genres == ("rock", "indie", "jazz", "pop")
        assert snapshot.profile.display_name == "Alice"


class TestCompareSnapshots:
    """Test the pure comparison functions."""

    def test_common_songs_in_second_user_order(self) -> None:
        first = [make_track("t1"), make_track("t2"), make_track("t3")]
        second = [make_track("t3"), make_track("t4"), make_track("t1")]

        assert ids(common_songs(first, second)) == ["t3", "t1"]

    def test_common_songs_symmetric_as_sets(self) -> None:
        a = [make_track("t1"), make_track("t2")]
        b = [make_track("t2"), make_track("t3")]

        assert set(ids(common_songs(a, b))) == set(ids(common_songs(b, a))) == {"t2"}

    def test_self_comparison_is_identity(self) -> None:
        a = [make_track("t1"), make_track("t2")]
        assert common_songs(a, a) == a

    def test_no_overlap(self) -> None:
        assert common_songs([make_track("t1")], [make_track("t2")]) == []

    def test_direct_artists_first_then_song_artists(self) -> None:
        second = build_snapshot(
            make_profile("bob"),
            [make_saved_track("t2", artist_ids=["s2"]), make_saved_track("t3", artist_ids=["s3"])],
            [],
            [make_artist("x", images=[make_image("x-img", 300)])],
        )
        first_artists = [Artist(id="x", name="X"), Artist(id="other", name="Other")]

        result = compare_snapshots([make_track("t2")], first_artists, second)

        assert ids(result.common_songs) == ["t2"]
        # "x" is shared directly, "s2" only through the common song t2
        assert ids(result.common_artists) == ["x", "s2"]

    def test_common_artists_are_unique(self) -> None:
        second = build_snapshot(
            make_profile("bob"),
            [make_saved_track("t1", artist_ids=["s1"])],
            [make_artist("s1", images=[make_image("s1-img", 300)])],
            [],
        )

        result = compare_snapshots([make_track("t1")], [Artist(id="s1", name="S1")], second)

        assert ids(result.common_artists) == ["s1"]


class TestComparisonFlow:
    """Test the first -> second -> comparing state machine."""

    async def test_first_user_pass(
        self, service: ComparisonService, store: InMemoryKeyValueStore
    ) -> None:
        state = await service.handle_token("tok-a", is_second_user=False)

        assert state.current_step is ComparisonStep.SECOND
        assert state.is_first_user_done is True
        assert state.profiles.user1 is not None
        assert state.profiles.user1.display_name == "Alice"
        assert state.profiles.user2 is None
        assert state.is_loading is False
        assert state.error is None
        assert store.get(FIRST_USER_SONGS_KEY) is not None

    async def test_full_comparison(
        self, service: ComparisonService, store: InMemoryKeyValueStore
    ) -> None:
        state = await compare_both(service)

        assert state.current_step is ComparisonStep.COMPARING
        assert state.profiles.complete
        assert state.profiles.user2 is not None
        assert state.profiles.user2.display_name == "bob"
        assert ids(state.common_songs) == ["t2"]
        assert ids(state.common_artists) == ["s2", "x"]
        # Snapshot is only needed between the two passes
        assert store.get(FIRST_USER_SONGS_KEY) is None

    async def test_forced_second_pass_keeps_snapshot(
        self, service: ComparisonService, credentials: CredentialStore, store: InMemoryKeyValueStore
    ) -> None:
        await service.handle_token("tok-a", is_second_user=False)
        credentials.store_token("tok-b", is_second_user=True)

        state = await service.compare_users(force_refresh=True, is_second_user=True)

        assert state.current_step is ComparisonStep.COMPARING
        assert store.get(FIRST_USER_SONGS_KEY) is not None

    async def test_pass_defaults_to_active_slot(
        self, service: ComparisonService, credentials: CredentialStore
    ) -> None:
        await service.handle_token("tok-a", is_second_user=False)
        credentials.store_token("tok-b", is_second_user=True)

        state = await service.compare_users()

        assert state.current_step is ComparisonStep.COMPARING

    async def test_second_pass_without_snapshot_finds_nothing(
        self, service: ComparisonService
    ) -> None:
        state = await service.handle_token("tok-b", is_second_user=True)

        assert state.current_step is ComparisonStep.COMPARING
        assert state.common_songs == []
        assert state.common_artists == []

    async def test_no_token_is_a_no_op(
        self, service: ComparisonService, client: FakeLibraryClient
    ) -> None:
        state = await service.compare_users()

        assert client.calls == 0
        assert state.current_step is ComparisonStep.FIRST
        assert state.is_loading is False

    async def test_progress_resets_each_pass(
        self, service: ComparisonService, progress: list[float]
    ) -> None:
        await compare_both(service)

        assert progress == [0.0, 50.0, 100.0, 0.0, 50.0, 100.0]

    async def test_state_changes_are_published(
        self, client: FakeLibraryClient, credentials: CredentialStore, store: InMemoryKeyValueStore
    ) -> None:
        snapshots: list[tuple[bool, ComparisonStep]] = []
        service = ComparisonService(
            client,
            credentials,
            store,
            on_change=lambda s: snapshots.append((s.is_loading, s.current_step)),
        )

        await service.handle_token("tok-a", is_second_user=False)

        assert snapshots == [(True, ComparisonStep.FIRST), (False, ComparisonStep.SECOND)]


class TestFailures:
    """Test error reporting and result retention."""

    async def test_failure_keeps_previous_results(
        self, service: ComparisonService, libraries: dict[str, FakeLibrary]
    ) -> None:
        await compare_both(service)
        libraries["tok-b"].liked_songs_error = SpotifyApiError(500, "boom")

        state = await service.compare_users(force_refresh=True, is_second_user=True)

        assert state.error == f"{GENERIC_FAILURE_MESSAGE}: boom"
        assert state.is_loading is False
        assert state.current_step is ComparisonStep.COMPARING
        assert ids(state.common_songs) == ["t2"]

    async def test_authentication_failure_asks_for_login(
        self, service: ComparisonService, libraries: dict[str, FakeLibrary]
    ) -> None:
        libraries["tok-a"].liked_songs_error = AuthenticationError(
            "Session expired, please log in again"
        )

        state = await service.handle_token("tok-a", is_second_user=False)

        assert state.error == LOGIN_AGAIN_MESSAGE
        assert state.current_step is ComparisonStep.FIRST
        assert state.profiles.user1 is None

    async def test_next_pass_clears_error(
        self, service: ComparisonService, libraries: dict[str, FakeLibrary]
    ) -> None:
        libraries["tok-a"].liked_songs_error = SpotifyApiError(503, "unavailable")
        await service.handle_token("tok-a", is_second_user=False)

        libraries["tok-a"].liked_songs_error = None
        state = await service.compare_users(is_second_user=False)

        assert state.error is None
        assert state.current_step is ComparisonStep.SECOND


class TestRefresh:
    """Test re-running both users."""

    async def test_refresh_reruns_both_users(
        self,
        service: ComparisonService,
        libraries: dict[str, FakeLibrary],
        store: InMemoryKeyValueStore,
    ) -> None:
        await compare_both(service)
        libraries["tok-a"].saved_tracks.append(make_saved_track("t3", artist_ids=["s3"]))

        state = await service.refresh()

        assert state.error is None
        assert state.current_step is ComparisonStep.COMPARING
        assert ids(state.common_songs) == ["t2", "t3"]
        assert store.get(FIRST_USER_SONGS_KEY) is not None

    async def test_failed_second_pass_keeps_previous_comparison(
        self,
        service: ComparisonService,
        libraries: dict[str, FakeLibrary],
        store: InMemoryKeyValueStore,
    ) -> None:
        await compare_both(service)
        libraries["tok-b"].liked_songs_error = SpotifyApiError(500, "Server error")

        state = await service.refresh()

        assert state.error == f"{GENERIC_FAILURE_MESSAGE}: Server error"
        assert state.current_step is ComparisonStep.COMPARING
        assert ids(state.common_songs) == ["t2"]
        assert ids(state.common_artists) == ["s2", "x"]
        restored = ComparisonService(service.client, service.credentials, store).restore()
        assert restored.current_step is ComparisonStep.COMPARING

    async def test_refresh_is_repeatable(self, service: ComparisonService) -> None:
        await compare_both(service)

        await service.refresh()
        state = await service.refresh()

        assert ids(state.common_songs) == ["t2"]

    async def test_refresh_before_comparison_is_ignored(
        self, service: ComparisonService, client: FakeLibraryClient
    ) -> None:
        await service.handle_token("tok-a", is_second_user=False)
        calls = client.calls

        state = await service.refresh()

        assert client.calls == calls
        assert state.current_step is ComparisonStep.SECOND

    async def test_refresh_without_second_token(
        self, service: ComparisonService, store: InMemoryKeyValueStore
    ) -> None:
        await compare_both(service)
        store.delete("spotify_token_user2")

        state = await service.refresh()

        assert state.error == LOGIN_AGAIN_MESSAGE
        assert state.current_step is ComparisonStep.COMPARING
        assert ids(state.common_songs) == ["t2"]


class TestSessionLifecycle:
    """Test logout and restore."""

    async def test_logout_clears_everything(
        self,
        service: ComparisonService,
        credentials: CredentialStore,
        store: InMemoryKeyValueStore,
    ) -> None:
        await compare_both(service)

        state = service.logout()

        assert state == ComparisonState()
        assert credentials.is_authenticated() is False
        assert store.keys() == []

    async def test_logout_during_retrieval_discards_results(
        self,
        service: ComparisonService,
        client: FakeLibraryClient,
        store: InMemoryKeyValueStore,
    ) -> None:
        client.gate = asyncio.Event()
        task = asyncio.create_task(service.handle_token("tok-a", is_second_user=False))
        await asyncio.sleep(0.01)
        assert service.state.is_loading is True

        service.logout()
        client.gate.set()
        await task

        assert service.state == ComparisonState()
        assert store.get(FIRST_USER_SONGS_KEY) is None
        assert store.get(APP_STATE_KEY) is None

    async def test_restore_persisted_state(
        self,
        service: ComparisonService,
        client: FakeLibraryClient,
        credentials: CredentialStore,
        store: InMemoryKeyValueStore,
    ) -> None:
        await compare_both(service)

        restored = ComparisonService(client, credentials, store).restore()

        assert restored.current_step is ComparisonStep.COMPARING
        assert restored.profiles.complete
        assert ids(restored.common_songs) == ["t2"]
        assert restored.is_loading is False
        assert restored.error is None

    def test_restore_ignores_malformed_state(
        self,
        client: FakeLibraryClient,
        credentials: CredentialStore,
        store: InMemoryKeyValueStore,
    ) -> None:
        store.set(APP_STATE_KEY, "{not json")

        state = ComparisonService(client, credentials, store).restore()

        assert state == ComparisonState()
