"""Tests for the command line front end."""

import logging
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from pytest_mock import MockerFixture

from musicmatch.cli import ProgressLine, main, parse_args, render
from musicmatch.domain.entities import (
    Artist,
    ComparisonState,
    ComparisonStep,
    Track,
    UserProfile,
    UserProfiles,
)
from musicmatch.infrastructure.integrations.spotify_client import SpotifyLibraryClient
from spotify_payloads import FakeSpotifyApi, make_artist, make_profile, make_saved_track


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def api(mocker: MockerFixture) -> FakeSpotifyApi:
    """Route every client the CLI creates to a fake Spotify API."""
    api = FakeSpotifyApi()
    api.add_account(
        "tok-a",
        make_profile("alice", "Alice"),
        saved_tracks=[make_saved_track("t1"), make_saved_track("t2", artist_ids=["band"])],
        top_artists=[make_artist("band", genres=["indie"])],
    )
    api.add_account(
        "tok-b",
        make_profile("bob", "Bob"),
        saved_tracks=[make_saved_track("t2", artist_ids=["band"]), make_saved_track("t3")],
    )
    mocker.patch.object(
        SpotifyLibraryClient,
        "_get_client",
        return_value=httpx.AsyncClient(transport=api.transport()),
    )
    return api


def test_parse_args_reads_token_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MUSICMATCH_FIRST_TOKEN", "from-env")

    args = parse_args(["--refresh"])

    assert args.first_token == "from-env"
    assert args.second_token is None
    assert args.refresh is True
    assert args.logout is False


def test_render_comparison(capsys: pytest.CaptureFixture[str]) -> None:
    profile = UserProfile(
        id="alice", username="alice", display_name="Alice", followers=3, following=2
    )
    state = ComparisonState(
        profiles=UserProfiles(user1=profile, user2=profile),
        current_step=ComparisonStep.COMPARING,
        common_songs=[Track(id="t1", title="Intro", artist="Band", duration="3:07")],
        common_artists=[Artist(id="a1", name="Band", genres=("indie",))],
    )

    render(state)

    out = capsys.readouterr().out
    assert "User 1: Alice (@alice) - 3 followers, 2 artists, genres: -" in out
    assert "1 songs in common:" in out
    assert "  Intro - Band (3:07)" in out
    assert "  Band [indie]" in out


def test_two_invocations_compare_users(
    api: FakeSpotifyApi, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    state_file = str(tmp_path / "state.json")

    assert main(["--first-token", "tok-a", "--state-file", state_file]) == 0
    assert "First user done" in capsys.readouterr().out

    assert main(["--second-token", "tok-b", "--state-file", state_file]) == 0
    out = capsys.readouterr().out
    assert "1 songs in common:" in out
    assert "Song t2" in out
    assert "1 artists in common:" in out


def test_failed_run_exits_non_zero(
    api: FakeSpotifyApi, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["--first-token", "tok-unknown", "--state-file", str(tmp_path / "s.json")])

    assert exit_code == 1
    assert "Session expired" in capsys.readouterr().err


def test_logout_forgets_session(api: FakeSpotifyApi, tmp_path: Path) -> None:
    state_file = tmp_path / "state.json"
    main(["--first-token", "tok-a", "--state-file", str(state_file)])

    assert main(["--logout", "--state-file", str(state_file)]) == 0
    assert state_file.read_text().strip() == "{}"


class TestProgressLine:
    """Test the stderr progress line."""

    def test_line_ends_when_pass_stops_short(self, capsys: pytest.CaptureFixture[str]) -> None:
        progress = ProgressLine()
        loading = ComparisonState(is_loading=True)

        progress.update(0.0)
        progress.update(37.5)
        progress.finish(loading)
        assert not capsys.readouterr().err.endswith("\n")

        progress.finish(ComparisonState())

        assert capsys.readouterr().err == "\n"

    def test_no_blank_line_without_progress(self, capsys: pytest.CaptureFixture[str]) -> None:
        progress = ProgressLine()

        progress.finish(ComparisonState())
        progress.update(100.0)
        progress.finish(ComparisonState())
        progress.finish(ComparisonState())

        assert capsys.readouterr().err == "\rLoading liked songs... 100.0%\n"

    def test_empty_library_run_ends_progress_line(
        self, api: FakeSpotifyApi, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        api.add_account("tok-empty", make_profile("carol"))

        assert main(["--first-token", "tok-empty", "--state-file", str(tmp_path / "s.json")]) == 0

        err = capsys.readouterr().err
        assert "Loading liked songs...   0.0%" in err
        assert err.endswith("\n")
