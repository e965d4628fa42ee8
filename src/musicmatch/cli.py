"""Command line front end for the two-user comparison.

Typical session (tokens come from wherever you obtained them, e.g. the Spotify console):

    musicmatch --first-token "$TOKEN_A"     # retrieves user A, keeps A's snapshot on disk
    musicmatch --second-token "$TOKEN_B"    # retrieves user B and prints what A and B share
    musicmatch --refresh                    # re-runs both users with the stored tokens
    musicmatch --logout                     # forgets tokens, snapshot and results
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from musicmatch.application.services.comparison_service import ComparisonService
from musicmatch.config.settings import get_settings
from musicmatch.domain.entities import ComparisonState, ComparisonStep
from musicmatch.infrastructure.integrations.spotify_client import SpotifyLibraryClient
from musicmatch.infrastructure.observability.logging import configure_logging
from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.persistence.key_value_store import JsonFileKeyValueStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="musicmatch",
        description="Find the songs and artists two Spotify users have in common",
    )
    parser.add_argument(
        "--first-token",
        default=os.environ.get("MUSICMATCH_FIRST_TOKEN"),
        help="Bearer token of the first user (env: MUSICMATCH_FIRST_TOKEN)",
    )
    parser.add_argument(
        "--second-token",
        default=os.environ.get("MUSICMATCH_SECOND_TOKEN"),
        help="Bearer token of the second user (env: MUSICMATCH_SECOND_TOKEN)",
    )
    parser.add_argument("--state-file", type=Path, help="Where session state is kept between runs")
    parser.add_argument("--refresh", action="store_true", help="Re-run the comparison for both users")
    parser.add_argument("--logout", action="store_true", help="Forget tokens, snapshot and results")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    return parser.parse_args(argv)


class ProgressLine:
    """Single self-overwriting progress line on stderr."""

    def __init__(self) -> None:
        self._open = False

    def update(self, value: float) -> None:
        print(f"\rLoading liked songs... {value:5.1f}%", end="", file=sys.stderr, flush=True)
        self._open = True

    def finish(self, state: ComparisonState | None = None) -> None:
        """End the line after a pass, whether or not it reached 100%."""
        if self._open and (state is None or not state.is_loading):
            print(file=sys.stderr, flush=True)
            self._open = False


def render(state: ComparisonState) -> None:
    """Print the session state for humans."""
    for label, profile in (("User 1", state.profiles.user1), ("User 2", state.profiles.user2)):
        if profile is not None:
            genres = ", ".join(profile.top_genres) or "-"
            print(
                f"{label}: {profile.display_name} (@{profile.username}) - "
                f"{profile.followers} followers, {profile.following} artists, genres: {genres}"
            )

    if state.current_step is ComparisonStep.SECOND:
        print("First user done. Run again with --second-token to compare.")
    elif state.current_step is ComparisonStep.COMPARING:
        print(f"\n{len(state.common_songs)} songs in common:")
        for song in state.common_songs:
            print(f"  {song.title} - {song.artist} ({song.duration})")
        print(f"\n{len(state.common_artists)} artists in common:")
        for artist in state.common_artists:
            genres = f" [{', '.join(artist.genres)}]" if artist.genres else ""
            print(f"  {artist.name}{genres}")

    if state.error:
        print(f"Error: {state.error}", file=sys.stderr)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = JsonFileKeyValueStore(args.state_file or settings.state_file)
    credentials = CredentialStore(store)

    async with SpotifyLibraryClient(settings.spotify, credentials) as client:
        progress = ProgressLine()
        service = ComparisonService(
            client,
            credentials,
            store,
            on_progress=progress.update,
            on_change=progress.finish,
        )
        service.restore()

        if args.logout:
            service.logout()
            print("Logged out.")
            return 0

        if args.first_token:
            await service.handle_token(args.first_token, is_second_user=False)
        if args.second_token and not service.state.error:
            await service.handle_token(args.second_token, is_second_user=True)
        if args.refresh and not service.state.error:
            await service.refresh()

    render(service.state)
    return 1 if service.state.error else 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level="DEBUG" if args.verbose else settings.log_level,
        json_format=args.json_logs or settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
