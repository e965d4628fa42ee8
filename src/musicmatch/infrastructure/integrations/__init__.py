"""External service integrations."""

from musicmatch.infrastructure.integrations.pagination import Page, PaginatedFetcher
from musicmatch.infrastructure.integrations.spotify_client import SpotifyLibraryClient

__all__ = ["Page", "PaginatedFetcher", "SpotifyLibraryClient"]
