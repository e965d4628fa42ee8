"""Spotify Web API client for the four library endpoints MusicMatch needs."""

import logging
from typing import Any

import httpx

from musicmatch.config.settings import SpotifySettings
from musicmatch.domain.exceptions import AuthenticationError, SpotifyApiError
from musicmatch.domain.ports import ISpotifyLibraryClient, ProgressCallback
from musicmatch.infrastructure.integrations.pagination import Page, PaginatedFetcher
from musicmatch.infrastructure.persistence.credential_store import CredentialStore
from musicmatch.infrastructure.rate_limiter import RequestThrottler

logger = logging.getLogger(__name__)


def extract_error_message(response: httpx.Response) -> str:
    """Best-effort human-readable message for a failed response.

    Prefers Spotify's structured ``{"error": {"message": ...}}`` body, then the
    raw body text, then ``"HTTP <status>: <reason>"``.
    """
    message = f"HTTP {response.status_code}: {response.reason_phrase}".rstrip(": ")
    text = response.text
    try:
        data = response.json()
    except ValueError:
        return text or message

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return message


class SpotifyLibraryClient(ISpotifyLibraryClient):
    """HTTP client for the current user's profile, liked songs and artists.

    Every request goes through one RequestThrottler and carries the ACTIVE
    token of the credential store.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        credentials: CredentialStore,
        throttler: RequestThrottler | None = None,
        fetcher: PaginatedFetcher | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Spotify configuration settings
            credentials: Token source; cleared when Spotify answers 401
            throttler: Shared throttler (built from settings if omitted)
            fetcher: Paginated fetcher (built on the throttler if omitted)
            http_client: Injected AsyncClient (e.g. with httpx.MockTransport in tests)
        """
        self.settings = settings
        self.credentials = credentials
        self.throttler = throttler or RequestThrottler.for_spotify(settings)
        self.fetcher = fetcher or PaginatedFetcher(
            self.throttler, page_size=settings.page_size
        )
        self._client = http_client
        self._owns_client = http_client is None

    # Hey future me, the AsyncClient is created lazily - creating it in __init__ outside a
    # running loop causes weird asyncio issues. Injected clients are NOT closed by us.
    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SpotifyLibraryClient":
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.close()

    async def _api_request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make a throttled, authenticated GET request.

        Args:
            path: Endpoint path relative to the API base URL (e.g. "/me")
            params: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            AuthenticationError: No token, or Spotify answered 401
            SpotifyApiError: Any other non-2xx status or a transport failure
        """
        if not self.credentials.is_authenticated():
            raise AuthenticationError("Not authenticated")

        return await self.throttler.run(lambda: self._send(path, params))

    async def _send(self, path: str, params: dict[str, Any] | None) -> Any:
        # Token is read at dispatch time - a 401 from a sibling request may have cleared it
        token = self.credentials.active_token
        if token is None:
            raise AuthenticationError("Not authenticated")

        url = f"{self.settings.api_base_url}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._get_client().get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Spotify request %s failed: %s", path, e)
            raise SpotifyApiError(500, str(e) or "Network error") from e

        if response.status_code == 401:
            logger.warning("Spotify rejected the token for %s, clearing credentials", path)
            self.credentials.clear()
            raise AuthenticationError("Session expired, please log in again")

        if not response.is_success:
            message = extract_error_message(response)
            logger.debug("Spotify %s returned %d: %s", path, response.status_code, message)
            raise SpotifyApiError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise SpotifyApiError(500, f"Invalid JSON from {path}: {e}") from e

    async def get_current_user(self) -> dict[str, Any]:
        """Get the current user's profile.

        Returns:
            Raw profile (id, display_name, images, followers, external_urls, ...)
        """
        data: dict[str, Any] = await self._api_request("/me")
        return data

    async def _get_liked_songs_page(self, offset: int, limit: int) -> Page:
        # Called from inside the fetcher's throttled tasks, so this must NOT go through
        # _api_request again (that would queue behind itself)
        if not self.credentials.is_authenticated():
            raise AuthenticationError("Not authenticated")
        payload = await self._send("/me/tracks", {"limit": limit, "offset": offset})
        return Page.from_spotify(payload)

    async def get_all_liked_songs(
        self, on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """Get every saved track of the current user.

        Args:
            on_progress: Receives fractional progress in [0, 100]

        Returns:
            Raw saved-track items (``{"added_at": ..., "track": {...}}``) in library order
        """
        if not self.credentials.is_authenticated():
            raise AuthenticationError("Not authenticated")

        items = await self.fetcher.fetch_all(self._get_liked_songs_page, on_progress)
        logger.info("Fetched %d liked songs", len(items))
        return items

    # Yo, top artists needs the user-top-read scope. Accounts that didn't grant it get a 403 -
    # that's NOT a failure for us, the comparison just works with fewer artists.
    async def get_top_artists(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Get the user's top artists over the medium-term window.

        Args:
            limit: Max artists (defaults to settings.top_artists_limit)

        Returns:
            Raw artist objects, empty if Spotify denied the permission (403)
        """
        params = {
            "limit": limit or self.settings.top_artists_limit,
            "time_range": self.settings.top_artists_time_range,
        }
        try:
            data = await self._api_request("/me/top/artists", params)
        except SpotifyApiError as e:
            if e.is_permission_denied:
                logger.info("Top artists not permitted for this account, using none")
                return []
            raise
        return list(data.get("items") or [])

    async def get_followed_artists(self) -> list[dict[str, Any]]:
        """Get the artists the user follows (first page only).

        Returns:
            Raw artist objects, empty if Spotify denied the permission (403)
        """
        params = {"type": "artist", "limit": self.settings.followed_artists_limit}
        try:
            data = await self._api_request("/me/following", params)
        except SpotifyApiError as e:
            if e.is_permission_denied:
                logger.info("Followed artists not permitted for this account, using none")
                return []
            raise
        return list((data.get("artists") or {}).get("items") or [])


__all__ = ["SpotifyLibraryClient", "extract_error_message"]
