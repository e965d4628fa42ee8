"""Merge artist records from liked songs, top artists and followed artists.

Hey future me – one user's artists come from THREE places and the same artist usually shows
up in more than one:
(a) artists credited on liked songs - these have NO images of their own, so we borrow the
    album cover of the song they came from (and they have no genres)
(b) top artists - own images + genres
(c) followed artists - same shape as (b)

MERGE RULE: walk (a), (b), (c) in that order into a dict keyed by artist ID. A later record
replaces the earlier one UNLESS the earlier exists and the later has no images. So a record
with images always survives over an image-less one, otherwise later wins.

Output order is dict-insertion order (first time an ID was seen). That order is NOT stable if
you shuffle the input lists - accepted, don't "fix" it.
"""

import logging
from collections.abc import Iterable
from typing import Any

from musicmatch.domain.entities import Artist

logger = logging.getLogger(__name__)

PREFERRED_IMAGE_WIDTH = 300


def artist_sources_from_songs(saved_tracks: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Build source (a): every credited artist of every liked song.

    Args:
        saved_tracks: Raw ``/me/tracks`` items

    Returns:
        Artist-like records carrying the song's album images and empty genres
    """
    records: list[dict[str, Any]] = []
    for item in saved_tracks:
        track = item.get("track") or {}
        album_images = (track.get("album") or {}).get("images") or []
        for artist in track.get("artists") or []:
            if not artist.get("id"):
                continue
            records.append(
                {
                    "id": artist["id"],
                    "name": artist.get("name", ""),
                    "images": album_images,
                    "external_urls": artist.get("external_urls") or {},
                    "genres": [],
                }
            )
    return records


def best_image_url(images: list[dict[str, Any]] | None) -> str:
    """Pick the 300px-wide image, else the first one, else ``""``."""
    if not images:
        return ""
    for image in images:
        if image.get("width") == PREFERRED_IMAGE_WIDTH:
            return str(image.get("url") or "")
    return str(images[0].get("url") or "")


def reconcile_artists(
    song_artists: Iterable[dict[str, Any]],
    top_artists: Iterable[dict[str, Any]],
    followed_artists: Iterable[dict[str, Any]],
) -> list[Artist]:
    """Merge the three artist sources into one record per artist ID.

    Args:
        song_artists: Source (a), see artist_sources_from_songs()
        top_artists: Source (b), raw ``/me/top/artists`` items
        followed_artists: Source (c), raw ``/me/following`` items

    Returns:
        Merged artists in first-seen order
    """
    merged: dict[str, dict[str, Any]] = {}
    for source in (song_artists, top_artists, followed_artists):
        for record in source:
            artist_id = record.get("id")
            if not artist_id:
                continue
            if artist_id in merged and not record.get("images"):
                continue
            merged[artist_id] = record

    artists = [
        Artist(
            id=artist_id,
            name=record.get("name", ""),
            image_url=best_image_url(record.get("images")),
            genres=tuple(record.get("genres") or ()),
            spotify_url=(record.get("external_urls") or {}).get("spotify", ""),
        )
        for artist_id, record in merged.items()
    ]
    logger.debug("Reconciled %d artists", len(artists))
    return artists


__all__ = ["artist_sources_from_songs", "best_image_url", "reconcile_artists"]
