"""Application services."""

from musicmatch.application.services.artist_reconciler import (
    artist_sources_from_songs,
    best_image_url,
    reconcile_artists,
)
from musicmatch.application.services.comparison_service import (
    ComparisonService,
    build_snapshot,
    compare_snapshots,
)

__all__ = [
    "ComparisonService",
    "artist_sources_from_songs",
    "best_image_url",
    "build_snapshot",
    "compare_snapshots",
    "reconcile_artists",
]
