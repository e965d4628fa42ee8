"""MusicMatch - find the songs and artists two Spotify users have in common."""

__version__ = "0.1.0"
