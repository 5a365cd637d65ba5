"""Playlist sources the conversion pipeline reads from."""

from tunebridge.application.sources.spotify_source import SpotifyPlaylistSource

__all__ = ["SpotifyPlaylistSource"]
