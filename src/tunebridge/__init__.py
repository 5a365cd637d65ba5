"""TuneBridge - convert Spotify playlists into YouTube playlists."""

__version__ = "0.1.0"
