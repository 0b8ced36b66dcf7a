"""Download queue core: URL routing, status state machine, yt-dlp output parsing and a local JSON API."""

__version__ = "2.0.0"