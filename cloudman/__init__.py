"""Cloudman: operator console for a self-hosted Nextcloud server."""

__version__ = "0.3.0"
