"""
mdreader HTTP server.

Exposes the index, search, annotations and collections as a JSON API.
"""

from mdreader.server.app import create_app

__all__ = ["create_app"]
