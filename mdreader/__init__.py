"""mdreader - index a markdown tree and serve faceted full-text search."""

__version__ = "0.3.0"
