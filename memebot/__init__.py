"""Template lookup core: catalog matching and the caches around it."""

__version__ = "0.1.0"
