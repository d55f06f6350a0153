"""Route modules exposed by the API package."""

from . import ping, scanner

__all__ = ["ping", "scanner"]
