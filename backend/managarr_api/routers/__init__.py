"""Router exports for the Managarr API."""
from . import bulk, health, instances, proxy, reports, settings, tmdb

__all__ = ["bulk", "health", "instances", "proxy", "reports", "settings", "tmdb"]
