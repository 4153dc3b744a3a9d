"""
Remote catalog access layer.

This package handles all communication with the remote service: credentials,
the JSON listing endpoints and the payload downloads.
"""

from .auth import StorageStateCredentialSource, extract_credentials
from .client import CatalogClient
from .listing import ListingFetcher, RemoteItem
from .rate_limiter import RandomThrottle
from .session import ProducerSession

__all__ = [
    "CatalogClient",
    "ListingFetcher",
    "ProducerSession",
    "RandomThrottle",
    "RemoteItem",
    "StorageStateCredentialSource",
    "extract_credentials",
]
