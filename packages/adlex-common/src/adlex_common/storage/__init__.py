"""
Storage adapters for AdLex.

HTTP clients for the hosted data API that implement the check and
dictionary storage ports.
"""

from adlex_common.storage.rest_store import RestStore, StorageError

__all__ = ["RestStore", "StorageError"]
