"""
adlex-common: Shared library for AdLex.

Provides the domain layer (value objects, aggregates, events), data
models, configuration, structured logging, Prometheus metrics, storage
adapters and the port protocols shared by the AdLex services.
"""

from adlex_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
