"""
Service layer infrastructure for talking to MAAS.

Provides:
- MaasApiClient: OAuth-signed async client for the MAAS REST API
- ResourceCache: TTL + LRU cache shared by all resource handlers
- AuditLogger: structured audit events for reads and cache traffic
- CancellationToken: client-side cancellation of in-flight requests
- normalize_fetch_error: maps any fetch failure to a MaasApiError
"""

from maasbridge.services.errors import (
    CacheError,
    ErrorCode,
    MaasApiError,
    RequestAbortedError,
)
from maasbridge.services.cache import (
    CacheControl,
    CacheEntry,
    CacheOptions,
    CacheResult,
    CacheStats,
    ResourceCache,
    get_resource_cache,
)
from maasbridge.services.audit import AuditLogger, NullAuditLogger
from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.client import MaasApiClient
from maasbridge.services.error_handler import normalize_fetch_error, validate_resource_data

__all__ = [
    # Errors
    "CacheError",
    "ErrorCode",
    "MaasApiError",
    "RequestAbortedError",
    # Cache
    "CacheControl",
    "CacheEntry",
    "CacheOptions",
    "CacheResult",
    "CacheStats",
    "ResourceCache",
    "get_resource_cache",
    # Audit
    "AuditLogger",
    "NullAuditLogger",
    # Client
    "CancellationToken",
    "MaasApiClient",
    # Error handling
    "normalize_fetch_error",
    "validate_resource_data",
]
