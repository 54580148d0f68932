"""
MAAS resources exposed through ``maas://`` URIs.
"""

from maasbridge.resources.definitions import (
    RESOURCE_DEFINITIONS,
    create_handlers,
    register_all,
)
from maasbridge.resources.handler import (
    DetailResourceHandler,
    ListResourceHandler,
    ResourceDefinition,
    ResourceHandler,
    create_handler,
)
from maasbridge.resources.registry import ResourceRegistry

__all__ = [
    "RESOURCE_DEFINITIONS",
    "create_handlers",
    "register_all",
    "DetailResourceHandler",
    "ListResourceHandler",
    "ResourceDefinition",
    "ResourceHandler",
    "create_handler",
    "ResourceRegistry",
]
