"""
ResourceRegistry - maps resource URI templates to resolution callbacks.

Usage:
    registry = ResourceRegistry()
    register_all(registry, client, cache)
    response = await registry.resolve("maas://machine/abc123/details")
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from maasbridge.resources.uri_patterns import UriTemplate, compile_template
from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.errors import ErrorCode, MaasApiError

ResolveCallback = Callable[..., Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class RegisteredResource:
    name: str
    template: UriTemplate
    callback: ResolveCallback

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "uriTemplate": self.template.template}


class ResourceRegistry:
    """Ordered set of named resource templates; first match wins."""

    def __init__(self):
        self._resources: dict[str, RegisteredResource] = {}

    def register(self, name: str, template: str, callback: ResolveCallback) -> None:
        if name in self._resources:
            raise ValueError(f"Resource '{name}' is already registered")
        self._resources[name] = RegisteredResource(name, compile_template(template), callback)
        logger.debug(f"Registered resource {name} -> {template}")

    def list_resources(self) -> list[dict[str, str]]:
        return [resource.to_dict() for resource in self._resources.values()]

    def find(self, uri: str) -> tuple[RegisteredResource, dict[str, str]] | None:
        for resource in self._resources.values():
            result = resource.template.match(uri)
            if result is not None:
                return resource, result.variables
        return None

    async def resolve(
        self, uri: str, token: CancellationToken | None = None
    ) -> dict[str, Any]:
        """
        Resolve ``uri`` through the first matching resource.

        Raises:
            MaasApiError: (404, resource_not_found) when no template matches,
                otherwise whatever the resource callback raises
        """
        found = self.find(uri)
        if found is None:
            logger.warning(f"No resource registered for {uri}")
            raise MaasApiError(
                f"No resource matches URI '{uri}'",
                404,
                ErrorCode.RESOURCE_NOT_FOUND,
                {"uri": uri},
            )
        resource, variables = found
        logger.debug(f"Resolving {uri} via {resource.name}")
        return await resource.callback(uri, variables, token=token)
