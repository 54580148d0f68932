"""
Resource handlers - one generic read path shared by every MAAS resource kind.

Per request:
    match URI -> validate params -> cache lookup
        hit:  respond from cache (with Age)
        miss: fetch from MAAS -> validate payload -> cache store -> respond

Resource kinds are ResourceDefinition values; DetailResourceHandler and
ListResourceHandler hold the behaviour that differs between a single
resource and a collection.
"""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Awaitable, Callable, Literal, Protocol

from loguru import logger
from pydantic import BaseModel, TypeAdapter

from maasbridge.resources.formatter import build_response
from maasbridge.resources.params import extract_and_validate_params
from maasbridge.resources.schemas import BaseCollectionQueryParams
from maasbridge.resources.uri_patterns import compile_template, parse_query
from maasbridge.services.audit import AuditLogger
from maasbridge.services.cache import CacheOptions, ResourceCache
from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.client import MaasApiClient
from maasbridge.services.error_handler import (
    normalize_fetch_error,
    validate_resource_data,
)
from maasbridge.services.errors import ErrorCode, MaasApiError
from maasbridge.utils import generate_request_id

# Query keys consumed by the bridge itself, never validated or forwarded
RESERVED_QUERY_PARAMS = frozenset({"format", "userId", "ipAddress"})

FetchFn = Callable[
    [MaasApiClient, BaseModel, dict[str, Any], CancellationToken | None],
    Awaitable[Any],
]


@dataclass(frozen=True)
class ResourceDefinition:
    """
    Everything that distinguishes one resource kind from another.

    ``endpoint`` is formatted with the validated parameters, e.g.
    ``"/machines/{system_id}/"``. ``fetch`` replaces the default
    ``client.get(endpoint, query)`` call when the kind needs something else.
    ``filter_params`` defaults to every collection field other than
    pagination, sorting and the id.
    """

    name: str
    uri_template: str
    params_schema: type[BaseModel]
    data_schema: type[BaseModel]
    endpoint: str
    kind: Literal["detail", "list"] = "detail"
    id_param: str | None = None
    id_extractor: Callable[[BaseModel], str | None] | None = None
    cache_options: CacheOptions = field(default_factory=CacheOptions)
    filter_params: tuple[str, ...] | None = None
    static_query: dict[str, str] = field(default_factory=dict)
    fetch: FetchFn | None = None


class ResourceHandler:
    """
    Shared read path for a resource kind.

    Usage:
        handler = create_handler(MACHINE_DETAILS, client, cache)
        handler.register(registry, "maas_machine_details")
        response = await handler.handle_request("maas://machine/abc/details")
    """

    def __init__(
        self,
        definition: ResourceDefinition,
        client: MaasApiClient,
        cache: ResourceCache,
        audit: AuditLogger | None = None,
    ):
        self.definition = definition
        self.resource_name = definition.name
        self.client = client
        self.cache = cache
        self.audit = audit or AuditLogger.from_settings()
        self.template = compile_template(definition.uri_template)
        self._data_adapter = self._build_adapter()
        self._cache_options = definition.cache_options

        logger.debug(
            f"Initialized {self.resource_name} resource handler "
            f"(cache enabled={self._cache_options.enabled}, ttl={self.ttl.total_seconds()}s)"
        )

    def _build_adapter(self) -> TypeAdapter:
        return TypeAdapter(self.definition.data_schema)

    # Registration

    def register(self, registry: "ResourceRegistryProtocol", registered_name: str) -> None:
        """Bind this handler's template and callback into a host registry."""
        registry.register(registered_name, self.definition.uri_template, self.handle_request)

    # Cache options

    @property
    def ttl(self) -> timedelta:
        return self._ttl(self._cache_options)

    def _ttl(self, options: CacheOptions) -> timedelta:
        if options.ttl is not None:
            return options.ttl
        return self.cache.ttl_for(self.resource_name)

    def get_cache_options(self) -> CacheOptions:
        return self._cache_options

    def set_cache_options(self, options: CacheOptions | None = None, **changes: Any) -> CacheOptions:
        """
        Replace the active cache options.

        Requests already running keep the options they started with.
        """
        base = options if options is not None else self._cache_options
        if "ttl" in changes and isinstance(changes["ttl"], (int, float)):
            changes["ttl"] = timedelta(seconds=changes["ttl"])
        self._cache_options = replace(base, **changes)

        request_id = generate_request_id()
        logger.debug(
            f"Updated cache options for {self.resource_name} [{request_id}]: "
            f"enabled={self._cache_options.enabled}, ttl={self.ttl.total_seconds()}s"
        )
        self.audit.log_cache_operation(
            self.resource_name,
            "update_options",
            request_id,
            details={
                "cache_enabled": self._cache_options.enabled,
                "cache_ttl": self.ttl.total_seconds(),
            },
        )
        return self._cache_options

    # Invalidation

    async def invalidate_cache(self) -> int:
        """Invalidate every cached entry of this resource kind."""
        if not self._cache_options.enabled or not self.cache.is_enabled():
            return 0
        request_id = generate_request_id()
        count = await self.cache.invalidate_resource(self.resource_name)
        logger.debug(f"Invalidated {count} cache entries for {self.resource_name} [{request_id}]")
        self.audit.log_cache_operation(
            self.resource_name, "invalidate_all", request_id, details={"count": count}
        )
        return count

    async def invalidate_cache_by_id(self, resource_id: str) -> int:
        """Invalidate cached entries of this kind for one resource id."""
        if not self._cache_options.enabled or not self.cache.is_enabled() or not resource_id:
            return 0
        request_id = generate_request_id()
        count = await self.cache.invalidate_resource(self.resource_name, str(resource_id))
        logger.debug(
            f"Invalidated {count} cache entries for {self.resource_name} "
            f"with ID {resource_id} [{request_id}]"
        )
        self.audit.log_cache_operation(
            self.resource_name,
            "invalidate_by_id",
            request_id,
            resource_id=str(resource_id),
            details={"count": count},
        )
        return count

    # Request handling

    def validate_params(self, uri: str) -> BaseModel:
        return extract_and_validate_params(
            uri,
            self.definition.uri_template,
            self.definition.params_schema,
            self.resource_name,
            ignore=RESERVED_QUERY_PARAMS,
        )

    def get_resource_id(self, params: BaseModel) -> str | None:
        if self.definition.id_extractor is not None:
            return self.definition.id_extractor(params)
        if self.definition.id_param:
            value = getattr(params, self.definition.id_param, None)
            return None if value is None else str(value)
        return None

    @staticmethod
    def extract_client_info(uri: str) -> dict[str, str | None]:
        query = parse_query(uri)
        return {"user_id": query.get("userId"), "ip_address": query.get("ipAddress")}

    async def before_lookup(self, params: BaseModel) -> None:
        """Hook run after validation and before the cache lookup."""
        return None

    async def handle_request(
        self,
        uri: str,
        variables: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """
        Resolve ``uri`` to a response envelope.

        ``variables`` are the host's own extraction and only logged; the URI
        is matched again against this handler's template.

        Raises:
            MaasApiError: every failure, already normalized
        """
        request_id = generate_request_id()
        client_info = self.extract_client_info(uri)
        fmt = parse_query(uri).get("format")
        if variables:
            logger.debug(f"{self.resource_name} request variables from host: {variables}")

        try:
            params = self.validate_params(uri)
        except MaasApiError as e:
            self.audit.log_resource_access_failure(
                self.resource_name,
                None,
                "read",
                request_id,
                e,
                client_info["user_id"],
                client_info["ip_address"],
                {"uri": uri},
            )
            raise

        resource_id = self.get_resource_id(params)
        id_message = f": {resource_id}" if resource_id else ""
        logger.info(f"Fetching {self.resource_name}{id_message} [{request_id}]")
        self.audit.log_resource_access(
            self.resource_name,
            resource_id,
            "read",
            request_id,
            client_info["user_id"],
            client_info["ip_address"],
            {"uri": uri, "params": params.model_dump(mode="json", exclude_none=True)},
        )

        # Snapshot: a concurrent set_cache_options() does not affect this request
        options = self._cache_options
        ttl = self._ttl(options)
        caching = options.enabled and self.cache.is_enabled()

        await self.before_lookup(params)

        cache_key = None
        if caching:
            cache_key = self._cache_key(uri, params, options, resource_id)
        if cache_key is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for {self.resource_name}{id_message}")
                self.audit.log_cache_operation(
                    self.resource_name, "hit", request_id, resource_id, {"entry": cache_key}
                )
                return build_response(
                    uri, cached.data, self.resource_name, options, ttl, True,
                    age=cached.age, fmt=fmt,
                )
            logger.debug(f"Cache miss for {self.resource_name}{id_message}")
            self.audit.log_cache_operation(
                self.resource_name, "miss", request_id, resource_id, {"entry": cache_key}
            )

        try:
            raw = await self.fetch_resource_data(params, token)
            data = self.validate_data(raw, resource_id)
        except Exception as e:
            error = normalize_fetch_error(
                e,
                self.resource_name,
                resource_id,
                {"request_id": request_id, "uri": uri},
                self.audit,
            )
            if error is e:
                raise
            raise error from e

        payload = self._data_adapter.dump_python(data, mode="json")
        self.log_success(payload, resource_id, request_id)
        self.audit.log_resource_access(
            self.resource_name,
            resource_id,
            "read",
            request_id,
            client_info["user_id"],
            client_info["ip_address"],
            after_state=payload,
        )

        if cache_key is not None:
            entry = await self.cache.set(cache_key, payload, self.resource_name, options)
            if entry is not None:
                self.audit.log_cache_operation(
                    self.resource_name,
                    "set",
                    request_id,
                    resource_id,
                    {"entry": cache_key, "ttl": entry.ttl.total_seconds()},
                )

        return build_response(uri, payload, self.resource_name, options, ttl, caching, fmt=fmt)

    def _cache_key(
        self,
        uri: str,
        params: BaseModel,
        options: CacheOptions,
        resource_id: str | None,
    ) -> str | None:
        # Path placeholders are already in the key's path and id parts
        path_names = {p.name for p in self.template.placeholders}
        try:
            return self.cache.generate_key(
                self.resource_name,
                uri,
                params.model_dump(mode="json", exclude_none=True, exclude=path_names),
                options,
                resource_id,
            )
        except Exception as e:
            logger.warning(f"Could not build cache key for {self.resource_name}, bypassing cache: {e}")
            return None

    def build_path(self, params: BaseModel) -> str:
        return self.definition.endpoint.format(**params.model_dump())

    async def fetch_resource_data(
        self, params: BaseModel, token: CancellationToken | None
    ) -> Any:
        """Fetch the raw payload from MAAS."""
        query = dict(self.definition.static_query)
        if self.definition.fetch is not None:
            return await self.definition.fetch(self.client, params, query, token)
        return await self.client.get(self.build_path(params), query or None, token)

    def validate_data(self, data: Any, resource_id: str | None = None) -> Any:
        return validate_resource_data(
            data, self._data_adapter, self.resource_name, resource_id
        )

    def log_success(self, payload: Any, resource_id: str | None, request_id: str) -> None:
        id_message = f" for {resource_id}" if resource_id else ""
        logger.info(f"Successfully fetched {self.resource_name}{id_message} [{request_id}]")


class DetailResourceHandler(ResourceHandler):
    """A single resource addressed by id."""

    async def fetch_resource_data(
        self, params: BaseModel, token: CancellationToken | None
    ) -> Any:
        resource_id = self.get_resource_id(params)
        if not resource_id or not resource_id.strip():
            logger.error(f"{self.resource_name} ID is missing or empty in the resource URI")
            raise MaasApiError(
                f"{self.resource_name} ID is missing or empty in the resource URI",
                400,
                ErrorCode.INVALID_PARAMETERS,
            )

        data = await super().fetch_resource_data(params, token)

        if not data:
            logger.error(f"{self.resource_name} not found: {resource_id}")
            raise MaasApiError(
                f"{self.resource_name} '{resource_id}' not found",
                404,
                ErrorCode.RESOURCE_NOT_FOUND,
            )
        return data


class ListResourceHandler(ResourceHandler):
    """A collection; validated query parameters are forwarded as filters."""

    def _build_adapter(self) -> TypeAdapter:
        return TypeAdapter(list[self.definition.data_schema])

    @property
    def filter_params(self) -> tuple[str, ...]:
        if self.definition.filter_params is not None:
            return self.definition.filter_params
        skip = set(BaseCollectionQueryParams.model_fields)
        if self.definition.id_param:
            skip.add(self.definition.id_param)
        return tuple(
            name for name in self.definition.params_schema.model_fields if name not in skip
        )

    def has_filters(self, params: BaseModel) -> bool:
        return any(getattr(params, name, None) is not None for name in self.filter_params)

    async def before_lookup(self, params: BaseModel) -> None:
        # A filtered read always reaches MAAS and refreshes the kind
        if self.has_filters(params):
            await self.invalidate_cache()

    def build_query(self, params: BaseModel) -> dict[str, Any]:
        exclude = {self.definition.id_param} if self.definition.id_param else set()
        query: dict[str, Any] = dict(self.definition.static_query)
        for name, value in params.model_dump(exclude_none=True, exclude=exclude).items():
            if isinstance(value, bool):
                query[name] = "true" if value else "false"
            elif isinstance(value, list):
                query[name] = [str(v) for v in value]
            else:
                query[name] = str(value)
        return query

    async def fetch_resource_data(
        self, params: BaseModel, token: CancellationToken | None
    ) -> Any:
        query = self.build_query(params)
        if self.definition.fetch is not None:
            return await self.definition.fetch(self.client, params, query, token)
        return await self.client.get(self.build_path(params), query or None, token)

    def log_success(self, payload: Any, resource_id: str | None, request_id: str) -> None:
        logger.info(f"Successfully fetched {len(payload)} {self.resource_name} [{request_id}]")


class ResourceRegistryProtocol(Protocol):
    """What a handler needs from a host registry."""

    def register(
        self,
        name: str,
        template: str,
        callback: Callable[..., Awaitable[dict[str, Any]]],
    ) -> None:
        ...


def create_handler(
    definition: ResourceDefinition,
    client: MaasApiClient,
    cache: ResourceCache,
    audit: AuditLogger | None = None,
) -> ResourceHandler:
    """Build the handler class matching ``definition.kind``."""
    handler_cls = ListResourceHandler if definition.kind == "list" else DetailResourceHandler
    return handler_cls(definition, client, cache, audit)
