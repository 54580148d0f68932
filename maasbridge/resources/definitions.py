"""
The MAAS resource kinds served by the bridge.

Each kind is a ResourceDefinition; ``create_handlers`` builds one handler per
kind and ``register_all`` binds them into a registry under their public names.
"""

from datetime import timedelta
from typing import Any

from loguru import logger
from pydantic import BaseModel

from maasbridge.resources.handler import (
    ResourceDefinition,
    ResourceHandler,
    ResourceRegistryProtocol,
    create_handler,
)
from maasbridge.resources.schemas import (
    DeviceCollectionQueryParams,
    DomainCollectionQueryParams,
    GetDeviceParams,
    GetDomainParams,
    GetMachineParams,
    GetSubnetParams,
    GetTagParams,
    GetZoneParams,
    MaasDevice,
    MaasDomain,
    MaasMachine,
    MaasSubnet,
    MaasTag,
    MaasZone,
    MachineCollectionQueryParams,
    SubnetCollectionQueryParams,
    TagCollectionQueryParams,
    TagMachinesParams,
    ZoneCollectionQueryParams,
)
from maasbridge.resources.uri_patterns import (
    DEVICE_DETAILS_URI_PATTERN,
    DEVICES_LIST_URI_PATTERN,
    DOMAIN_DETAILS_URI_PATTERN,
    DOMAINS_LIST_URI_PATTERN,
    MACHINE_DETAILS_URI_PATTERN,
    MACHINES_LIST_URI_PATTERN,
    SUBNET_DETAILS_URI_PATTERN,
    SUBNETS_LIST_URI_PATTERN,
    TAG_DETAILS_URI_PATTERN,
    TAG_MACHINES_URI_PATTERN,
    TAGS_LIST_URI_PATTERN,
    ZONE_DETAILS_URI_PATTERN,
    ZONES_LIST_URI_PATTERN,
)
from maasbridge.services.audit import AuditLogger
from maasbridge.services.cache import CacheControl, CacheOptions, ResourceCache
from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.client import MaasApiClient
from maasbridge.services.errors import ErrorCode, MaasApiError


async def fetch_tag_machines(
    client: MaasApiClient,
    params: BaseModel,
    query: dict[str, Any],
    token: CancellationToken | None,
) -> Any:
    """Machines carrying a tag; a missing tag is reported as 404."""
    tag_name = params.tag_name
    try:
        await client.get(f"/tags/{tag_name}/", None, token)
    except MaasApiError as e:
        if e.status_code == 404:
            logger.error(f"Tag not found: {tag_name}")
            raise MaasApiError(
                f"Tag '{tag_name}' not found", 404, ErrorCode.RESOURCE_NOT_FOUND
            ) from e
        logger.warning(
            f"Error checking tag existence for {tag_name}: {e.message}. "
            "Proceeding with machines request."
        )

    return await client.get("/machines/", {**query, "tags": tag_name}, token)


MACHINE_DETAILS = ResourceDefinition(
    name="Machine",
    uri_template=MACHINE_DETAILS_URI_PATTERN,
    params_schema=GetMachineParams,
    data_schema=MaasMachine,
    endpoint="/machines/{system_id}/",
    id_param="system_id",
    cache_options=CacheOptions(
        ttl=timedelta(seconds=60),
        cache_control=CacheControl(must_revalidate=True),
    ),
)

MACHINES_LIST = ResourceDefinition(
    name="Machines",
    uri_template=MACHINES_LIST_URI_PATTERN,
    params_schema=MachineCollectionQueryParams,
    data_schema=MaasMachine,
    endpoint="/machines/",
    kind="list",
    cache_options=CacheOptions(
        ttl=timedelta(seconds=30),
        cache_control=CacheControl(must_revalidate=True),
    ),
)

DEVICE_DETAILS = ResourceDefinition(
    name="Device",
    uri_template=DEVICE_DETAILS_URI_PATTERN,
    params_schema=GetDeviceParams,
    data_schema=MaasDevice,
    endpoint="/devices/{system_id}/",
    id_param="system_id",
)

DEVICES_LIST = ResourceDefinition(
    name="Devices",
    uri_template=DEVICES_LIST_URI_PATTERN,
    params_schema=DeviceCollectionQueryParams,
    data_schema=MaasDevice,
    endpoint="/devices/",
    kind="list",
)

SUBNET_DETAILS = ResourceDefinition(
    name="Subnet",
    uri_template=SUBNET_DETAILS_URI_PATTERN,
    params_schema=GetSubnetParams,
    data_schema=MaasSubnet,
    endpoint="/subnets/{subnet_id}/",
    id_param="subnet_id",
)

SUBNETS_LIST = ResourceDefinition(
    name="Subnets",
    uri_template=SUBNETS_LIST_URI_PATTERN,
    params_schema=SubnetCollectionQueryParams,
    data_schema=MaasSubnet,
    endpoint="/subnets/",
    kind="list",
)

ZONE_DETAILS = ResourceDefinition(
    name="Zone",
    uri_template=ZONE_DETAILS_URI_PATTERN,
    params_schema=GetZoneParams,
    data_schema=MaasZone,
    endpoint="/zones/{zone_id}/",
    id_param="zone_id",
)

ZONES_LIST = ResourceDefinition(
    name="Zones",
    uri_template=ZONES_LIST_URI_PATTERN,
    params_schema=ZoneCollectionQueryParams,
    data_schema=MaasZone,
    endpoint="/zones/",
    kind="list",
)

DOMAIN_DETAILS = ResourceDefinition(
    name="Domain",
    uri_template=DOMAIN_DETAILS_URI_PATTERN,
    params_schema=GetDomainParams,
    data_schema=MaasDomain,
    endpoint="/domains/{domain_id}/",
    id_param="domain_id",
)

DOMAINS_LIST = ResourceDefinition(
    name="Domains",
    uri_template=DOMAINS_LIST_URI_PATTERN,
    params_schema=DomainCollectionQueryParams,
    data_schema=MaasDomain,
    endpoint="/domains/",
    kind="list",
)

TAG_DETAILS = ResourceDefinition(
    name="Tag",
    uri_template=TAG_DETAILS_URI_PATTERN,
    params_schema=GetTagParams,
    data_schema=MaasTag,
    endpoint="/tags/{tag_name}/",
    id_param="tag_name",
)

TAGS_LIST = ResourceDefinition(
    name="Tags",
    uri_template=TAGS_LIST_URI_PATTERN,
    params_schema=TagCollectionQueryParams,
    data_schema=MaasTag,
    endpoint="/tags/",
    kind="list",
)

TAG_MACHINES = ResourceDefinition(
    name="TagMachines",
    uri_template=TAG_MACHINES_URI_PATTERN,
    params_schema=TagMachinesParams,
    data_schema=MaasMachine,
    endpoint="/machines/",
    kind="list",
    id_param="tag_name",
    fetch=fetch_tag_machines,
)

# Public registration name -> definition
RESOURCE_DEFINITIONS: dict[str, ResourceDefinition] = {
    "maas_machine_details": MACHINE_DETAILS,
    "maas_machines_list": MACHINES_LIST,
    "maas_device_details": DEVICE_DETAILS,
    "maas_devices_list": DEVICES_LIST,
    "maas_subnet_details": SUBNET_DETAILS,
    "maas_subnets_list": SUBNETS_LIST,
    "maas_zone_details": ZONE_DETAILS,
    "maas_zones_list": ZONES_LIST,
    "maas_domain_details": DOMAIN_DETAILS,
    "maas_domains_list": DOMAINS_LIST,
    "maas_tag_details": TAG_DETAILS,
    "maas_tags_list": TAGS_LIST,
    "maas_tag_machines": TAG_MACHINES,
}


def create_handlers(
    client: MaasApiClient,
    cache: ResourceCache,
    audit: AuditLogger | None = None,
) -> dict[str, ResourceHandler]:
    """One handler per resource kind, keyed by registration name."""
    return {
        name: create_handler(definition, client, cache, audit)
        for name, definition in RESOURCE_DEFINITIONS.items()
    }


def register_all(
    registry: ResourceRegistryProtocol,
    client: MaasApiClient,
    cache: ResourceCache,
    audit: AuditLogger | None = None,
) -> dict[str, ResourceHandler]:
    handlers = create_handlers(client, cache, audit)
    for name, handler in handlers.items():
        handler.register(registry, name)
    logger.info(f"Registered {len(handlers)} MAAS resources")
    return handlers
