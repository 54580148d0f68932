"""
Pydantic schemas for MAAS resources.

Two families live here:
- request parameter schemas, validated from the raw strings of a URI
  (path placeholders and query string); coercion happens during validation
- payload schemas, validated against what the MAAS API returns; unknown
  fields are kept so nothing the API sends is lost
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _split_csv(value):
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


# ---------------------------------------------------------------------------
# Path parameters


class GetMachineParams(BaseModel):
    system_id: str = Field(min_length=1, description="MAAS system_id of the machine")


class GetDeviceParams(BaseModel):
    system_id: str = Field(min_length=1, description="MAAS system_id of the device")


class GetSubnetParams(BaseModel):
    subnet_id: int = Field(ge=0, description="Numeric subnet id")


class GetZoneParams(BaseModel):
    zone_id: int = Field(ge=0, description="Numeric zone id")


class GetDomainParams(BaseModel):
    domain_id: int = Field(ge=0, description="Numeric domain id")


class GetTagParams(BaseModel):
    tag_name: str = Field(
        min_length=1,
        pattern=r"^[a-zA-Z0-9_-]+$",
        description="Tag name: letters, digits, underscores and hyphens",
    )


# ---------------------------------------------------------------------------
# Collection query parameters


class BaseCollectionQueryParams(BaseModel):
    """Pagination and sorting accepted by every list resource."""

    model_config = ConfigDict(extra="forbid")

    limit: int | None = Field(default=None, gt=0)
    offset: int | None = Field(default=None, ge=0)
    page: int | None = Field(default=None, gt=0)
    per_page: int | None = Field(default=None, gt=0)
    sort: str | None = None
    order: Literal["asc", "desc"] | None = None


class MachineCollectionQueryParams(BaseCollectionQueryParams):
    hostname: str | None = None
    status: str | None = None
    zone: str | None = None
    pool: str | None = None
    tags: str | None = None
    owner: str | None = None
    architecture: str | None = None
    mac_addresses: list[str] | None = None
    tag_names: list[str] | None = None
    cpu_count: int | None = Field(default=None, gt=0)
    memory: int | None = Field(default=None, gt=0)
    power_state: str | None = None
    locked: bool | None = None

    @field_validator("mac_addresses", "tag_names", mode="before")
    @classmethod
    def split_lists(cls, value):
        return _split_csv(value)


class DeviceCollectionQueryParams(BaseCollectionQueryParams):
    hostname: str | None = None
    mac_address: str | None = None
    domain: str | None = None
    zone: str | None = None
    owner: str | None = None


class SubnetCollectionQueryParams(BaseCollectionQueryParams):
    name: str | None = None
    cidr: str | None = None
    vlan: str | None = None
    fabric: str | None = None
    space: str | None = None


class ZoneCollectionQueryParams(BaseCollectionQueryParams):
    name: str | None = None


class DomainCollectionQueryParams(BaseCollectionQueryParams):
    name: str | None = None
    authoritative: bool | None = None


class TagCollectionQueryParams(BaseCollectionQueryParams):
    name: str | None = None


class TagMachinesParams(BaseCollectionQueryParams):
    tag_name: str = Field(min_length=1, pattern=r"^[a-zA-Z0-9_-]+$")


# ---------------------------------------------------------------------------
# Payloads


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


class MaasMachine(_Payload):
    system_id: str
    hostname: str
    fqdn: str | None = None
    status_name: str | None = None
    architecture: str | None = None
    cpu_count: int | None = None
    memory: int | None = None
    power_state: str | None = None
    zone: dict | None = None
    pool: dict | None = None
    tag_names: list[str] = Field(default_factory=list)
    ip_addresses: list[str] = Field(default_factory=list)


class MaasDevice(_Payload):
    system_id: str
    hostname: str
    fqdn: str | None = None
    owner: str | None = None
    zone: dict | None = None
    ip_addresses: list[str] = Field(default_factory=list)
    tag_names: list[str] = Field(default_factory=list)


class MaasSubnet(_Payload):
    id: int
    name: str
    cidr: str
    vlan: dict | None = None
    gateway_ip: str | None = None
    dns_servers: list[str] = Field(default_factory=list)
    managed: bool | None = None


class MaasZone(_Payload):
    id: int
    name: str
    description: str = ""


class MaasDomain(_Payload):
    id: int
    name: str
    authoritative: bool | None = None
    ttl: int | None = None
    resource_record_count: int | None = None


class MaasTag(_Payload):
    name: str
    definition: str = ""
    comment: str = ""
    kernel_opts: str | None = None
