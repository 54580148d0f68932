"""
URI templates for MAAS resources.

A template is a URI with placeholders:

- ``{name}``      one or more characters up to the next ``/``
- ``{name?}``     optional; may be empty, and the ``/`` that separates it
                  from the neighbouring literal may be left out too
- ``{name:a|b}``  exactly one of the listed literals (``{name?:a|b}`` for
                  an optional enum)

Matching is anchored on the whole path, case-sensitive, and returns values
verbatim. The query string is not part of the path match; it is parsed into a
flat mapping where the last occurrence of a repeated key wins.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import parse_qsl

from maasbridge.services.errors import ErrorCode, MaasApiError

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(\?)?(?::([^{}]+))?\}")
_SEGMENT = r"[^/?#]"

# Resource URI templates
MACHINE_DETAILS_URI_PATTERN = "maas://machine/{system_id}/details"
MACHINES_LIST_URI_PATTERN = "maas://machines/list"
DEVICE_DETAILS_URI_PATTERN = "maas://device/{system_id}/details"
DEVICES_LIST_URI_PATTERN = "maas://devices/list"
SUBNET_DETAILS_URI_PATTERN = "maas://subnet/{subnet_id}/details"
SUBNETS_LIST_URI_PATTERN = "maas://subnets/list"
ZONE_DETAILS_URI_PATTERN = "maas://zone/{zone_id}/details"
ZONES_LIST_URI_PATTERN = "maas://zones/list"
DOMAIN_DETAILS_URI_PATTERN = "maas://domain/{domain_id}/details"
DOMAINS_LIST_URI_PATTERN = "maas://domains/list"
TAG_DETAILS_URI_PATTERN = "maas://tag/{tag_name}/details"
TAGS_LIST_URI_PATTERN = "maas://tags/list"
TAG_MACHINES_URI_PATTERN = "maas://tag/{tag_name}/machines"


@dataclass(frozen=True)
class Placeholder:
    name: str
    optional: bool = False
    enum: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    """Values extracted from a URI that matched a template."""

    params: dict[str, str]
    query: dict[str, str] = field(default_factory=dict)

    @property
    def variables(self) -> dict[str, str]:
        """Query values overlaid with path values (path wins)."""
        return {**self.query, **self.params}


class UriTemplate:
    """Compiled URI template."""

    def __init__(self, template: str):
        self.template = template
        self.placeholders: list[Placeholder] = []
        self._regex = self._compile(template)

    def _compile(self, template: str) -> re.Pattern[str]:
        pieces: list[str] = []
        literals = _PLACEHOLDER.split(template)
        # split() yields: literal, name, optional, enum, literal, name, ...
        texts = literals[0::4]
        specs = [literals[i : i + 3] for i in range(1, len(literals), 4)]

        seen: set[str] = set()
        for name, optional, enum in specs:
            if name in seen:
                raise ValueError(f"Duplicate placeholder '{name}' in template {template!r}")
            seen.add(name)
            self.placeholders.append(
                Placeholder(
                    name=name,
                    optional=bool(optional),
                    enum=tuple(enum.split("|")) if enum else (),
                )
            )

        group_names = {f"p{i}": p.name for i, p in enumerate(self.placeholders)}
        self._group_names = group_names

        before = texts[0]
        for index, placeholder in enumerate(self.placeholders):
            after = texts[index + 1]
            group = f"p{index}"
            if placeholder.enum:
                body = "|".join(re.escape(v) for v in placeholder.enum)
                value = f"(?P<{group}>{body})"
            elif placeholder.optional:
                value = f"(?P<{group}>{_SEGMENT}*)"
            else:
                value = f"(?P<{group}>{_SEGMENT}+)"

            if placeholder.optional and after.startswith("/"):
                # "{x?}/rest": the value and its trailing slash may both be absent
                pieces.append(re.escape(before))
                pieces.append(f"(?:{value}/)?")
                before = after[1:]
            elif placeholder.optional and before.endswith("/") and after == "":
                # ".../{x?}" at the end: the leading slash goes with the value
                pieces.append(re.escape(before[:-1]))
                pieces.append(f"(?:/{value})?")
                before = after
            else:
                pieces.append(re.escape(before))
                pieces.append(value if not placeholder.optional else f"{value}?")
                before = after
        pieces.append(re.escape(before))

        return re.compile("^" + "".join(pieces) + "$")

    def match(self, uri: str) -> MatchResult | None:
        """Match ``uri`` against the template; None when it does not match."""
        path = split_uri(uri)[0]
        m = self._regex.match(path)
        if m is None:
            return None
        params = {
            name: (m.group(group) or "") for group, name in self._group_names.items()
        }
        return MatchResult(params=params, query=parse_query(uri))

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"


@lru_cache(maxsize=256)
def compile_template(template: str) -> UriTemplate:
    return UriTemplate(template)


def split_uri(uri: str) -> tuple[str, str]:
    """Split a URI into (path part, query string), dropping any fragment."""
    uri = uri.split("#", 1)[0]
    path, _, query = uri.partition("?")
    return path, query


def parse_query(uri: str) -> dict[str, str]:
    """
    Flat query mapping for ``uri``.

    Repeated keys collapse to the last value.
    """
    query = split_uri(uri)[1]
    if not query:
        return {}
    return dict(parse_qsl(query, keep_blank_values=True))


def extract_params_from_uri(uri: str, template: str) -> dict[str, str]:
    """
    Query and path parameters of ``uri`` matched against ``template``.

    Raises:
        MaasApiError: (400, invalid_parameters) when the URI does not match
    """
    result = compile_template(template).match(uri)
    if result is None:
        raise MaasApiError(
            f"URI '{uri}' does not match pattern '{template}'",
            400,
            ErrorCode.INVALID_PARAMETERS,
            {"uri": uri, "pattern": template},
        )
    return result.variables
