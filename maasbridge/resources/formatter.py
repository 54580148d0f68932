"""
Response envelope formatting for resource reads.
"""

import hashlib
import json
import re
import xml.etree.ElementTree as ET
from datetime import timedelta
from typing import Any

from loguru import logger

from maasbridge.services.cache import CacheOptions

JSON_MIME_TYPE = "application/json"
XML_MIME_TYPE = "application/xml"

_INVALID_TAG_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def build_cache_control(options: CacheOptions, ttl: timedelta, active: bool) -> str:
    """Cache-Control value for the active options (``no-store`` when not caching)."""
    if not active:
        return "no-store"
    directives = [f"max-age={int(ttl.total_seconds())}"]
    if options.cache_control.private:
        directives.append("private")
    if options.cache_control.must_revalidate:
        directives.append("must-revalidate")
    if options.cache_control.immutable:
        directives.append("immutable")
    return ", ".join(directives)


def compute_etag(text: str) -> str:
    return f'"{hashlib.md5(text.encode("utf-8")).hexdigest()}"'


def _tag(name: str) -> str:
    tag = _INVALID_TAG_CHARS.sub("_", str(name)) or "item"
    if not (tag[0].isalpha() or tag[0] == "_"):
        tag = f"_{tag}"
    return tag


def _plural_pair(name: str) -> tuple[str, str]:
    """(wrapper, item) element names for a list called ``name``."""
    if name.endswith("s") and len(name) > 1:
        return name, name[:-1]
    return f"{name}s", name


def _append(parent: ET.Element, name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, list):
        plural, singular = _plural_pair(str(name))
        container = ET.SubElement(parent, _tag(plural))
        for item in value:
            _append(container, singular, item)
        return
    element = ET.SubElement(parent, _tag(name))
    if isinstance(value, dict):
        for key, child in value.items():
            _append(element, key, child)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)


def to_xml(data: Any, resource_name: str) -> str:
    """
    Render JSON-compatible data as XML.

    Lists become a plural wrapper element with one child per item.
    """
    root_name = _tag(resource_name.lower().replace(" ", "_"))
    if isinstance(data, list):
        plural, singular = _plural_pair(root_name)
        root = ET.Element(plural)
        for item in data:
            _append(root, singular, item)
    elif isinstance(data, dict):
        root = ET.Element(root_name)
        for key, value in data.items():
            _append(root, key, value)
    else:
        root = ET.Element(root_name)
        root.text = "" if data is None else str(data)
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>{body}'


def serialize(
    data: Any, resource_name: str, fmt: str | None = None
) -> tuple[str, str]:
    """Return (text, mime type); falls back to JSON when XML rendering fails."""
    if fmt and fmt.lower() == "xml":
        try:
            return to_xml(data, resource_name), XML_MIME_TYPE
        except Exception as e:
            logger.warning(
                f"Failed to convert {resource_name} to XML format, falling back to JSON: {e}"
            )
    return json.dumps(data), JSON_MIME_TYPE


def build_response(
    uri: str,
    data: Any,
    resource_name: str,
    options: CacheOptions,
    ttl: timedelta,
    caching_active: bool,
    age: float | None = None,
    fmt: str | None = None,
) -> dict[str, Any]:
    """
    Build the resource response envelope.

    ``age`` is given only for cache hits and becomes the ``Age`` header.
    """
    text, mime_type = serialize(data, resource_name, fmt)
    headers = {
        "Content-Type": mime_type,
        "Cache-Control": build_cache_control(options, ttl, caching_active),
        "ETag": compute_etag(text),
    }
    if age is not None:
        headers["Age"] = str(max(0, int(age)))

    return {
        "contents": [
            {
                "uri": uri,
                "text": text,
                "mimeType": mime_type,
                "headers": headers,
            }
        ]
    }
