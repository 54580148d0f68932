"""Tests for response envelope formatting."""

import json
from datetime import timedelta

from maasbridge.resources.formatter import (
    build_cache_control,
    build_response,
    compute_etag,
    serialize,
    to_xml,
)
from maasbridge.services.cache import CacheControl, CacheOptions


class TestCacheControl:
    def test_inactive_is_no_store(self) -> None:
        assert build_cache_control(CacheOptions(), timedelta(seconds=60), False) == "no-store"

    def test_directives(self) -> None:
        options = CacheOptions(cache_control=CacheControl(private=True, must_revalidate=True, immutable=True))
        assert (
            build_cache_control(options, timedelta(seconds=90), True)
            == "max-age=90, private, must-revalidate, immutable"
        )


class TestSerialize:
    def test_json_default(self) -> None:
        text, mime = serialize({"a": 1}, "Zone")
        assert mime == "application/json"
        assert json.loads(text) == {"a": 1}

    def test_xml_detail(self) -> None:
        text = to_xml({"id": 1, "name": "default", "managed": True, "vlan": None}, "Zone")
        assert text == (
            '<?xml version="1.0" encoding="UTF-8"?>'
            "<zone><id>1</id><name>default</name><managed>true</managed></zone>"
        )

    def test_xml_list_and_nested_lists(self) -> None:
        text = to_xml([{"name": "t", "tag_names": ["a", "b"]}], "Tags")
        assert text.endswith(
            "<tags><tag><name>t</name>"
            "<tag_names><tag_name>a</tag_name><tag_name>b</tag_name></tag_names>"
            "</tag></tags>"
        )

    def test_unknown_format_falls_back_to_json(self) -> None:
        _, mime = serialize([], "Zones", "yaml")
        assert mime == "application/json"


class TestBuildResponse:
    def test_envelope(self) -> None:
        response = build_response(
            "maas://zone/1/details", {"id": 1}, "Zone", CacheOptions(), timedelta(seconds=10), True, age=3.7
        )
        [item] = response["contents"]
        assert item["uri"] == "maas://zone/1/details"
        assert item["headers"] == {
            "Content-Type": "application/json",
            "Cache-Control": "max-age=10",
            "ETag": compute_etag(item["text"]),
            "Age": "3",
        }

    def test_etag_depends_on_content(self) -> None:
        assert compute_etag("a") != compute_etag("b")
        assert compute_etag("a").startswith('"') and compute_etag("a").endswith('"')
