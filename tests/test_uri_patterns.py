"""Tests for URI template matching and query parsing."""

import pytest

from maasbridge.resources.uri_patterns import (
    MACHINE_DETAILS_URI_PATTERN,
    MACHINES_LIST_URI_PATTERN,
    TAG_MACHINES_URI_PATTERN,
    UriTemplate,
    compile_template,
    extract_params_from_uri,
    parse_query,
)
from maasbridge.services.errors import MaasApiError


class TestRequiredPlaceholders:
    """Plain ``{name}`` placeholders."""

    def test_extracts_value(self) -> None:
        result = compile_template(MACHINE_DETAILS_URI_PATTERN).match("maas://machine/abc123/details")
        assert result is not None
        assert result.params == {"system_id": "abc123"}

    def test_value_cannot_be_empty(self) -> None:
        assert compile_template(MACHINE_DETAILS_URI_PATTERN).match("maas://machine//details") is None

    def test_value_does_not_cross_slash(self) -> None:
        assert compile_template(MACHINE_DETAILS_URI_PATTERN).match("maas://machine/a/b/details") is None

    def test_match_is_anchored(self) -> None:
        template = compile_template(MACHINE_DETAILS_URI_PATTERN)
        assert template.match("maas://machine/abc/details/extra") is None
        assert template.match("xmaas://machine/abc/details") is None

    def test_match_is_case_sensitive(self) -> None:
        assert compile_template(MACHINE_DETAILS_URI_PATTERN).match("maas://Machine/abc/details") is None

    def test_value_returned_verbatim(self) -> None:
        result = compile_template(TAG_MACHINES_URI_PATTERN).match("maas://tag/My%20Tag/machines")
        assert result is not None
        assert result.params == {"tag_name": "My%20Tag"}

    def test_template_without_placeholders(self) -> None:
        result = compile_template(MACHINES_LIST_URI_PATTERN).match("maas://machines/list")
        assert result is not None
        assert result.params == {}


class TestOptionalPlaceholders:
    """``{name?}`` placeholders may be absent together with their slash."""

    def test_optional_in_middle_present(self) -> None:
        result = UriTemplate("maas://x/{a?}/y").match("maas://x/v/y")
        assert result is not None
        assert result.params == {"a": "v"}

    def test_optional_in_middle_absent(self) -> None:
        result = UriTemplate("maas://x/{a?}/y").match("maas://x/y")
        assert result is not None
        assert result.params == {"a": ""}

    def test_optional_at_end(self) -> None:
        template = UriTemplate("maas://machines/{page?}")
        assert template.match("maas://machines/2").params == {"page": "2"}
        assert template.match("maas://machines").params == {"page": ""}


class TestEnumPlaceholders:
    """``{name:a|b}`` placeholders accept only listed literals."""

    def test_listed_value_matches(self) -> None:
        result = UriTemplate("maas://machine/{id}/{view:details|power}").match("maas://machine/m1/power")
        assert result is not None
        assert result.params == {"id": "m1", "view": "power"}

    def test_unlisted_value_rejected(self) -> None:
        assert UriTemplate("maas://machine/{id}/{view:details|power}").match("maas://machine/m1/other") is None

    def test_enum_literals_are_escaped(self) -> None:
        template = UriTemplate("maas://f/{fmt:a.b|c}")
        assert template.match("maas://f/a.b") is not None
        assert template.match("maas://f/axb") is None


class TestTemplateCompilation:
    def test_duplicate_placeholder_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate placeholder"):
            UriTemplate("maas://{a}/{a}")

    def test_compiled_templates_are_reused(self) -> None:
        assert compile_template("maas://x/{a}") is compile_template("maas://x/{a}")


class TestQueryParsing:
    """Query strings are parsed separately from the path."""

    def test_query_not_part_of_path_match(self) -> None:
        result = compile_template(MACHINES_LIST_URI_PATTERN).match("maas://machines/list?hostname=node1")
        assert result is not None
        assert result.query == {"hostname": "node1"}

    def test_values_are_decoded(self) -> None:
        assert parse_query("maas://x?name=a%20b&z=1+2") == {"name": "a b", "z": "1 2"}

    def test_blank_values_kept(self) -> None:
        assert parse_query("maas://x?status=") == {"status": ""}

    def test_repeated_key_last_value_wins(self) -> None:
        """A repeated key collapses to its last occurrence."""
        assert parse_query("maas://machines/list?status=ready&status=deployed") == {
            "status": "deployed"
        }

    def test_fragment_is_ignored(self) -> None:
        assert parse_query("maas://x?a=1#frag") == {"a": "1"}

    def test_no_query(self) -> None:
        assert parse_query("maas://x") == {}


class TestExtractParamsFromUri:
    def test_path_wins_over_query(self) -> None:
        params = extract_params_from_uri(
            "maas://machine/abc/details?system_id=other&x=1", MACHINE_DETAILS_URI_PATTERN
        )
        assert params == {"system_id": "abc", "x": "1"}

    def test_mismatch_raises_invalid_parameters(self) -> None:
        with pytest.raises(MaasApiError) as exc_info:
            extract_params_from_uri("maas://zone/1/details", MACHINE_DETAILS_URI_PATTERN)
        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "invalid_parameters"
