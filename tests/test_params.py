"""Tests for parameter extraction and validation."""

import pytest

from maasbridge.resources import params as params_module
from maasbridge.resources.params import extract_and_validate_params, validate_params
from maasbridge.resources.schemas import (
    GetSubnetParams,
    GetTagParams,
    MachineCollectionQueryParams,
)
from maasbridge.resources.uri_patterns import (
    MACHINES_LIST_URI_PATTERN,
    SUBNET_DETAILS_URI_PATTERN,
    TAG_DETAILS_URI_PATTERN,
)
from maasbridge.services.errors import MaasApiError


class TestValidateParams:
    def test_coerces_types(self) -> None:
        params = validate_params({"subnet_id": "7"}, GetSubnetParams, "Subnet")
        assert params.subnet_id == 7

    def test_invalid_value_reports_issues(self) -> None:
        with pytest.raises(MaasApiError) as exc_info:
            validate_params({"subnet_id": "seven"}, GetSubnetParams, "Subnet")
        err = exc_info.value
        assert err.status_code == 400
        assert err.error_code == "invalid_parameters"
        assert err.details["issues"][0]["loc"] == ["subnet_id"]

    def test_tag_name_charset(self) -> None:
        assert validate_params({"tag_name": "gpu_nodes-1"}, GetTagParams, "Tag").tag_name == "gpu_nodes-1"
        with pytest.raises(MaasApiError):
            validate_params({"tag_name": "bad tag!"}, GetTagParams, "Tag")

    def test_collection_lists_split_on_commas(self) -> None:
        params = validate_params(
            {"mac_addresses": "aa:bb, cc:dd", "locked": "true", "limit": "5"},
            MachineCollectionQueryParams,
            "Machines",
        )
        assert params.mac_addresses == ["aa:bb", "cc:dd"]
        assert params.locked is True
        assert params.limit == 5

    def test_collection_rejects_unknown_keys(self) -> None:
        with pytest.raises(MaasApiError) as exc_info:
            validate_params({"bogus": "1"}, MachineCollectionQueryParams, "Machines")
        assert exc_info.value.error_code == "invalid_parameters"

    def test_order_must_be_asc_or_desc(self) -> None:
        with pytest.raises(MaasApiError):
            validate_params({"order": "up"}, MachineCollectionQueryParams, "Machines")


class TestExtractAndValidateParams:
    def test_valid_uri(self) -> None:
        params = extract_and_validate_params(
            "maas://subnet/3/details", SUBNET_DETAILS_URI_PATTERN, GetSubnetParams, "Subnet"
        )
        assert params.subnet_id == 3

    def test_mismatch_propagates_unchanged(self) -> None:
        with pytest.raises(MaasApiError) as exc_info:
            extract_and_validate_params(
                "maas://zone/3/details", SUBNET_DETAILS_URI_PATTERN, GetSubnetParams, "Subnet"
            )
        assert exc_info.value.status_code == 400
        assert "does not match pattern" in exc_info.value.message

    def test_ignored_names_dropped_before_validation(self) -> None:
        params = extract_and_validate_params(
            "maas://machines/list?hostname=n1&format=xml",
            MACHINES_LIST_URI_PATTERN,
            MachineCollectionQueryParams,
            "Machines",
            ignore=frozenset({"format"}),
        )
        assert params.hostname == "n1"

    def test_unexpected_extraction_failure_becomes_500(self, monkeypatch) -> None:
        def boom(uri, template):
            raise RuntimeError("parser exploded")

        monkeypatch.setattr(params_module, "extract_params_from_uri", boom)
        with pytest.raises(MaasApiError) as exc_info:
            extract_and_validate_params(
                "maas://tag/t/details", TAG_DETAILS_URI_PATTERN, GetTagParams, "Tag"
            )
        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "unexpected_error"
