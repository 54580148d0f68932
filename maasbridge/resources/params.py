"""
Parameter extraction and validation for resource URIs.
"""

from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from maasbridge.resources.uri_patterns import extract_params_from_uri
from maasbridge.services.error_handler import validation_issues
from maasbridge.services.errors import ErrorCode, MaasApiError

P = TypeVar("P", bound=BaseModel)


def validate_params(raw: dict[str, Any], schema: type[P], resource_name: str) -> P:
    """
    Validate raw URI parameters against ``schema``.

    Raises:
        MaasApiError: (400, invalid_parameters) with the schema issues
    """
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        issues = validation_issues(e)
        logger.error(f"Invalid parameters for {resource_name} request: {issues}")
        raise MaasApiError(
            f"Invalid parameters for {resource_name} request",
            400,
            ErrorCode.INVALID_PARAMETERS,
            {"issues": issues},
        ) from e


def extract_and_validate_params(
    uri: str,
    template: str,
    schema: type[P],
    resource_name: str,
    ignore: frozenset[str] = frozenset(),
) -> P:
    """
    Extract parameters from ``uri`` and validate them.

    A MaasApiError from extraction propagates unchanged; any other failure
    becomes (500, unexpected_error). Names in ``ignore`` are dropped before
    validation.
    """
    try:
        raw = extract_params_from_uri(uri, template)
    except MaasApiError:
        raise
    except Exception as e:
        logger.error(f"Error processing {resource_name} request: {e}")
        raise MaasApiError(
            f"Error processing {resource_name} request: {e}",
            500,
            ErrorCode.UNEXPECTED_ERROR,
        ) from e

    raw = {k: v for k, v in raw.items() if k not in ignore}
    return validate_params(raw, schema, resource_name)
