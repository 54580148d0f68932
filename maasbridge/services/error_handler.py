"""
Error normalization for resource fetches.

Any failure raised while fetching or validating a resource is mapped to a
MaasApiError here, in this priority order (first match wins):

1. MaasApiError 404 with a known resource id -> resource_not_found
2. any other MaasApiError                    -> unchanged
3. client cancellation                       -> 499 request_aborted
4. connection refused / host not found       -> 503 network_error
5. timeout                                   -> 504 request_timeout
6. payload validation error                  -> 422 validation_error
7. anything else                             -> 500 unexpected_error
"""

import asyncio
import errno
import socket
from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from maasbridge.services.audit import AuditLogger
from maasbridge.services.errors import ErrorCode, MaasApiError, RequestAbortedError
from maasbridge.utils import generate_request_id

T = TypeVar("T")

_NETWORK_ERRNOS = {errno.ECONNREFUSED, errno.EHOSTUNREACH, errno.ENETUNREACH}
_NETWORK_CODES = {"ECONNREFUSED", "ENOTFOUND", "EAI_AGAIN"}
_TIMEOUT_CODES = {"ETIMEDOUT"}


def _cause_chain(error: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = error
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def _error_code_of(error: BaseException) -> str | None:
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else None


def is_abort_error(error: BaseException) -> bool:
    return isinstance(error, (RequestAbortedError, asyncio.CancelledError)) or (
        type(error).__name__ == "AbortError"
    )


def is_network_error(error: BaseException) -> bool:
    for exc in _cause_chain(error):
        if isinstance(exc, (httpx.ConnectError, ConnectionRefusedError, socket.gaierror)):
            return True
        if isinstance(exc, OSError) and exc.errno in _NETWORK_ERRNOS:
            return True
        if _error_code_of(exc) in _NETWORK_CODES:
            return True
    return False


def is_timeout_error(error: BaseException) -> bool:
    for exc in _cause_chain(error):
        if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
            return True
        if isinstance(exc, OSError) and exc.errno == errno.ETIMEDOUT:
            return True
        if _error_code_of(exc) in _TIMEOUT_CODES:
            return True
    return False


def validation_issues(error: ValidationError) -> list[dict[str, Any]]:
    """JSON-safe list of pydantic issues."""
    return [
        {
            "loc": list(issue.get("loc", ())),
            "msg": issue.get("msg", ""),
            "type": issue.get("type", ""),
        }
        for issue in error.errors()
    ]


def normalize_fetch_error(
    error: BaseException,
    resource_name: str,
    resource_id: str | None = None,
    context: dict[str, Any] | None = None,
    audit: AuditLogger | None = None,
) -> MaasApiError:
    """
    Map ``error`` to the MaasApiError the caller should raise.

    Never swallows: the caller raises the returned error (``from error``).
    """
    context = context or {}
    request_id = context.get("request_id") or generate_request_id()
    id_message = f" for {resource_id}" if resource_id else ""

    if isinstance(error, MaasApiError):
        logger.error(
            f"MAAS API error fetching {resource_name}{id_message}: {error.message} "
            f"(status={error.status_code}, code={error.error_code})"
        )
        if error.status_code == 404 and resource_id:
            result = MaasApiError(
                f"{resource_name} '{resource_id}' not found",
                404,
                ErrorCode.RESOURCE_NOT_FOUND,
            )
        else:
            result = error

    elif is_abort_error(error):
        logger.warning(f"{resource_name} request{id_message} was aborted")
        result = MaasApiError(
            f"{resource_name} request{id_message} was aborted by the client",
            499,
            ErrorCode.REQUEST_ABORTED,
        )

    elif is_network_error(error):
        logger.error(f"Network error fetching {resource_name}{id_message}: {error}")
        result = MaasApiError(
            "Failed to connect to MAAS API: Network connectivity issue",
            503,
            ErrorCode.NETWORK_ERROR,
            {"original_error": str(error)},
        )

    elif is_timeout_error(error):
        logger.error(f"Timeout error fetching {resource_name}{id_message}: {error}")
        result = MaasApiError(
            f"MAAS API request timed out while fetching {resource_name}{id_message}",
            504,
            ErrorCode.REQUEST_TIMEOUT,
            {"original_error": str(error)},
        )

    elif isinstance(error, ValidationError):
        result = _validation_failure(error, resource_name, resource_id)

    else:
        logger.opt(exception=error).error(
            f"Unexpected error fetching {resource_name}{id_message}: {error}"
        )
        result = MaasApiError(
            f"Could not fetch {resource_name}{id_message}: {error}",
            500,
            ErrorCode.UNEXPECTED_ERROR,
            {"original_error": str(error)},
        )

    if audit is not None:
        audit.log_resource_access_failure(
            resource_name,
            resource_id,
            "fetch",
            request_id,
            result,
            details={k: v for k, v in context.items() if k != "request_id"},
        )
    return result


def _validation_failure(
    error: ValidationError, resource_name: str, resource_id: str | None
) -> MaasApiError:
    id_message = f" for '{resource_id}'" if resource_id else ""
    issues = validation_issues(error)
    logger.error(f"{resource_name} data validation failed{id_message}: {issues}")
    return MaasApiError(
        f"{resource_name} data validation failed{id_message}: "
        "The MAAS API returned data in an unexpected format",
        422,
        ErrorCode.VALIDATION_ERROR,
        {"issues": issues},
    )


def validate_resource_data(
    data: Any,
    schema: type[BaseModel] | TypeAdapter,
    resource_name: str,
    resource_id: str | None = None,
) -> Any:
    """
    Validate a backend payload against ``schema``.

    Raises MaasApiError (422, validation_error) with the pydantic issues.
    """
    try:
        if isinstance(schema, TypeAdapter):
            return schema.validate_python(data)
        return schema.model_validate(data)
    except ValidationError as e:
        raise _validation_failure(e, resource_name, resource_id) from e
