"""
MaasApiClient - async HTTP client for the MAAS 2.0 REST API.

Provides:
- OAuth 1.0 PLAINTEXT request signing from a ``consumer:token:secret`` API key
- Mapping of HTTP error statuses to MaasApiError
- Cancellation through a CancellationToken

Transport failures (connection refused, DNS, timeouts) are raised as the raw
httpx exceptions; the resource layer classifies them. A request is attempted
exactly once.
"""

import secrets
import time
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.errors import ErrorCode, MaasApiError
from maasbridge.settings import Settings, global_settings

_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.RESOURCE_NOT_FOUND,
}


class MaasApiClient:
    """
    Client for MAAS API reads.

    Usage:
        async with MaasApiClient("http://maas:5240/MAAS", "ck:tk:secret") as client:
            machines = await client.get("/machines/", {"hostname": "node1"})
    """

    API_PREFIX = "/api/2.0"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        key_parts = api_key.split(":")
        if len(key_parts) != 3:
            raise ValueError(
                "Invalid MAAS API key format, expected consumer_key:token:secret"
            )
        self._consumer_key, self._token, self._token_secret = key_parts
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "MaasApiClient":
        settings = settings or global_settings
        return cls(
            api_url=settings.maas_api_url,
            api_key=settings.maas_api_key,
            timeout=settings.maas_request_timeout,
        )

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    def _auth_header(self) -> str:
        """OAuth 1.0 PLAINTEXT Authorization header."""
        params = {
            "oauth_consumer_key": self._consumer_key,
            "oauth_token": self._token,
            "oauth_signature_method": "PLAINTEXT",
            "oauth_timestamp": str(int(time.time())),
            "oauth_nonce": secrets.token_hex(16),
            "oauth_version": "1.0",
            "oauth_signature": f"&{quote(self._token_secret, safe='')}",
        }
        return "OAuth " + ", ".join(
            f'{k}="{quote(v, safe="")}"' for k, v in params.items()
        )

    def build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._api_url}{self.API_PREFIX}{path}"

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> Any:
        """
        GET a MAAS API endpoint and return the decoded JSON body.

        Args:
            path: Endpoint path below /api/2.0, e.g. "/machines/abc/"
            params: Query parameters; None values are dropped, lists repeat
            token: Cancellation token observed while the request is in flight

        Returns:
            Decoded JSON, or None for 204 / empty bodies

        Raises:
            MaasApiError: The API answered with an error status
            RequestAbortedError: The token was cancelled
            httpx.HTTPError: Transport failure
        """
        if token is not None:
            return await token.run(self._execute_request(path, params))
        return await self._execute_request(path, params)

    async def _execute_request(
        self, path: str, params: dict[str, Any] | None
    ) -> Any:
        """Execute the actual HTTP request."""
        client = await self._get_http_client()
        url = self.build_url(path)
        query = {k: v for k, v in (params or {}).items() if v is not None}

        logger.debug(f"GET {url} params={query}")
        response = await client.get(
            url,
            params=query,
            headers={
                "Authorization": self._auth_header(),
                "Accept": "application/json",
            },
        )

        if response.is_error:
            raise self._status_error(response)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MaasApiError(
                f"MAAS API returned a non-JSON body for {path}",
                502,
                ErrorCode.MAAS_API_ERROR,
                {"body": response.text[:200]},
            ) from e

    @staticmethod
    def _status_error(response: httpx.Response) -> MaasApiError:
        status = response.status_code
        body = response.text[:200]
        code = _STATUS_CODES.get(status, ErrorCode.MAAS_API_ERROR)
        logger.warning(f"MAAS API returned HTTP {status}: {body}")
        return MaasApiError(
            f"MAAS API request failed with HTTP {status}: {body or response.reason_phrase}",
            status,
            code,
            {"body": body} if body else None,
        )

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("MaasApiClient closed")

    async def __aenter__(self) -> "MaasApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
