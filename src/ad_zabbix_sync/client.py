"""
Zabbix JSON-RPC client.

Provides an aiohttp based client for api_jsonrpc.php with:
- Explicit minimum TLS version per client
- Per-client request ids
- Classification of every call into result / protocol error / transport failure
"""

import aiohttp
import asyncio
import itertools
import json
import ssl
import logging
from typing import Optional, Dict, Any

from . import __version__
from .rpc import RpcFailure, RpcRequest, RpcResult, decode_response

logger = logging.getLogger(__name__)

TLS_VERSIONS = {
    "1.2": ssl.TLSVersion.TLSv1_2,
    "1.3": ssl.TLSVersion.TLSv1_3,
}


class ZabbixClientError(Exception):
    """Base exception for Zabbix client errors."""
    pass


class ZabbixTransportError(ZabbixClientError):
    """Request never produced a usable JSON-RPC response."""
    pass


class ZabbixProtocolError(ZabbixClientError):
    """Zabbix understood the request and rejected it."""

    def __init__(self, code: int, message: str, data: Optional[str] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"{message} ({code}): {data}" if data else f"{message} ({code})")


class ZabbixAuthenticationError(ZabbixClientError):
    """Login rejected by Zabbix."""

    def __init__(self, message: str, code: Optional[int] = None, data: Optional[str] = None):
        self.code = code
        self.data = data
        super().__init__(message)


def raise_for_failure(failure: RpcFailure) -> None:
    """Raise the exception matching an RpcFailure."""
    if failure.is_transport:
        raise ZabbixTransportError(failure.message)
    raise ZabbixProtocolError(failure.code, failure.message, failure.data)


class ZabbixClient:
    """
    HTTP client for the Zabbix JSON-RPC API.

    One aiohttp session is created lazily and reused for every call.
    No retries are attempted; a failed call is reported to the caller.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30,
        verify_ssl: bool = True,
        min_tls_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2,
        ssl_context: Optional[ssl.SSLContext] = None
    ):
        """
        Initialize Zabbix client.

        Args:
            url: Full API endpoint, e.g. https://zabbix.example.com/api_jsonrpc.php
            timeout: Total request timeout in seconds (default: 30)
            verify_ssl: Validate the server certificate (default: True)
            min_tls_version: Lowest TLS version the client will negotiate
            ssl_context: Custom SSL context. Modified in place: its
                minimum_version is raised to min_tls_version when lower,
                which affects every other user of the same context
        """
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.min_tls_version = min_tls_version

        if ssl_context is not None:
            if ssl_context.minimum_version < min_tls_version:
                logger.debug(f"Raising minimum TLS version of supplied context to {min_tls_version.name}")
                ssl_context.minimum_version = min_tls_version
            self.ssl_context = ssl_context
        else:
            self.ssl_context = self._create_ssl_context()

        self._request_ids = itertools.count(1)
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config) -> "ZabbixClient":
        """Build a client from a SyncConfig."""
        return cls(
            config.zabbix_url,
            timeout=config.request_timeout,
            verify_ssl=config.verify_ssl,
            min_tls_version=TLS_VERSIONS[config.min_tls_version],
        )

    def _create_ssl_context(self) -> ssl.SSLContext:
        """
        Create SSL context pinned to a modern TLS floor.

        Returns:
            SSL context for this client only
        """
        ssl_context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        ssl_context.minimum_version = self.min_tls_version

        if not self.verify_ssl:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            logger.warning(f"Certificate validation disabled for {self.url}")

        return ssl_context

    async def _get_session(self) -> aiohttp.ClientSession:
        """
        Get or create aiohttp session.

        Returns:
            Active client session
        """
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=self.ssl_context)

            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers={
                    'Content-Type': 'application/json-rpc',
                    'User-Agent': f'ad-zabbix-sync/{__version__}',
                }
            )

            logger.debug("Created new aiohttp session")

        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session")

    async def send(
        self,
        method: str,
        params: Optional[Any] = None,
        auth: Optional[str] = None
    ) -> RpcResult:
        """
        Send one JSON-RPC request.

        Args:
            method: API method name
            params: Method parameters (default: empty object)
            auth: Session API key, None for unauthenticated calls

        Returns:
            RpcResult; this method does not raise for transport or API errors
        """
        request = RpcRequest(
            method=method,
            params=params if params is not None else {},
            id=next(self._request_ids),
            auth=auth,
        )
        session = await self._get_session()

        logger.debug(f"POST {self.url} method={method} id={request.id}")

        try:
            async with session.post(self.url, data=json.dumps(request.to_payload())) as response:
                status = response.status
                body = await response.text()

        except asyncio.TimeoutError:
            failure = RpcFailure.transport(
                f"{method} timed out after {self.timeout.total}s"
            )
            logger.warning(f"Zabbix request failed: {failure}")
            return RpcResult.fail(failure)

        except (aiohttp.ClientError, UnicodeDecodeError) as e:
            failure = RpcFailure.transport(f"{method} request failed: {e}")
            logger.warning(f"Zabbix request failed: {failure}")
            return RpcResult.fail(failure)

        result = decode_response(status, body)

        if result.success:
            logger.debug(f"{method} id={request.id} succeeded")
        else:
            logger.debug(f"{method} id={request.id} failed: {result.failure}")

        return result

    async def call(
        self,
        method: str,
        params: Optional[Any] = None,
        auth: Optional[str] = None
    ) -> Any:
        """
        Send one JSON-RPC request and return its ``result``.

        Raises:
            ZabbixTransportError: Network, HTTP or body failure
            ZabbixProtocolError: Zabbix returned an error object
        """
        result = await self.send(method, params, auth)
        if not result.success:
            raise_for_failure(result.failure)
        return result.payload

    async def __aenter__(self):
        """Async context manager entry."""
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
