"""
Tests for the Zabbix JSON-RPC client.
"""

import socket
import ssl

import pytest

from ad_zabbix_sync.client import (
    TLS_VERSIONS,
    ZabbixClient,
    ZabbixProtocolError,
    ZabbixTransportError,
)
from ad_zabbix_sync.rpc import FailureKind


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestSSLContext:
    """TLS floor is configured per client."""

    def test_default_minimum_tls_1_2(self):
        client = ZabbixClient("https://zabbix.example.com/api_jsonrpc.php")
        assert client.ssl_context.minimum_version == ssl.TLSVersion.TLSv1_2
        assert client.ssl_context.verify_mode == ssl.CERT_REQUIRED

    def test_minimum_tls_1_3(self):
        client = ZabbixClient(
            "https://zabbix.example.com/api_jsonrpc.php",
            min_tls_version=ssl.TLSVersion.TLSv1_3,
        )
        assert client.ssl_context.minimum_version == ssl.TLSVersion.TLSv1_3

    def test_custom_context_raised_to_floor(self):
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1

        client = ZabbixClient("https://zabbix.example.com/api_jsonrpc.php", ssl_context=context)

        assert client.ssl_context is context
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2

    def test_custom_context_above_floor_untouched(self):
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_3

        ZabbixClient("https://zabbix.example.com/api_jsonrpc.php", ssl_context=context)

        assert context.minimum_version == ssl.TLSVersion.TLSv1_3

    def test_clients_do_not_share_context(self):
        a = ZabbixClient("https://a.example.com/api_jsonrpc.php")
        b = ZabbixClient("https://b.example.com/api_jsonrpc.php", min_tls_version=ssl.TLSVersion.TLSv1_3)

        assert a.ssl_context is not b.ssl_context
        assert a.ssl_context.minimum_version == ssl.TLSVersion.TLSv1_2

    def test_verify_disabled(self):
        client = ZabbixClient("https://zabbix.example.com/api_jsonrpc.php", verify_ssl=False)
        assert client.ssl_context.check_hostname is False
        assert client.ssl_context.verify_mode == ssl.CERT_NONE

    def test_tls_versions_mapping(self):
        assert TLS_VERSIONS["1.2"] == ssl.TLSVersion.TLSv1_2
        assert TLS_VERSIONS["1.3"] == ssl.TLSVersion.TLSv1_3


class TestSend:
    """Tests for send() classification against the mock server."""

    @pytest.mark.asyncio
    async def test_success(self, mock_zabbix, zabbix_client):
        result = await zabbix_client.send("user.login", {"user": "Admin", "password": "zabbix"})

        assert result.success is True
        assert isinstance(result.payload, str) and result.payload

    @pytest.mark.asyncio
    async def test_envelope_shape(self, mock_zabbix, zabbix_client, session):
        await zabbix_client.send("host.get", {"filter": {"host": ["srv01"]}}, auth=session.api_key)

        sent = mock_zabbix.calls[-1]
        assert sent["jsonrpc"] == "2.0"
        assert sent["method"] == "host.get"
        assert sent["auth"] == session.api_key
        assert isinstance(sent["id"], int)
        assert sent["params"] == {"filter": {"host": ["srv01"]}}

    @pytest.mark.asyncio
    async def test_unauthenticated_call_has_no_auth(self, mock_zabbix, zabbix_client):
        await zabbix_client.send("user.login", {"user": "Admin", "password": "zabbix"})

        assert "auth" not in mock_zabbix.calls[-1]

    @pytest.mark.asyncio
    async def test_request_ids_increase(self, mock_zabbix, zabbix_client, session):
        await zabbix_client.send("host.get", {}, auth=session.api_key)
        await zabbix_client.send("host.get", {}, auth=session.api_key)

        first, second = mock_zabbix.calls
        assert second["id"] > first["id"]

    @pytest.mark.asyncio
    async def test_protocol_error(self, mock_zabbix, zabbix_client):
        result = await zabbix_client.send("host.get", {}, auth="expired")

        assert result.success is False
        assert result.failure.kind == FailureKind.PROTOCOL
        assert result.failure.code == -32602
        assert "re-login" in result.failure.data

    @pytest.mark.asyncio
    async def test_http_error_is_transport(self, mock_zabbix, zabbix_client, session):
        mock_zabbix.raw_responses["host.get"] = (500, "Internal Server Error")

        result = await zabbix_client.send("host.get", {}, auth=session.api_key)

        assert result.success is False
        assert result.failure.kind == FailureKind.TRANSPORT
        assert "500" in result.failure.message

    @pytest.mark.asyncio
    async def test_malformed_body_is_transport(self, mock_zabbix, zabbix_client, session):
        mock_zabbix.raw_responses["host.get"] = (200, "<html>maintenance</html>")

        result = await zabbix_client.send("host.get", {}, auth=session.api_key)

        assert result.success is False
        assert result.failure.kind == FailureKind.TRANSPORT

    @pytest.mark.asyncio
    async def test_timeout_is_transport(self, mock_zabbix, session):
        mock_zabbix.add_host("slow01")
        mock_zabbix.delays["slow01"] = 1.0

        async with ZabbixClient(mock_zabbix.url, timeout=0.2) as client:
            result = await client.send("host.get", {"filter": {"host": ["slow01"]}}, auth=session.api_key)

        assert result.success is False
        assert result.failure.kind == FailureKind.TRANSPORT
        assert "timed out" in result.failure.message

    @pytest.mark.asyncio
    async def test_connection_refused_is_transport(self):
        url = f"http://127.0.0.1:{unused_port()}/api_jsonrpc.php"

        async with ZabbixClient(url, timeout=2) as client:
            result = await client.send("user.login", {"user": "Admin", "password": "zabbix"})

        assert result.success is False
        assert result.failure.kind == FailureKind.TRANSPORT


class TestCall:
    """call() raises instead of returning failures."""

    @pytest.mark.asyncio
    async def test_returns_payload(self, mock_zabbix, zabbix_client, session):
        mock_zabbix.add_host("srv01")

        hosts = await zabbix_client.call("host.get", {"filter": {"host": ["srv01"]}}, auth=session.api_key)

        assert hosts[0]["host"] == "srv01"

    @pytest.mark.asyncio
    async def test_raises_protocol_error(self, mock_zabbix, zabbix_client):
        with pytest.raises(ZabbixProtocolError) as exc_info:
            await zabbix_client.call("user.login", {"user": "Admin", "password": "wrong"})

        assert exc_info.value.code == -32602
        assert "Incorrect user name" in exc_info.value.data

    @pytest.mark.asyncio
    async def test_raises_transport_error(self, mock_zabbix, zabbix_client, session):
        mock_zabbix.raw_responses["host.get"] = (503, "")

        with pytest.raises(ZabbixTransportError):
            await zabbix_client.call("host.get", {}, auth=session.api_key)


@pytest.mark.asyncio
async def test_context_manager_closes_session(mock_zabbix):
    client = ZabbixClient(mock_zabbix.url)
    async with client:
        assert client._session is not None
    assert client._session.closed
