"""
Shared fixtures: an in-process mock of the Zabbix JSON-RPC API.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from ad_zabbix_sync.auth import Session
from ad_zabbix_sync.client import ZabbixClient

API_PATH = "/api_jsonrpc.php"
TEST_USER = "Admin"
TEST_PASSWORD = "zabbix"
TEST_TOKEN = "0424bd59b807674191e7d77572075f33"


class MockZabbixServer:
    """Mock Zabbix server implementing user.login, host.get and host.create."""

    def __init__(self):
        self.app = web.Application()
        self.app.router.add_post(API_PATH, self.handle)
        self.server: Optional[TestServer] = None

        # Test data
        self.hosts: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.next_host_id = 10500

        # Fault injection
        self.delays: Dict[str, float] = {}                  # host name -> seconds
        self.raw_responses: Dict[str, Tuple[int, str]] = {}  # method -> (status, body)

    def add_host(self, name: str, os: str = "Windows Server 2019", status: str = "0") -> str:
        """Add an existing host (for testing)."""
        host_id = str(self.next_host_id)
        self.next_host_id += 1
        self.hosts[name] = {
            "hostid": host_id,
            "host": name,
            "status": status,
            "interfaces": [{
                "interfaceid": str(int(host_id) + 1000),
                "hostid": host_id,
                "main": "1",
                "type": "1",
                "useip": "1",
                "ip": "10.0.0.10",
                "dns": "",
                "port": "10050",
            }],
            "inventory": {"os": os} if os is not None else [],
        }
        return host_id

    def calls_for(self, method: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method]

    async def handle(self, request):
        body = await request.json()
        self.calls.append(body)
        method = body.get("method")

        if method in self.raw_responses:
            status, text = self.raw_responses[method]
            return web.Response(status=status, text=text, content_type="application/json")

        handler = {
            "user.login": self.user_login,
            "host.get": self.host_get,
            "host.create": self.host_create,
        }.get(method)

        if handler is None:
            return self._error(body, -32601, "Method not found.", f'Incorrect API "{method}".')

        if method != "user.login" and body.get("auth") != TEST_TOKEN:
            return self._error(body, -32602, "Invalid params.", "Session terminated, re-login, please.")

        return await handler(body)

    def _result(self, body, result):
        return web.json_response({"jsonrpc": "2.0", "result": result, "id": body.get("id")})

    def _error(self, body, code, message, data):
        return web.json_response({
            "jsonrpc": "2.0",
            "error": {"code": code, "message": message, "data": data},
            "id": body.get("id"),
        })

    async def user_login(self, body):
        params = body.get("params", {})
        if params.get("user") == TEST_USER and params.get("password") == TEST_PASSWORD:
            return self._result(body, TEST_TOKEN)
        return self._error(
            body, -32602, "Invalid params.",
            "Incorrect user name or password or account is temporarily blocked.",
        )

    async def host_get(self, body):
        params = body.get("params", {})
        names = params.get("filter", {}).get("host", [])
        os_search = params.get("searchInventory", {}).get("os", "")

        for name in names:
            if name in self.delays:
                await asyncio.sleep(self.delays[name])

        matches = []
        for name in names:
            host = self.hosts.get(name)
            if host is None:
                continue
            inventory = host["inventory"]
            os = inventory.get("os", "") if isinstance(inventory, dict) else ""
            if os_search.lower() in os.lower():
                matches.append(host)
        return self._result(body, matches)

    async def host_create(self, body):
        params = body.get("params", {})
        name = params.get("host")

        if name in self.delays:
            await asyncio.sleep(self.delays[name])

        if name in self.hosts:
            return self._error(
                body, -32602, "Invalid params.",
                f'Host with the same name "{name}" already exists.',
            )

        host_id = str(self.next_host_id)
        self.next_host_id += 1
        self.hosts[name] = {
            "hostid": host_id,
            "host": name,
            "status": "0",
            "interfaces": params.get("interfaces", []),
            "inventory": {},
        }
        return self._result(body, {"hostids": [host_id]})

    async def start(self):
        """Start mock server."""
        self.server = TestServer(self.app)
        await self.server.start_server()

    async def stop(self):
        """Stop mock server."""
        if self.server:
            await self.server.close()

    @property
    def url(self) -> str:
        return str(self.server.make_url(API_PATH))


@pytest_asyncio.fixture
async def mock_zabbix():
    """Create and start mock Zabbix server."""
    server = MockZabbixServer()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def zabbix_client(mock_zabbix):
    """Client pointed at the mock server."""
    client = ZabbixClient(mock_zabbix.url, timeout=5)
    yield client
    await client.close()


@pytest.fixture
def session():
    return Session(api_key=TEST_TOKEN)

