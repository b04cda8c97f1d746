"""
Zabbix session login.

Exchanges a username and password for the opaque API key that every
authenticated call carries in the ``auth`` member of its envelope.
"""

import logging
from dataclasses import dataclass, field

from .client import ZabbixAuthenticationError, ZabbixClient, ZabbixTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Authenticated Zabbix session. Valid for the lifetime of the process."""
    api_key: str = field(repr=False)


async def login(client: ZabbixClient, username: str, password: str) -> Session:
    """
    Log in with ``user.login``.

    Args:
        client: Zabbix client
        username: Zabbix user name
        password: Zabbix password

    Returns:
        Session holding the API key

    Raises:
        ZabbixAuthenticationError: Credentials rejected or no key returned
        ZabbixTransportError: The login request itself failed
    """
    logger.info(f"Logging in to {client.url} as {username}")

    result = await client.send(
        "user.login",
        {"user": username, "password": password},
        auth=None,
    )

    if not result.success:
        failure = result.failure
        if failure.is_transport:
            raise ZabbixTransportError(f"Login request failed: {failure.message}")
        raise ZabbixAuthenticationError(
            f"Login rejected: {failure.detail}",
            code=failure.code,
            data=failure.data,
        )

    api_key = result.payload
    if not isinstance(api_key, str) or not api_key:
        raise ZabbixAuthenticationError("Login returned no API key")

    logger.info("Zabbix login succeeded")
    return Session(api_key=api_key)
