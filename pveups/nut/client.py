"""
NUT (Network UPS Tools) client wrapper.

This module provides an asynchronous client for interacting with a NUT server,
using the synchronous python-nut2 library. It uses asyncio.to_thread to run
blocking I/O operations in a separate thread.
"""

import asyncio
import logging
from typing import Any, Dict

from pynut2.nut2 import PyNUTClient

from ..config import settings
from .models import DEFAULT_NUT_PORT, PowerReading, parse_ups_identifier

logger = logging.getLogger(__name__)

READING_VARS = ("ups.status", "battery.charge", "battery.runtime")


class NUTError(Exception):
    """Base exception for NUT client errors."""
    pass


class NUTConnectionError(NUTError):
    """Exception for NUT connection errors."""
    pass


class NUTClient:
    """
    An asynchronous client for NUT servers.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = DEFAULT_NUT_PORT,
        username: str | None = settings.NUT_USERNAME,
        password: str | None = settings.NUT_PASSWORD,
        timeout: float = settings.NUT_TIMEOUT,
    ):
        """
        Initialize the NUT client. The connection is opened on first use.

        Args:
            host: The NUT server hostname or IP address.
            port: The NUT server port.
            username: The username for authentication.
            password: The password for authentication.
            timeout: Socket timeout in seconds.
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self._client: PyNUTClient | None = None
        logger.debug("Initialized NUT client host=%s port=%s user=%s", self.host, self.port, bool(self.username))

    def _connected(self) -> PyNUTClient:
        if self._client is None:
            self._client = PyNUTClient(
                host=self.host,
                port=self.port,
                login=self.username,
                password=self.password,
                timeout=self.timeout,
            )
        return self._client

    def _get_vars(self, ups_name: str) -> Dict[str, Any]:
        return self._connected().get_vars(ups_name)

    async def get_vars(self, ups_name: str) -> Dict[str, Any]:
        """
        Get all variables for a specific UPS.

        Args:
            ups_name: The name of the UPS device.

        Returns:
            A dictionary of variables for the specified UPS.

        Raises:
            NUTConnectionError: If there is an error communicating with the server.
        """
        try:
            logger.debug("Fetching vars for UPS '%s'", ups_name)
            vars_ = await asyncio.to_thread(self._get_vars, ups_name)
            logger.debug("NUT get_vars ok for '%s' (%d vars)", ups_name, len(vars_) if vars_ else 0)
            return vars_ or {}
        except Exception as e:
            raise NUTConnectionError(f"Failed to get variables for UPS '{ups_name}' from {self.host}:{self.port}") from e


class NUTPowerSource:
    """
    Reads the power state of one UPS, identified the way upsc does.

    A failed read is not an error here: it yields an unknown reading and
    the classifier decides what that means.
    """

    def __init__(self, identifier: str, client: NUTClient | None = None):
        self.identifier = identifier
        self.ups_name, host, port = parse_ups_identifier(identifier)
        self.client = client or NUTClient(host=host, port=port)

    async def read(self) -> PowerReading:
        try:
            ups_vars = await self.client.get_vars(self.ups_name)
        except NUTConnectionError as e:
            logger.error("Could not read UPS status for %s: %s", self.identifier, e)
            return PowerReading(source=self.identifier)

        values = {key: ups_vars[key] for key in READING_VARS if key in ups_vars}
        return PowerReading.model_validate({"source": self.identifier, **values})
