"""Wireless link control using NetworkManager/nmcli.

The monitor only needs three things from the link: join a named network,
leave it, and report the interface MAC address. ``NetworkLink`` is that
contract; ``NmcliLink`` implements it without a shell, so SSIDs and
passwords are never interpreted by one.
"""

import asyncio
import logging
import re
from typing import Protocol, runtime_checkable

from ..core.errors import NetworkError
from ..core.retry import async_retry, RetryConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class NetworkLink(Protocol):
    """Best-effort wireless link operations.

    Implementations must not raise; failures are reported as ``False``
    (or ``None`` for the MAC address).
    """

    async def join(self, ssid: str, password: str | None = None) -> bool: ...

    async def leave(self) -> bool: ...

    async def local_mac_address(self) -> str | None: ...


class NmcliLink:
    """``NetworkLink`` backed by nmcli.

    All operations use nmcli with list arguments (no shell).
    SSID and password validation prevents malformed commands.

    Usage:
        link = NmcliLink("wlan0")
        await link.join("CampusWiFi", "secret")
    """

    # Regex for SSID validation (alphanumeric, spaces, common punctuation)
    SSID_PATTERN = re.compile(r"^[\w\s\-\.\!\@\#\$\%\&\*\(\)\+\']+$")

    # Connection profile managed by us
    CONNECTION_NAME = "netkeeper-wifi"

    def __init__(self, interface: str = "wlan0", command_timeout: float = 30.0) -> None:
        """Initialize the link.

        Args:
            interface: WiFi interface name
            command_timeout: Per nmcli invocation timeout in seconds
        """
        self._interface = interface
        self._command_timeout = command_timeout

    @property
    def interface(self) -> str:
        return self._interface

    def _validate_ssid(self, ssid: str) -> None:
        """Validate SSID.

        Raises:
            NetworkError: If SSID is invalid
        """
        if not ssid:
            raise NetworkError("SSID cannot be empty")
        if len(ssid) > 32:
            raise NetworkError("SSID too long (max 32 characters)")
        if not self.SSID_PATTERN.match(ssid):
            raise NetworkError("SSID contains invalid characters", details={"ssid": ssid})

    def _validate_password(self, password: str | None) -> None:
        if password and not 8 <= len(password) <= 63:
            raise NetworkError("Password must be 8-63 characters")

    @staticmethod
    def _redact(args: tuple[str, ...]) -> list[str]:
        """Hide the value following a ``password`` argument."""
        redacted = list(args)
        for i, arg in enumerate(redacted[:-1]):
            if arg == "password":
                redacted[i + 1] = "***"
        return redacted

    async def _run_nmcli(self, *args: str, check: bool = True) -> str:
        """Run nmcli command safely.

        Args:
            *args: nmcli arguments
            check: Raise on non-zero exit

        Returns:
            Command stdout

        Raises:
            NetworkError: If nmcli is missing, times out or fails
        """
        safe_args = self._redact(args)
        logger.debug("Running: nmcli %s", " ".join(safe_args))

        try:
            proc = await asyncio.create_subprocess_exec(
                "nmcli",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NetworkError("nmcli could not be started", cause=e) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._command_timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise NetworkError("nmcli command timed out", details={"args": safe_args})

        if check and proc.returncode != 0:
            error_msg = stderr.decode().strip() if stderr else "Unknown error"
            raise NetworkError(
                f"nmcli failed: {error_msg}",
                details={"args": safe_args, "returncode": proc.returncode},
            )

        return stdout.decode().strip() if stdout else ""

    @async_retry(RetryConfig(max_attempts=2, base_delay=1.0, retry_on=(NetworkError,)))
    async def visible_ssids(self) -> set[str]:
        """Rescan and return the SSIDs currently in range."""
        await self._run_nmcli("device", "wifi", "rescan", "ifname", self._interface, check=False)
        output = await self._run_nmcli(
            "-t", "-f", "SSID", "device", "wifi", "list", "ifname", self._interface
        )
        # Terse mode escapes colons inside SSIDs
        return {line.replace("\\:", ":") for line in output.splitlines() if line.strip()}

    async def join(self, ssid: str, password: str | None = None) -> bool:
        """Connect to a WiFi network.

        Args:
            ssid: Network SSID
            password: Network password (None or empty for open networks)

        Returns:
            True if nmcli accepted the connection request
        """
        try:
            self._validate_ssid(ssid)
            self._validate_password(password)
        except NetworkError as e:
            logger.error("Refusing to join %r: %s", ssid, e)
            return False

        logger.info("Joining WiFi network: %s", ssid)

        try:
            visible = await self.visible_ssids()
            if ssid not in visible:
                logger.warning("SSID %s not visible in scan, trying anyway", ssid)
        except NetworkError as e:
            logger.warning("WiFi scan failed: %s", e)

        try:
            # Drop a stale profile so new credentials take effect
            await self._run_nmcli("connection", "delete", self.CONNECTION_NAME, check=False)

            cmd = ["device", "wifi", "connect", ssid]
            if password:
                cmd.extend(["password", password])
            cmd.extend(["ifname", self._interface, "name", self.CONNECTION_NAME])
            await self._run_nmcli(*cmd)

        except NetworkError as e:
            logger.error("Joining %s failed: %s", ssid, e)
            return False

        logger.info("Join request for %s accepted", ssid)
        return True

    async def leave(self) -> bool:
        """Disconnect the interface from its current network."""
        logger.info("Disconnecting %s", self._interface)
        try:
            await self._run_nmcli("device", "disconnect", self._interface)
        except NetworkError as e:
            logger.error("Disconnect failed: %s", e)
            return False
        return True

    async def is_connected(self) -> bool:
        """Check if the interface is associated with a network."""
        try:
            output = await self._run_nmcli(
                "-t", "-f", "GENERAL.STATE", "device", "show", self._interface
            )
            return "(connected)" in output.lower()
        except NetworkError:
            return False

    async def local_mac_address(self) -> str | None:
        """Hardware address of the interface, or None if unavailable."""
        try:
            output = await self._run_nmcli(
                "-g", "GENERAL.HWADDR", "device", "show", self._interface
            )
        except NetworkError as e:
            logger.error("Could not read MAC address of %s: %s", self._interface, e)
            return None

        mac = output.replace("\\:", ":").strip().lower()
        if not mac or mac == "00:00:00:00:00:00":
            logger.warning("No MAC address reported for %s", self._interface)
            return None
        return mac
