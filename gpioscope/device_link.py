"""Device link to a pigpio daemon.

The daemon is reached over two TCP connections to the same address:

- the command socket carries 16-byte request/response frames
  ``<u32 cmd, u32 p1, u32 p2, u32 p3>``; the reply echoes the frame with the
  result in the last field (negative on failure);
- the notification socket is switched to in-band notification with
  ``NOIB`` and then streams 12-byte level reports.

Command helpers return the daemon's integer status rather than raising.
Only the connection handshake and a dropped notification stream raise
``ConnectionFailure``.
"""

import logging
import os
import select
import socket
import struct
from enum import IntEnum
from typing import Mapping, Optional, Protocol, Tuple

from .config import LINK
from .data_model import Level, ScopeSettings
from .errors import ConnectionFailure

logger = logging.getLogger(__name__)

COMMAND_STRUCT = struct.Struct('<IIIi')


class LinkStatus(IntEnum):
    """Negative status codes returned by link operations."""
    BAD_SEND = -1000
    BAD_RECV = -1001
    BAD_SOCKET = -1002
    BAD_CONNECT = -1003
    BAD_NO = -1004
    BAD_NOIB = -1005
    BAD_NPIPE = -1006
    BAD_NSOCK = -1007
    BAD_NB = -1008
    BAD_REPORT = -1009
    BAD_GETADDRINFO = -1010


class DeviceLink(Protocol):
    """What the capture core needs from an acquisition device."""

    def read(self, max_bytes: int) -> bytes:
        """Return up to ``max_bytes`` of report stream without blocking."""
        ...

    def hardware_revision(self) -> int:
        ...

    def set_notify_mask(self, mask: Level) -> int:
        ...

    def close(self) -> None:
        ...


def resolve_address(settings: Optional[ScopeSettings] = None,
                    environ: Optional[Mapping[str, str]] = None) -> Tuple[str, int]:
    """Daemon address: environment variables win over saved settings."""
    environ = os.environ if environ is None else environ
    settings = settings or ScopeSettings()

    host = environ.get(LINK.ENV_ADDRESS) or settings.server_address or LINK.DEFAULT_SERVER_ADDRESS
    port = settings.server_port or LINK.DEFAULT_SERVER_PORT

    env_port = environ.get(LINK.ENV_PORT)
    if env_port:
        try:
            port = int(env_port)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", LINK.ENV_PORT, env_port)

    return host, port


class PigpioLink:
    """Command and notification connections to one pigpio daemon."""

    def __init__(self, host: str = LINK.DEFAULT_SERVER_ADDRESS, port: int = LINK.DEFAULT_SERVER_PORT,
                 timeout: float = LINK.CONNECT_TIMEOUT_S) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._command_sock: Optional[socket.socket] = None
        self._notify_sock: Optional[socket.socket] = None
        self.handle = -1

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connected(self) -> bool:
        return self._command_sock is not None

    def __enter__(self) -> 'PigpioLink':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---- Connection ----
    def _open_socket(self, operation: str) -> socket.socket:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except socket.gaierror as e:
            raise ConnectionFailure(f"Can't resolve pigpio address {self.host}: {e}",
                                    self.address, operation, LinkStatus.BAD_GETADDRINFO) from e
        except OSError as e:
            raise ConnectionFailure(f"Can't connect to pigpio at {self.address}: {e}",
                                    self.address, operation, LinkStatus.BAD_CONNECT) from e
        sock.settimeout(self.timeout)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return sock

    def connect(self) -> None:
        """Open both connections and start in-band notification.

        Raises:
            ConnectionFailure: If either socket cannot be opened or the
                daemon refuses the notification handshake
        """
        if self.connected:
            return

        self._command_sock = self._open_socket('connect')
        try:
            self._notify_sock = self._open_socket('notify')
            handle = self._send_command(self._notify_sock, LINK.CMD_NOIB, 0, 0)
            if handle < 0:
                raise ConnectionFailure(f"pigpio at {self.address} refused notifications ({handle})",
                                        self.address, 'notify', LinkStatus.BAD_NOIB)
        except ConnectionFailure:
            self._close_sockets()
            raise

        self.handle = handle
        logger.info("Connected to pigpio at %s (notify handle %d)", self.address, handle)

    def close(self) -> None:
        """Close the notification handle and both sockets."""
        if not self.connected:
            return
        if self.handle >= 0:
            self.command(LINK.CMD_NC, self.handle, 0)
            self.handle = -1
        self._close_sockets()
        logger.info("Disconnected from pigpio at %s", self.address)

    def _close_sockets(self) -> None:
        for sock in (self._command_sock, self._notify_sock):
            if sock is not None:
                sock.close()
        self._command_sock = None
        self._notify_sock = None

    # ---- Commands ----
    @staticmethod
    def _send_command(sock: Optional[socket.socket], cmd: int, p1: int, p2: int) -> int:
        if sock is None:
            return LinkStatus.BAD_SOCKET
        try:
            sock.sendall(COMMAND_STRUCT.pack(cmd, p1 & 0xFFFFFFFF, p2 & 0xFFFFFFFF, 0))
        except OSError:
            return LinkStatus.BAD_SEND

        reply = bytearray()
        try:
            while len(reply) < COMMAND_STRUCT.size:
                chunk = sock.recv(COMMAND_STRUCT.size - len(reply))
                if not chunk:
                    return LinkStatus.BAD_RECV
                reply.extend(chunk)
        except OSError:
            return LinkStatus.BAD_RECV

        return COMMAND_STRUCT.unpack(reply)[3]

    def command(self, cmd: int, p1: int = 0, p2: int = 0) -> int:
        """Send a command on the command socket and return the daemon's result."""
        return self._send_command(self._command_sock, cmd, p1, p2)

    def hardware_revision(self) -> int:
        return self.command(LINK.CMD_HWVER)

    def set_notify_mask(self, mask: Level) -> int:
        """Select which channels the daemon reports on the notification stream."""
        status = self.command(LINK.CMD_NB, self.handle, mask)
        if status < 0:
            logger.warning("Setting notify mask 0x%08X failed (%d)", mask, status)
        return status

    # ---- Report stream ----
    def read(self, max_bytes: int) -> bytes:
        """Return whatever report bytes are ready, or ``b""`` without waiting.

        Raises:
            ConnectionFailure: If the daemon closed the notification stream
        """
        sock = self._notify_sock
        if sock is None or max_bytes <= 0:
            return b""

        readable, _, _ = select.select([sock], [], [], 0)
        if not readable:
            return b""

        try:
            data = sock.recv(max_bytes)
        except OSError as e:
            raise ConnectionFailure(f"Lost pigpio notifications from {self.address}: {e}",
                                    self.address, 'read', LinkStatus.BAD_REPORT) from e
        if not data:
            raise ConnectionFailure(f"pigpio at {self.address} closed the notification stream",
                                    self.address, 'read', LinkStatus.BAD_REPORT)
        return data
