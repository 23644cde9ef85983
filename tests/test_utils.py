"""Common test utilities for gpioscope tests."""

import socket
import struct
import threading
from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from gpioscope.config import LINK
from gpioscope.errors import ConnectionFailure
from gpioscope.ingestion import REPORT_STRUCT
from gpioscope.sample_store import SampleStore


def get_repo_root() -> Path:
    """Repository root (this file lives in tests/)."""
    return Path(__file__).parent.parent.resolve()


def make_store(records: Iterable[Tuple[int, int]], capacity: int = 64) -> SampleStore:
    """Store filled by plain appends, in the given order."""
    store = SampleStore(capacity)
    for tick, level in records:
        store.append(tick, level)
    return store


def pack_reports(reports: Iterable[Tuple[int, int]], first_seqno: int = 0) -> bytes:
    """Encode (raw_tick, level) pairs as device report bytes."""
    return b"".join(
        REPORT_STRUCT.pack((first_seqno + i) & 0xFFFF, 0, tick & 0xFFFFFFFF, level)
        for i, (tick, level) in enumerate(reports)
    )


def write_capture(path: Path, records: Sequence[Tuple[int, int]],
                  date: str = "2024-05-01 12:30:00") -> Path:
    """Write a text capture file by hand."""
    lines = ["#piscope", f"#date {date}"]
    lines += [f"{tick} {level:08X}" for tick, level in records]
    path.write_text("\n".join(lines) + "\n")
    return path


class FakeLink:
    """In-memory device link: serves queued report bytes and records commands."""

    def __init__(self, hwver: int = 16, chunks: Optional[List[bytes]] = None) -> None:
        self.hwver = hwver
        self.chunks = deque(chunks or [])
        self.notify_masks: List[int] = []
        self.closed = False
        self.fail_reads = False
        self.reads = 0

    def push(self, data: bytes) -> None:
        self.chunks.append(data)

    def push_reports(self, reports: Iterable[Tuple[int, int]]) -> None:
        self.push(pack_reports(reports))

    def read(self, max_bytes: int) -> bytes:
        self.reads += 1
        if self.fail_reads:
            raise ConnectionFailure("notification stream closed", "fake:0", "read")
        if not self.chunks:
            return b""
        data = self.chunks.popleft()
        if len(data) > max_bytes:
            self.chunks.appendleft(data[max_bytes:])
            data = data[:max_bytes]
        return data

    def hardware_revision(self) -> int:
        return self.hwver

    def set_notify_mask(self, mask: int) -> int:
        self.notify_masks.append(mask)
        return 0

    def close(self) -> None:
        self.closed = True


class FakePigpioDaemon:
    """Minimal pigpio daemon on localhost for socket-level link tests.

    Answers every command frame with ``result`` (or the configured value
    for HWVER / NOIB). The connection that sent NOIB becomes the
    notification stream.
    """

    FRAME = struct.Struct('<IIIi')

    def __init__(self, hwver: int = 0x00A02082, noib_result: int = 3) -> None:
        self.hwver = hwver
        self.noib_result = noib_result
        self.commands: List[Tuple[int, int, int]] = []
        self.notify_ready = threading.Event()
        self._notify_conn: Optional[socket.socket] = None
        self._conns: List[socket.socket] = []
        self._stopping = False

        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(4)
        self._server.settimeout(0.1)
        self.port = self._server.getsockname()[1]
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)

    def __enter__(self) -> 'FakePigpioDaemon':
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def _accept_loop(self) -> None:
        while not self._stopping:
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.settimeout(None)
            self._conns.append(conn)
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _recv_frame(self, conn: socket.socket) -> Optional[bytes]:
        data = b""
        while len(data) < self.FRAME.size:
            try:
                chunk = conn.recv(self.FRAME.size - len(data))
            except OSError:
                return None
            if not chunk:
                return None
            data += chunk
        return data

    def _serve(self, conn: socket.socket) -> None:
        while True:
            frame = self._recv_frame(conn)
            if frame is None:
                return
            cmd, p1, p2, _ = self.FRAME.unpack(frame)
            self.commands.append((cmd, p1, p2))
            result = 0
            if cmd == LINK.CMD_HWVER:
                result = self.hwver
            elif cmd == LINK.CMD_NOIB:
                result = self.noib_result
            try:
                conn.sendall(self.FRAME.pack(cmd, p1, p2, result))
            except OSError:
                return
            if cmd == LINK.CMD_NOIB and result >= 0:
                self._notify_conn = conn
                self.notify_ready.set()
                return

    def send_reports(self, reports: Iterable[Tuple[int, int]]) -> None:
        assert self.notify_ready.wait(2.0), "client never opened notifications"
        self._notify_conn.sendall(pack_reports(reports))

    def close_notify(self) -> None:
        assert self.notify_ready.wait(2.0), "client never opened notifications"
        self._notify_conn.close()

    def stop(self) -> None:
        self._stopping = True
        self._server.close()
        for conn in self._conns:
            try:
                conn.close()
            except OSError:
                pass
        self._thread.join(1.0)


def unused_port() -> int:
    """A localhost port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
