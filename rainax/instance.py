"""Single-instance signalling over a loopback TCP port."""

from __future__ import annotations

import socket
import socketserver
import threading
from typing import Callable, Optional, Union

LOCALHOST = "127.0.0.1"
READ_TIMEOUT = 0.5


def _as_bytes(magic: Union[str, bytes]) -> bytes:
    return magic.encode("utf-8") if isinstance(magic, str) else bytes(magic)


def signal_existing_instance(
    port: int, magic: Union[str, bytes], timeout: float = 0.5
) -> bool:
    """Tell a running instance to show itself; False if none is listening."""
    try:
        sock = socket.create_connection((LOCALHOST, port), timeout=timeout)
    except OSError:
        return False
    with sock:
        try:
            sock.sendall(_as_bytes(magic))
        except OSError:
            pass
    return True


class _MagicHandler(socketserver.BaseRequestHandler):
    server: "_InstanceTCPServer"

    def handle(self) -> None:
        sock: socket.socket = self.request
        sock.settimeout(READ_TIMEOUT)
        data = b""
        try:
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk
        except OSError:
            pass
        if self.server.needle in data:
            self.server.on_activate()


class _InstanceTCPServer(socketserver.TCPServer):
    needle: bytes
    on_activate: Callable[[], None]


class InstanceServer:
    """Listens on a loopback port and calls ``on_activate`` on each signal."""

    def __init__(
        self, port: int, magic: Union[str, bytes], on_activate: Callable[[], None]
    ) -> None:
        self._requested_port = port
        self.magic = _as_bytes(magic)
        self.on_activate = on_activate
        self._server: Optional[_InstanceTCPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The bound port while running, otherwise the requested one."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    def start(self) -> bool:
        """Start listening; False if the port is already owned by someone else."""
        if self._server is not None:
            return True
        try:
            server = _InstanceTCPServer((LOCALHOST, self._requested_port), _MagicHandler)
        except OSError:
            return False
        server.needle = self.magic.strip()
        server.on_activate = self.on_activate
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.2},
            name="rainax-instance",
            daemon=True,
        )
        self._thread.start()
        return True

    def stop(self) -> None:
        """Stop listening and release the port."""
        server, thread = self._server, self._thread
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(2.0)
        self._server = None
        self._thread = None

    def __enter__(self) -> "InstanceServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()