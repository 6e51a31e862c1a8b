"""Static file server for local preview and the test suite.

Serves a directory tree over HTTP. Every request path is canonicalized
(symlinks and ``..`` resolved) and must land on the served root or below
it; anything else gets ``403 Forbidden``. Directory listings are never
produced.
"""

from __future__ import annotations

import argparse
import enum
import functools
import logging
import os
import shutil
import socket
import sys
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import unquote

import requests

from .errors import (
    BindError,
    ConfigurationError,
    NoAvailablePortError,
    NotFound,
    RequestError,
    SecurityViolation,
    ShutdownTimeoutError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_HOST = "127.0.0.1"
PORT_SEARCH_WINDOW = 100
REQUEST_TIMEOUT = 10.0
MAX_PORT = 65535
INDEX_FILE = "index.html"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
CONTENT_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".xml": "application/xml",
}


class ServerState(enum.Enum):
    """Lifecycle of a StaticFileServer.

    STARTING and STOPPING are held for the duration of ``start()`` and
    ``stop()``; only other threads can see them. Between calls the state is
    STOPPED or RUNNING.
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class Reply:
    status: int
    content_type: str
    body: Union[bytes, BinaryIO]
    length: int

    @classmethod
    def text(cls, status: int, message: str) -> "Reply":
        data = message.encode("utf-8")
        return cls(status, "text/plain", data, len(data))

    @classmethod
    def from_error(cls, error: RequestError) -> "Reply":
        return cls.text(error.status, error.body)

    def close(self) -> None:
        if not isinstance(self.body, bytes):
            self.body.close()


def content_type_for(path: Union[str, Path]) -> str:
    return CONTENT_TYPES.get(os.path.splitext(str(path))[1].lower(), DEFAULT_CONTENT_TYPE)


def is_within(root: str, candidate: str) -> bool:
    return candidate == root or candidate.startswith(os.path.join(root, ""))


def request_path(target: str) -> str:
    """Path component of a request target: query stripped, then percent-decoded."""
    path = target.split("?", 1)[0].split("#", 1)[0]
    return unquote(path)


def resolve_path(root: Union[str, Path], target: str) -> Path:
    """Map a request target onto a file below ``root``.

    Raises SecurityViolation when the canonical path escapes the root and
    NotFound when nothing servable exists there.
    """
    root_str = os.path.realpath(root)
    path = request_path(target)
    if "\x00" in path:
        raise SecurityViolation(f"Embedded NUL in path: {target!r}")
    relative = INDEX_FILE if path in ("", "/") else path[1:] if path.startswith("/") else path
    candidate = os.path.realpath(os.path.join(root_str, relative))
    if not is_within(root_str, candidate):
        raise SecurityViolation(f"Path escapes served root: {target!r}")
    if not os.path.exists(candidate):
        raise NotFound(f"No such file: {target!r}")
    if os.path.isdir(candidate):
        index = os.path.realpath(os.path.join(candidate, INDEX_FILE))
        if not is_within(root_str, index):
            raise SecurityViolation(f"Directory index escapes served root: {target!r}")
        if not os.path.isfile(index):
            raise NotFound(f"No index in directory: {target!r}", body="Directory listing not allowed")
        candidate = index
    return Path(candidate)


def open_file(path: Path) -> Reply:
    try:
        handle = open(path, "rb")
    except OSError as exc:
        raise TransientIOError(f"Cannot open {path}: {exc}") from exc
    try:
        size = os.fstat(handle.fileno()).st_size
    except OSError as exc:
        handle.close()
        raise TransientIOError(f"Cannot stat {path}: {exc}") from exc
    return Reply(200, content_type_for(path), handle, size)


def resolve_request(root: Union[str, Path], target: str) -> Reply:
    """Answer one request target. Never raises for request-level failures."""
    try:
        return open_file(resolve_path(root, target))
    except RequestError as exc:
        if isinstance(exc, TransientIOError):
            logger.error("%s", exc)
        elif isinstance(exc, SecurityViolation):
            logger.warning("%s", exc)
        else:
            logger.debug("%s", exc)
        return Reply.from_error(exc)


class StaticRequestHandler(BaseHTTPRequestHandler):
    server_version = "folio"
    # seconds a client may stall mid-request before the connection is dropped
    timeout = REQUEST_TIMEOUT

    def __init__(self, *args, root: str, **kwargs):
        self.root = root
        super().__init__(*args, **kwargs)

    def respond(self, send_body: bool = True) -> None:
        reply = resolve_request(self.root, self.path)
        try:
            self.send_response(reply.status)
            self.send_header("Content-Type", reply.content_type)
            self.send_header("Content-Length", str(reply.length))
            self.end_headers()
            if not send_body:
                return
            if isinstance(reply.body, bytes):
                self.wfile.write(reply.body)
            else:
                shutil.copyfileobj(reply.body, self.wfile)
        except OSError as exc:
            logger.warning("Failed to send %s: %s", self.path, exc)
            self.close_connection = True
        finally:
            reply.close()

    def do_GET(self) -> None:
        self.respond()

    def do_HEAD(self) -> None:
        self.respond(send_body=False)

    # Every other verb is treated as a plain retrieval.
    do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_GET

    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class _HTTPServer(ThreadingHTTPServer):
    """Threading server that remembers its open connections so ``stop`` can close them."""

    daemon_threads = True
    block_on_close = False

    def __init__(self, *args, **kwargs) -> None:
        self._connections: dict[socket.socket, threading.Thread] = {}
        self._connections_lock = threading.Lock()
        super().__init__(*args, **kwargs)

    def process_request(self, request, client_address) -> None:
        thread = threading.Thread(
            target=self.process_request_thread, args=(request, client_address), daemon=True
        )
        with self._connections_lock:
            self._connections[request] = thread
        thread.start()

    def shutdown_request(self, request) -> None:
        with self._connections_lock:
            self._connections.pop(request, None)
        super().shutdown_request(request)

    def handle_error(self, request, client_address) -> None:
        logger.debug("Error while handling %s", client_address, exc_info=True)

    def disconnect_all(self) -> list[threading.Thread]:
        """Shut down every open connection; returns the handler threads still attached."""
        with self._connections_lock:
            connections = list(self._connections.items())
        for request, _ in connections:
            try:
                request.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already closed by the peer
        return [thread for _, thread in connections]

    def close_all(self) -> None:
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for request in connections:
            request.close()


def port_is_free(port: int, host: str = DEFAULT_HOST) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= MAX_PORT:
        raise ConfigurationError(f"Port must be an integer in 1-{MAX_PORT}, got {port!r}")
    return port


def find_available_port(start: int, host: str = DEFAULT_HOST, window: int = PORT_SEARCH_WINDOW) -> int:
    validate_port(start)
    end = start + window
    for port in range(start, min(end, MAX_PORT + 1)):
        if port_is_free(port, host):
            return port
    raise NoAvailablePortError(start, end)


class StaticFileServer:
    def __init__(
        self,
        root: Union[str, Path],
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        shutdown_timeout: float = 5.0,
    ) -> None:
        self.root = Path(root)
        self.requested_port = port
        self.host = host
        self.shutdown_timeout = shutdown_timeout
        self.port: Optional[int] = None
        self._state = ServerState.STOPPED
        self._lock = threading.Lock()
        self._httpd: Optional[_HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServerState.RUNNING

    @property
    def base_url(self) -> str:
        if not self.is_running:
            raise ConfigurationError("Server is not running")
        return f"http://{self.host}:{self.port}"

    def start(self) -> int:
        with self._lock:
            if self.is_running and self.port is not None:
                return self.port
            if not self.root.is_dir():
                raise ConfigurationError(f"Served root does not exist: {self.root}")
            self._state = ServerState.STARTING
            try:
                port = find_available_port(self.requested_port, self.host)
                handler = functools.partial(StaticRequestHandler, root=os.path.realpath(self.root))
                try:
                    httpd = _HTTPServer((self.host, port), handler)
                except OSError as exc:
                    raise BindError(port, exc) from exc
            except Exception:
                self._state = ServerState.STOPPED
                raise
            self._httpd = httpd
            port = httpd.server_address[1]
            self.port = port
            self._thread = threading.Thread(
                target=httpd.serve_forever, name=f"folio-server-{port}", daemon=True
            )
            self._thread.start()
            self._state = ServerState.RUNNING
        logger.info("Test server started on http://%s:%d", self.host, port)
        return port

    def stop(self) -> None:
        """Stop serving and close the listening socket and every open connection.

        Waits at most ``shutdown_timeout`` seconds in total. On timeout the
        sockets are closed anyway, the state is STOPPED and
        ShutdownTimeoutError is raised.
        """
        with self._lock:
            if self._httpd is None:
                self._state = ServerState.STOPPED
                return
            self._state = ServerState.STOPPING
            httpd, thread = self._httpd, self._thread
            deadline = time.monotonic() + self.shutdown_timeout
            try:
                closer = threading.Thread(target=httpd.shutdown, daemon=True)
                closer.start()
                closer.join(self.shutdown_timeout)
                pending = [closer, *httpd.disconnect_all()]
                if thread is not None:
                    pending.append(thread)
                for worker in pending:
                    worker.join(max(0.0, deadline - time.monotonic()))
                stuck = [worker for worker in pending if worker.is_alive()]
            finally:
                httpd.server_close()
                httpd.close_all()
                self._httpd = None
                self._thread = None
                self._state = ServerState.STOPPED
        if stuck:
            logger.warning("Test server left %d thread(s) running after shutdown", len(stuck))
            raise ShutdownTimeoutError(self.shutdown_timeout)
        logger.info("Test server stopped")

    def is_healthy(self, timeout: float = 1.0) -> bool:
        if not self.is_running:
            return False
        try:
            response = requests.get(f"{self.base_url}/", timeout=timeout)
        except requests.RequestException:
            return False
        return response.status_code < 500

    def wait_until_healthy(self, timeout: float = 5.0, interval: float = 0.1) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if self.is_healthy(timeout=max(0.05, min(1.0, remaining))):
                return True
            if time.monotonic() + interval >= deadline:
                return False
            time.sleep(interval)

    def __enter__(self) -> "StaticFileServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve a built site locally.")
    parser.add_argument("root", nargs="?", default="dist", help="Directory to serve.")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="First port to try.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Interface to bind.")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    server = StaticFileServer(args.root, port=args.port, host=args.host)
    try:
        server.start()
    except (ConfigurationError, NoAvailablePortError, BindError) as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"Serving {Path(args.root).resolve()} on {server.base_url}")
    try:
        while True:
            time.sleep(3600)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
