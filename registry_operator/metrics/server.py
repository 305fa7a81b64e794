"""HTTPS server exposing the operator metrics registry.

The server owns one TLS listener and a single route, ``/metrics``, rendered
in the Prometheus text exposition format. TLS handshakes run on the
per-connection thread so a slow or broken client never stalls accepting.

Usage:
    server = MetricsServer("/etc/secrets/tls.crt", "/etc/secrets/tls.key", serving_info)
    server.start()
    ...
    server.stop()
"""

from __future__ import annotations

import socket
import ssl
import sys
import threading
from enum import Enum
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import TCPServer, ThreadingMixIn
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from registry_operator.crypto import build_server_context, resolve_tls_parameters
from registry_operator.errors import ConfigurationError, RenderError, TransportError
from registry_operator.metrics.registry import get_registry

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

    from registry_operator.config.schema import ServingInfo

METRICS_PATH = "/metrics"


class ServerLifecycleState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def parse_bind_address(bind_address: str) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port`` and ``:port`` accepted)."""
    host, sep, port_text = bind_address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"bind address {bind_address!r} is missing a port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigurationError(f"bind address {bind_address!r} has an invalid port") from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"bind address {bind_address!r} has an invalid port")
    return host, port


def render(registry: CollectorRegistry) -> bytes:
    """Render ``registry`` in the text exposition format."""
    try:
        return generate_latest(registry)
    except Exception as e:
        raise RenderError(f"failed to render metrics: {e}") from e


class _ThreadingTLSServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    block_on_close = False
    allow_reuse_address = True

    def __init__(
        self,
        server_address: tuple[str, int],
        handler_cls: type[BaseHTTPRequestHandler],
        ssl_context: ssl.SSLContext,
    ) -> None:
        self._ssl_context = ssl_context
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        super().__init__(server_address, handler_cls)

    def server_bind(self) -> None:
        # Skip HTTPServer's reverse lookup of the bind host.
        TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = host
        self.server_port = port

    def get_request(self) -> tuple[socket.socket, Any]:
        raw_socket, addr = super().get_request()
        tls_socket = self._ssl_context.wrap_socket(
            raw_socket, server_side=True, do_handshake_on_connect=False
        )
        return tls_socket, addr

    def process_request(self, request: Any, client_address: Any) -> None:
        with self._connections_lock:
            self._connections.add(request)
        super().process_request(request, client_address)

    def shutdown_request(self, request: Any) -> None:
        with self._connections_lock:
            self._connections.discard(request)
        super().shutdown_request(request)

    def handle_error(self, request: Any, client_address: Any) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, OSError):
            logger.warning("metrics connection from {} failed: {}", client_address, exc)
            return
        logger.opt(exception=True).error("error serving metrics request from {}", client_address)

    def close_connections(self) -> None:
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                socket.socket.shutdown(conn, socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()


def _build_metrics_handler(registry: CollectorRegistry) -> type[BaseHTTPRequestHandler]:
    class _MetricsHandler(BaseHTTPRequestHandler):
        timeout = 30

        def setup(self) -> None:
            self.request.settimeout(self.timeout)
            self.request.do_handshake()
            super().setup()

        def do_GET(self) -> None:  # noqa: N802 - http.server interface
            self._serve_metrics(send_body=True)

        def do_HEAD(self) -> None:  # noqa: N802 - http.server interface
            self._serve_metrics(send_body=False)

        def _serve_metrics(self, send_body: bool) -> None:
            if urlsplit(self.path).path != METRICS_PATH:
                self.send_error(HTTPStatus.NOT_FOUND)
                return
            try:
                payload = render(registry)
            except RenderError as e:
                logger.error("error gathering metrics: {}", e)
                self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, explain=str(e))
                return
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", CONTENT_TYPE_LATEST)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            if send_body:
                self.wfile.write(payload)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.debug("metrics request from {}: {}", self.address_string(), format % args)

    return _MetricsHandler


class MetricsServer:
    """Prometheus metrics over HTTPS with configurable TLS settings.

    Construction validates everything (bind address, TLS version, cipher
    suites, certificate) and opens no socket; :meth:`start` binds and serves
    in the background; :meth:`stop` closes the listener and every live
    connection at once.
    """

    def __init__(
        self,
        cert_file: str,
        key_file: str,
        serving_info: ServingInfo,
        registry: CollectorRegistry | None = None,
    ) -> None:
        if not serving_info.bind_address:
            raise ConfigurationError("metrics server bind address is empty")
        self._bind_address = serving_info.bind_address
        self._host, self._port = parse_bind_address(serving_info.bind_address)

        self.tls_parameters = resolve_tls_parameters(
            serving_info.min_tls_version, serving_info.cipher_suites
        )
        self._ssl_context = build_server_context(self.tls_parameters, cert_file, key_file)
        self._handler_cls = _build_metrics_handler(registry or get_registry())

        self._lock = threading.Lock()
        self._httpd: _ThreadingTLSServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> ServerLifecycleState:
        return ServerLifecycleState.RUNNING if self._httpd is not None else ServerLifecycleState.STOPPED

    @property
    def address(self) -> tuple[str, int] | None:
        """Bound ``(host, port)`` while running."""
        httpd = self._httpd
        if httpd is None:
            return None
        host, port = httpd.server_address[:2]
        return host, port

    def start(self) -> None:
        """Bind the listener and serve in a background thread.

        Raises:
            TransportError: The bind address could not be bound.
            RuntimeError: The server is already running.
        """
        with self._lock:
            if self._httpd is not None:
                raise RuntimeError("metrics server already started")
            try:
                httpd = _ThreadingTLSServer(
                    (self._host, self._port), self._handler_cls, self._ssl_context
                )
            except OSError as e:
                raise TransportError(f"failed to listen on {self._bind_address}: {e}") from e

            thread = threading.Thread(
                target=self._serve, args=(httpd,), name="metrics-server", daemon=True
            )
            self._httpd = httpd
            self._thread = thread
            thread.start()

        host, port = httpd.server_address[:2]
        logger.info("Metrics server listening on https://{}:{}{}", host, port, METRICS_PATH)

    def _serve(self, httpd: _ThreadingTLSServer) -> None:
        try:
            httpd.serve_forever(poll_interval=0.1)
        except Exception as e:
            logger.error("error starting metrics server: {}", e)

    def stop(self) -> None:
        """Stop serving immediately. Safe to call repeatedly or before start."""
        with self._lock:
            httpd, thread = self._httpd, self._thread
            self._httpd = None
            self._thread = None
        if httpd is None:
            return

        try:
            httpd.shutdown()
            httpd.server_close()
        except OSError as e:
            logger.error("error closing metrics listener: {}", e)
        httpd.close_connections()
        if thread is not None:
            thread.join()
        logger.info("Metrics server stopped")
