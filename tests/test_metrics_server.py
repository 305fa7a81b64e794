import socket
import ssl
from collections.abc import Iterator

import httpx
import pytest
from prometheus_client import CollectorRegistry
from prometheus_client.parser import text_string_to_metric_families

from helpers import client_context
from registry_operator.config.schema import ServingInfo
from registry_operator.errors import ConfigurationError, TransportError
from registry_operator.metrics import registry as metrics
from registry_operator.metrics import server as server_module
from registry_operator.metrics.registry import OperatorMetrics
from registry_operator.metrics.server import MetricsServer, ServerLifecycleState, parse_bind_address

LOCAL = "127.0.0.1:0"


def _server(tls_files: tuple[str, str], registry: CollectorRegistry | None = None, **serving) -> MetricsServer:
    cert, key = tls_files
    serving.setdefault("bind_address", LOCAL)
    return MetricsServer(cert, key, ServingInfo(**serving), registry=registry)


@pytest.fixture
def running(tls_files: tuple[str, str]) -> Iterator[MetricsServer]:
    server = _server(tls_files)
    server.start()
    yield server
    server.stop()


def _url(server: MetricsServer, path: str = "/metrics") -> str:
    host, port = server.address
    return f"https://{host}:{port}{path}"


def _sample(text: str, name: str, labels: dict[str, str] | None = None) -> float | None:
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name == name and (labels or {}).items() <= sample.labels.items():
                return sample.value
    return None


def _handshake(server: MetricsServer, context: ssl.SSLContext) -> ssl.SSLSocket:
    sock = socket.create_connection(server.address, timeout=5)
    try:
        return context.wrap_socket(sock, server_hostname="localhost")
    except BaseException:
        sock.close()
        raise


def test_storage_reconfigured_over_https(running: MetricsServer) -> None:
    name = "image_registry_operator_storage_reconfigured_total"
    with httpx.Client(verify=False, timeout=5) as client:
        start = _sample(client.get(_url(running)).text, name)
        assert start is not None

        for iterations, expected in ((0, 0), (5, 5), (5, 10)):
            for _ in range(iterations):
                metrics.storage_reconfigured()
            resp = client.get(_url(running))
            assert resp.status_code == 200
            assert resp.headers["content-type"].startswith("text/plain")
            assert _sample(resp.text, name) == start + expected


@pytest.mark.parametrize(
    ("installed", "enabled", "expected"),
    [(False, False, 0), (True, False, 1), (True, True, 2)],
    ids=["not-installed", "suspended", "enabled"],
)
def test_image_pruner_install_status_over_https(
    running: MetricsServer, installed: bool, enabled: bool, expected: int
) -> None:
    metrics.image_pruner_install_status(installed, enabled)
    resp = httpx.get(_url(running), verify=False, timeout=5)
    assert _sample(resp.text, "image_registry_operator_image_pruner_install_status") == expected


def test_other_paths_are_not_found(running: MetricsServer) -> None:
    with httpx.Client(verify=False, timeout=5) as client:
        assert client.get(_url(running, "/")).status_code == 404
        assert client.get(_url(running, "/metrics/extra")).status_code == 404
        assert client.get(_url(running, "/metrics?name[]=x")).status_code == 200


def test_head_returns_headers_only(running: MetricsServer) -> None:
    resp = httpx.head(_url(running), verify=False, timeout=5)
    assert resp.status_code == 200
    assert int(resp.headers["content-length"]) > 0
    assert resp.content == b""


def test_plain_http_is_refused(running: MetricsServer) -> None:
    host, port = running.address
    with pytest.raises(httpx.HTTPError):
        httpx.get(f"http://{host}:{port}/metrics", timeout=2)
    # Server keeps serving after the failed handshake.
    assert httpx.get(_url(running), verify=False, timeout=5).status_code == 200


def test_isolated_registry_is_served(tls_files: tuple[str, str]) -> None:
    operator_metrics = OperatorMetrics()
    operator_metrics.report_storage_type("Azure")
    server = _server(tls_files, registry=operator_metrics.registry)
    server.start()
    try:
        text = httpx.get(_url(server), verify=False, timeout=5).text
    finally:
        server.stop()
    assert _sample(text, "image_registry_operator_storage_type", {"storage": "Azure"}) == 1


class _BrokenCollector:
    def describe(self) -> list:
        return []

    def collect(self):
        raise RuntimeError("collector exploded")


def test_render_failure_is_a_server_error(tls_files: tuple[str, str]) -> None:
    registry = CollectorRegistry()
    registry.register(_BrokenCollector())
    server = _server(tls_files, registry=registry)
    server.start()
    try:
        with httpx.Client(verify=False, timeout=5) as client:
            assert client.get(_url(server)).status_code == 500
            assert client.get(_url(server)).status_code == 500
        assert server.state is ServerLifecycleState.RUNNING
    finally:
        server.stop()


@pytest.mark.parametrize(
    ("min_tls_version", "client_version", "accepted"),
    [
        ("", ssl.TLSVersion.TLSv1_2, True),
        ("", ssl.TLSVersion.TLSv1_3, True),
        ("VersionTLS12", ssl.TLSVersion.TLSv1_2, True),
        ("VersionTLS12", ssl.TLSVersion.TLSv1_3, True),
        ("VersionTLS13", ssl.TLSVersion.TLSv1_3, True),
        ("VersionTLS13", ssl.TLSVersion.TLSv1_2, False),
    ],
)
def test_tls_minimum_version(
    tls_files: tuple[str, str],
    min_tls_version: str,
    client_version: ssl.TLSVersion,
    accepted: bool,
) -> None:
    server = _server(tls_files, min_tls_version=min_tls_version)
    server.start()
    try:
        context = client_context(min_version=client_version, max_version=client_version)
        if accepted:
            with _handshake(server, context) as conn:
                assert conn.version() == {
                    ssl.TLSVersion.TLSv1_2: "TLSv1.2",
                    ssl.TLSVersion.TLSv1_3: "TLSv1.3",
                }[client_version]
        else:
            with pytest.raises(ssl.SSLError):
                _handshake(server, context).close()
            # A rejected handshake does not stop the listener.
            with _handshake(server, client_context()) as conn:
                assert conn.version() == "TLSv1.3"
    finally:
        server.stop()


def test_cipher_suites_restrict_tls12_negotiation(tls_files: tuple[str, str]) -> None:
    server = _server(
        tls_files,
        min_tls_version="VersionTLS12",
        cipher_suites=("TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384",),
    )
    server.start()
    try:
        context = client_context(
            min_version=ssl.TLSVersion.TLSv1_2, max_version=ssl.TLSVersion.TLSv1_2
        )
        with _handshake(server, context) as conn:
            assert conn.cipher()[0] == "ECDHE-RSA-AES256-GCM-SHA384"

        restricted = client_context(
            min_version=ssl.TLSVersion.TLSv1_2, max_version=ssl.TLSVersion.TLSv1_2
        )
        restricted.set_ciphers("ECDHE-RSA-AES128-GCM-SHA256")
        with pytest.raises(ssl.SSLError):
            _handshake(server, restricted).close()
    finally:
        server.stop()


def test_http2_is_never_negotiated(running: MetricsServer) -> None:
    context = client_context()
    context.set_alpn_protocols(["h2", "http/1.1"])
    with _handshake(running, context) as conn:
        assert conn.selected_alpn_protocol() == "http/1.1"

    h2_only = client_context()
    h2_only.set_alpn_protocols(["h2"])
    try:
        with _handshake(running, h2_only) as conn:
            assert conn.selected_alpn_protocol() is None
    except ssl.SSLError:
        pass  # OpenSSL may reject with no_application_protocol instead.


@pytest.mark.parametrize(
    "serving",
    [
        {"min_tls_version": "InvalidTLSVersion"},
        {"min_tls_version": "VersionTLS12", "cipher_suites": ("INVALID_CIPHER_SUITE",)},
        {"bind_address": ""},
        {"bind_address": "localhost"},
        {"bind_address": "localhost:99999"},
    ],
    ids=["bad-version", "bad-suite", "empty-bind", "no-port", "bad-port"],
)
def test_invalid_serving_info_binds_nothing(
    tls_files: tuple[str, str], monkeypatch: pytest.MonkeyPatch, serving: dict
) -> None:
    def _no_listener(*args, **kwargs):
        raise AssertionError("listener must not be created")

    monkeypatch.setattr(server_module, "_ThreadingTLSServer", _no_listener)
    with pytest.raises(ConfigurationError):
        _server(tls_files, **serving)


def test_invalid_version_leaves_port_free(tls_files: tuple[str, str], free_port: int) -> None:
    bind = f"127.0.0.1:{free_port}"
    with pytest.raises(ConfigurationError, match="min tls version"):
        _server(tls_files, bind_address=bind, min_tls_version="InvalidTLSVersion")
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", free_port))


def test_bind_failure_is_transport_error(tls_files: tuple[str, str]) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
        taken.bind(("127.0.0.1", 0))
        taken.listen()
        port = taken.getsockname()[1]
        server = _server(tls_files, bind_address=f"127.0.0.1:{port}")
        with pytest.raises(TransportError):
            server.start()
        assert server.state is ServerLifecycleState.STOPPED
        server.stop()


def test_lifecycle(tls_files: tuple[str, str]) -> None:
    server = _server(tls_files)
    assert server.state is ServerLifecycleState.STOPPED
    assert server.address is None

    server.stop()
    server.stop()

    server.start()
    assert server.state is ServerLifecycleState.RUNNING
    with pytest.raises(RuntimeError):
        server.start()

    server.stop()
    assert server.state is ServerLifecycleState.STOPPED
    server.stop()


def test_stop_closes_listener_and_live_connections(tls_files: tuple[str, str]) -> None:
    server = _server(tls_files)
    server.start()
    address = server.address
    conn = _handshake(server, client_context())
    try:
        server.stop()
        try:
            data = conn.recv(1)
        except (ssl.SSLError, OSError):
            data = b""
        assert data == b""
    finally:
        conn.close()

    with pytest.raises(OSError):
        socket.create_connection(address, timeout=2).close()


def test_parse_bind_address() -> None:
    assert parse_bind_address("0.0.0.0:60000") == ("0.0.0.0", 60000)
    assert parse_bind_address(":8443") == ("", 8443)
    assert parse_bind_address("[::1]:8443") == ("::1", 8443)
