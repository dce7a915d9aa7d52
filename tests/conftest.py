"""Test configuration and fixtures."""

import socket
import ssl
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

NOT_AFTER = datetime(2030, 1, 1, tzinfo=timezone.utc)
NOT_AFTER_UNIX = 1893456000


class StubServer:
    """Accepts connections on 127.0.0.1 and hands each one to ``handler``."""

    def __init__(self, handler: Callable[["StubServer", socket.socket], None]) -> None:
        self.handler = handler
        self.stopped = threading.Event()
        self.server_names: List[Optional[str]] = []
        self._connections: List[socket.socket] = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(0.1)
        self.host, self.port = self._sock.getsockname()[:2]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def _serve(self) -> None:
        while not self.stopped.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            self._connections.append(conn)
            try:
                self.handler(self, conn)
            except OSError:
                pass

    def close(self) -> None:
        self.stopped.set()
        self._thread.join(timeout=5)
        self._sock.close()
        for conn in self._connections:
            conn.close()


@pytest.fixture(scope="session")
def cert_files(tmp_path_factory) -> Dict[str, object]:
    """Self-signed localhost certificate expiring 2030-01-01T00:00:00Z."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime(2020, 1, 1, tzinfo=timezone.utc))
        .not_valid_after(NOT_AFTER)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    directory = tmp_path_factory.mktemp("certs")
    cert_path = directory / "server.pem"
    key_path = directory / "server.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return {
        "cert": str(cert_path),
        "key": str(key_path),
        "der": cert.public_bytes(serialization.Encoding.DER),
    }


@pytest.fixture
def tls_server(cert_files):
    """A TLS server presenting the 2030 certificate; records the SNI it gets."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_files["cert"], cert_files["key"])

    def remember_sni(ssl_sock, server_name, ctx):
        server.server_names.append(server_name)

    context.sni_callback = remember_sni

    def handle(stub: StubServer, conn: socket.socket) -> None:
        conn.settimeout(5)
        with context.wrap_socket(conn, server_side=True):
            pass

    server = StubServer(handle)
    yield server
    server.close()


@pytest.fixture
def plain_server():
    """A TCP server that answers the ClientHello with plain HTTP."""

    def handle(stub: StubServer, conn: socket.socket) -> None:
        conn.settimeout(5)
        conn.recv(4096)
        conn.sendall(b"HTTP/1.1 400 Bad Request\r\nConnection: close\r\n\r\n")
        conn.close()

    server = StubServer(handle)
    yield server
    server.close()


@pytest.fixture
def silent_server():
    """Accepts TCP connections and never says anything."""

    def handle(stub: StubServer, conn: socket.socket) -> None:
        stub.stopped.wait()

    server = StubServer(handle)
    yield server
    server.close()


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
