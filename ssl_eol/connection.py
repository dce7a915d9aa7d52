"""TCP dial and TLS handshake against the target."""

import socket
import ssl
import time
from dataclasses import dataclass, field
from typing import Optional

from .cli import Target
from .exceptions import DialError, HandshakeError
from .formatting import LOGGER


@dataclass
class PeerConnection:
    """What the handshake told us about the peer."""

    chain: list[bytes] = field(default_factory=list)
    chain_source: Optional[str] = None
    tls_version: Optional[str] = None
    cipher: Optional[tuple] = None
    resolved_ip: Optional[str] = None

    @property
    def leaf(self) -> Optional[bytes]:
        return self.chain[0] if self.chain else None


def _remaining(deadline: float) -> float:
    return deadline - time.monotonic()


def open_connection(target: Target, deadline: float) -> socket.socket:
    """
    Dial the target over TCP within the time left before ``deadline``.

    Every resolved address is tried in turn, each with whatever is left of
    the budget, so several unreachable records cannot stretch the dial past
    the deadline. Name resolution itself is not interruptible.

    Raises:
        DialError: resolution failure, refused connection or timeout
    """
    if _remaining(deadline) <= 0:
        raise DialError(target.address, socket.timeout("timed out"))
    try:
        addr_info = socket.getaddrinfo(
            target.host, target.port, type=socket.SOCK_STREAM
        )
    except OSError as exc:
        raise DialError(target.address, exc) from exc

    last_error: OSError | None = None
    for af, socktype, proto, _, sockaddr in addr_info:
        timeout = _remaining(deadline)
        if timeout <= 0:
            last_error = socket.timeout("timed out")
            break
        sock = socket.socket(af, socktype, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
            return sock
        except OSError as exc:
            LOGGER.debug("Connect to %s failed: %s", sockaddr[0], exc)
            last_error = exc
            sock.close()

    if last_error is None:
        last_error = socket.gaierror(f"no addresses found for {target.host}")
    raise DialError(target.address, last_error) from last_error


def tls_handshake(
    sock: socket.socket, target: Target, deadline: float
) -> ssl.SSLSocket:
    """
    Run the TLS client handshake over ``sock``.

    The peer certificate is never verified: the point is to read it whatever
    its trust status. SNI carries the target host (Python leaves it out for
    IP literals). Whatever time is left before ``deadline`` bounds the
    whole handshake.

    Raises:
        HandshakeError: protocol failure, peer hang-up or deadline exceeded
    """
    context = ssl._create_unverified_context()  # nosec B323
    timeout = _remaining(deadline)
    if timeout <= 0:
        raise HandshakeError(target.address, socket.timeout("timed out"))
    sock.settimeout(timeout)
    try:
        return context.wrap_socket(sock, server_hostname=target.host or None)
    except (OSError, ValueError) as exc:
        raise HandshakeError(target.address, exc) from exc


def get_peer_chain(ssock: ssl.SSLSocket) -> tuple[list[bytes], Optional[str]]:
    """Return the peer chain as DER blobs, leaf first, and where it came from."""
    chain: list[bytes] = []
    source: Optional[str] = None

    if hasattr(ssock, "get_unverified_chain"):
        unverified_chain = ssock.get_unverified_chain()
        chain = [
            bytes(der)
            for der in unverified_chain or []
            if isinstance(der, (bytes, bytearray))
        ]
        source = "unverified"

    if not chain:
        leaf = ssock.getpeercert(binary_form=True)
        if leaf:
            chain = [leaf]
            source = "leaf-only"

    return chain, source if chain else None


def fetch_peer_connection(target: Target, deadline: float) -> PeerConnection:
    """
    Connect, handshake and collect the peer certificate chain.

    The socket is closed before returning, on success and on failure.
    """
    with open_connection(target, deadline) as sock:
        resolved_ip = sock.getpeername()[0]
        LOGGER.debug("Resolved IP: %s", resolved_ip)
        with tls_handshake(sock, target, deadline) as ssock:
            chain, chain_source = get_peer_chain(ssock)
            peer = PeerConnection(
                chain=chain,
                chain_source=chain_source,
                tls_version=ssock.version(),
                cipher=ssock.cipher(),
                resolved_ip=resolved_ip,
            )

    LOGGER.debug("TLS Version: %s", peer.tls_version)
    LOGGER.debug("Cipher: %s", peer.cipher)
    LOGGER.debug("Chain: %d certificate(s) (%s)", len(peer.chain), peer.chain_source)
    return peer
