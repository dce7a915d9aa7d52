"""Command line interface and argument parsing."""

import argparse
import math
import re
import sys
from dataclasses import dataclass

from . import __version__
from .exceptions import AddressParseError

DEFAULT_PORT = "443"
DEFAULT_TIMEOUT = 1.0
DEFAULT_FORMAT = "EOL: {{.EOL_DATETIME}}"
FIELDS = ("EOL_DATETIME", "EOL_UNIXTIME", "EOL_TTL")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


@dataclass(frozen=True)
class Target:
    host: str
    port: str

    @property
    def address(self) -> str:
        """Printable host:port, with IPv6 literals bracketed."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class CheckConfig:
    """Everything one check needs, built once from the command line."""

    host: str
    timeout: float = DEFAULT_TIMEOUT
    format: str = DEFAULT_FORMAT
    nolog: bool = False
    debug: bool = False
    color: bool = True


def parse_duration(value: str) -> float:
    """
    Parse a duration into seconds.

    Accepts Go-style durations ("500ms", "1.5s", "1m30s", "2h") as well as
    a bare number of seconds ("0.5", "10").

    Raises:
        ValueError: if the value is not a duration
    """
    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {value!r}")
        return seconds

    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def duration_arg(value: str) -> float:
    """argparse type wrapper around parse_duration."""
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def split_host_port(hostport: str) -> tuple[str, str]:
    """
    Split "host:port", "[ipv6]:port" into host and port.

    The port is returned as given (it may be a service name or empty).

    Raises:
        AddressParseError: if the string has no port or is malformed
    """
    i = hostport.rfind(":")
    if i < 0:
        raise AddressParseError(hostport, "missing port in address")

    j = k = 0
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise AddressParseError(hostport, "missing ']' in address")
        if end + 1 == len(hostport):
            raise AddressParseError(hostport, "missing port in address")
        if end + 1 != i:
            if hostport[end + 1] == ":":
                raise AddressParseError(hostport, "too many colons in address")
            raise AddressParseError(hostport, "missing port in address")
        host = hostport[1:end]
        j, k = 1, end + 1
    else:
        host = hostport[:i]
        if ":" in host:
            raise AddressParseError(hostport, "too many colons in address")

    if "[" in hostport[j:]:
        raise AddressParseError(hostport, "unexpected '[' in address")
    if "]" in hostport[k:]:
        raise AddressParseError(hostport, "unexpected ']' in address")
    return host, hostport[i + 1 :]


def parse_host_arg(address: str) -> Target:
    """
    Parse the --host value into a Target, defaulting the port to 443.

    Args:
        address: "host", "host:port", "[ipv6]" or "[ipv6]:port"

    Raises:
        AddressParseError: the original split error, when the address is
            unusable even with the default port appended
    """
    try:
        host, port = split_host_port(address)
    except AddressParseError as original:
        try:
            host, port = split_host_port(f"{address}:{DEFAULT_PORT}")
        except AddressParseError:
            raise original from None
    return Target(host=host, port=port)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ssl-eol",
        description="Print the expiration date of a server's TLS certificate.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "The certificate is read without validating trust, so expired,\n"
            "self-signed and mismatched certificates are reported as well.\n"
            f"Template fields: {', '.join(FIELDS)}\n"
            "\n"
            "Examples:\n"
            "  ssl-eol --host example.com\n"
            "  ssl-eol --host example.com:8443 --timeout 3s --nolog \\\n"
            "      --format '{{.EOL_DATETIME.Format \"2006-01-02\"}}'\n"
            "  ssl-eol --host example.com --nolog \\\n"
            "      --format '{{if lt .EOL_TTL 604800}}RENEW{{else}}OK{{end}}'"
        ),
    )

    parser.add_argument(
        "--host",
        help="host[:port] to check certificate (default port: 443)",
    )

    parser.add_argument(
        "--timeout",
        type=duration_arg,
        default=DEFAULT_TIMEOUT,
        help="Max time for connect and handshake, e.g. 500ms, 2s, 1m\n"
        "(a bare number means seconds; default: 1s)",
    )

    parser.add_argument(
        "--format",
        default=DEFAULT_FORMAT,
        help=f"Output format (default: {DEFAULT_FORMAT!r})\n"
        f"Available fields: {', '.join(FIELDS)}",
    )

    parser.add_argument(
        "--nolog",
        action="store_true",
        help="Disable log to stderr",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output for troubleshooting",
    )

    parser.add_argument("--no-color", action="store_true", help="Disable color output")

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    # Accepted for compatibility with older scripts; they change nothing.
    for flag in ("--human", "--out-eol", "--notitle"):
        parser.add_argument(flag, action="store_true", help=argparse.SUPPRESS)

    return parser


def handle_version_check(args: argparse.Namespace) -> bool:
    """
    Handle version argument and exit if requested.

    Args:
        args: Parsed arguments

    Returns:
        False when no version was requested
    """
    if args.version:
        print(f"ssl-eol version {__version__}")
        sys.exit(0)
    return False


def validate_args(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    """Show help when there is nothing to check and reject bad values."""
    if not args.host:
        parser.print_help()
        sys.exit(1)

    if args.timeout <= 0:
        parser.error("--timeout must be > 0")


def build_config(args: argparse.Namespace) -> CheckConfig:
    return CheckConfig(
        host=args.host,
        timeout=args.timeout,
        format=args.format,
        nolog=args.nolog,
        debug=args.debug,
        color=not args.no_color,
    )
