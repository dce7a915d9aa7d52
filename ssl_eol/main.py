"""Main application logic and entry point."""

import sys
import time
from typing import Optional, Sequence

from .cli import (
    CheckConfig,
    build_config,
    create_parser,
    handle_version_check,
    parse_host_arg,
    validate_args,
)
from .connection import fetch_peer_connection
from .exceptions import (
    EXIT_SUCCESS,
    CertificateParseError,
    CheckerError,
    NoCertificateError,
    handle_checker_error,
    handle_general_error,
    handle_keyboard_interrupt,
)
from .formatting import LOGGER, setup_logging
from .parser import parse_der_cert, render_context
from .template import compile_template


def run_check(config: CheckConfig) -> str:
    """
    Fetch the target's leaf certificate and render its expiry.

    The timeout is one budget shared by the TCP dial and the TLS handshake,
    counted from the moment this function is entered. The template and the
    address are both validated before anything touches the network.

    Returns:
        The rendered template text

    Raises:
        CheckerError: the first failure, whichever step it comes from
    """
    start_time = time.monotonic()
    deadline = start_time + config.timeout

    template = compile_template(config.format)
    target = parse_host_arg(config.host)

    LOGGER.info("Host: %s", target.address)
    peer = fetch_peer_connection(target, deadline)
    if peer.leaf is None:
        raise NoCertificateError(target.address)

    try:
        info = parse_der_cert(peer.leaf)
    except ValueError as exc:
        raise CertificateParseError(target.address, exc) from exc

    LOGGER.debug("Subject: %s", info.subject)
    LOGGER.debug("Serial: %x", info.serial_number)
    LOGGER.debug("Not After: %s", info.not_after.isoformat())
    LOGGER.debug("Time to connect/fetch: %.3f seconds", time.monotonic() - start_time)

    return template.render(render_context(info))


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main application entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    handle_version_check(args)
    validate_args(args, parser)

    config = build_config(args)
    setup_logging(nolog=config.nolog, debug=config.debug, color_output=config.color)

    try:
        output = run_check(config)
    except KeyboardInterrupt:
        exit_code = handle_keyboard_interrupt(config.color)
    except CheckerError as exc:
        exit_code = handle_checker_error(exc, config.debug, config.color)
    except Exception as exc:
        exit_code = handle_general_error(exc, config.debug, config.color)
    else:
        sys.stdout.write(output)
        sys.stdout.flush()
        exit_code = EXIT_SUCCESS

    if exit_code != EXIT_SUCCESS:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
