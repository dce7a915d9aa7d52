"""Exception types and top-level error handlers."""

import sys
import traceback

from termcolor import colored

EXIT_SUCCESS = 0
EXIT_CHECK_FAILED = 1
EXIT_OPERATIONAL_ERROR = 2
EXIT_INTERRUPTED = 130


class CheckerError(Exception):
    """Base class for every failure that ends a check."""

    exit_code = EXIT_CHECK_FAILED


class TemplateSyntaxError(CheckerError):
    """The output format string could not be parsed."""

    exit_code = EXIT_OPERATIONAL_ERROR


class RenderError(CheckerError):
    """The output template referenced something it cannot evaluate."""


class AddressParseError(CheckerError):
    """The host[:port] argument is malformed."""

    exit_code = EXIT_OPERATIONAL_ERROR

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"address {address}: {reason}")


class DialError(CheckerError):
    exit_code = EXIT_OPERATIONAL_ERROR

    def __init__(self, address: str, cause: BaseException) -> None:
        self.address = address
        self.cause = cause
        super().__init__(f"Can't connect to '{address}': {_describe(cause)}")


class HandshakeError(CheckerError):
    def __init__(self, address: str, cause: BaseException) -> None:
        self.address = address
        self.cause = cause
        super().__init__(f"Can't handshake '{address}': {_describe(cause)}")


class NoCertificateError(CheckerError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"No peer certificate after handshake '{address}'")


class CertificateParseError(CheckerError):
    def __init__(self, address: str, cause: BaseException) -> None:
        self.address = address
        self.cause = cause
        super().__init__(
            f"Can't parse peer certificate from '{address}': {_describe(cause)}"
        )


def _describe(exc: BaseException) -> str:
    """Render an exception for humans, falling back to its type name."""
    text = str(exc)
    if isinstance(exc, TimeoutError) and not text:
        return "timed out"
    return text or type(exc).__name__


def _error_prefix(label: str, color_output: bool) -> str:
    return colored(label, "red") if color_output else label


def _print_traceback(exc: BaseException, header: str) -> None:
    print(f"\n[DEBUG] {header}:", file=sys.stderr)
    traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)


def handle_checker_error(
    exc: CheckerError, debug: bool = False, color_output: bool = True
) -> int:
    """
    Report a check failure on stderr.

    Args:
        exc: The error that stopped the check
        debug: Also print the traceback (including the underlying cause)
        color_output: Highlight the prefix with termcolor

    Returns:
        The process exit code for this error
    """
    print(f"{_error_prefix('Error:', color_output)} {exc}", file=sys.stderr)
    if debug:
        _print_traceback(exc, type(exc).__name__)
    return exc.exit_code


def handle_general_error(
    exc: Exception, debug: bool = False, color_output: bool = True
) -> int:
    """Report an unexpected exception and return a failing exit code."""
    print(
        f"{_error_prefix('Unexpected error:', color_output)} {_describe(exc)}",
        file=sys.stderr,
    )
    if debug:
        _print_traceback(exc, "Exception")
    return EXIT_CHECK_FAILED


def handle_keyboard_interrupt(color_output: bool = True) -> int:
    print(
        f"\n{_error_prefix('Interrupted', color_output)}: check aborted by user",
        file=sys.stderr,
    )
    return EXIT_INTERRUPTED
