"""Tests for error reporting and diagnostic logging."""

import io
import logging
import re
import socket

from ssl_eol.exceptions import (
    EXIT_CHECK_FAILED,
    EXIT_OPERATIONAL_ERROR,
    AddressParseError,
    DialError,
    HandshakeError,
    NoCertificateError,
    RenderError,
    TemplateSyntaxError,
    handle_checker_error,
    handle_general_error,
)
from ssl_eol.formatting import LOGGER, setup_logging


class TestExitCodes:
    def test_usage_like_errors(self):
        assert TemplateSyntaxError("x").exit_code == EXIT_OPERATIONAL_ERROR
        assert AddressParseError("a:b:c", "too many colons").exit_code == EXIT_OPERATIONAL_ERROR
        assert DialError("h:1", ConnectionRefusedError()).exit_code == EXIT_OPERATIONAL_ERROR

    def test_check_failures(self):
        assert HandshakeError("h:1", OSError("x")).exit_code == EXIT_CHECK_FAILED
        assert NoCertificateError("h:1").exit_code == EXIT_CHECK_FAILED
        assert RenderError("x").exit_code == EXIT_CHECK_FAILED


class TestMessages:
    def test_timeout_without_text(self):
        error = HandshakeError("example.com:443", socket.timeout())
        assert str(error) == "Can't handshake 'example.com:443': timed out"

    def test_cause_without_text_uses_type(self):
        error = DialError("example.com:443", ConnectionRefusedError())
        assert str(error) == "Can't connect to 'example.com:443': ConnectionRefusedError"

    def test_handle_checker_error(self, capsys):
        code = handle_checker_error(NoCertificateError("h:1"), color_output=False)
        assert code == EXIT_CHECK_FAILED
        assert capsys.readouterr().err == "Error: No peer certificate after handshake 'h:1'\n"

    def test_handle_general_error(self, capsys):
        assert handle_general_error(ValueError("bad"), color_output=False) == 1
        assert "Unexpected error: bad" in capsys.readouterr().err


class TestSetupLogging:
    def test_info_line(self):
        stream = io.StringIO()
        setup_logging(stream=stream)
        LOGGER.info("Host: %s", "example.com:443")
        LOGGER.debug("hidden")
        assert re.fullmatch(
            r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} Host: example.com:443\n",
            stream.getvalue(),
        )

    def test_debug_tag(self):
        stream = io.StringIO()
        setup_logging(debug=True, color_output=False, stream=stream)
        LOGGER.debug("Cipher: %s", "TLS_AES_128_GCM_SHA256")
        assert stream.getvalue().rstrip().endswith("[DEBUG] Cipher: TLS_AES_128_GCM_SHA256")

    def test_nolog(self, capsys):
        setup_logging(nolog=True)
        LOGGER.info("Host: example.com:443")
        LOGGER.error("still quiet")
        assert capsys.readouterr().err == ""

    def test_setup_replaces_handlers(self):
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())
        assert len(LOGGER.handlers) == 1
        assert LOGGER.propagate is False
        assert LOGGER.level == logging.INFO
