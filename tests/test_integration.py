"""Integration tests for the ssl-eol package."""

import re
import subprocess
import sys


def _run(*args, timeout=15):
    return subprocess.run(
        [sys.executable, "-m", "ssl_eol", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class TestCliIntegration:
    """Integration tests for the CLI interface."""

    def test_help_command(self):
        result = _run("--help")

        assert result.returncode == 0
        assert "expiration date" in result.stdout
        assert "--host" in result.stdout
        assert "--format" in result.stdout
        assert "EOL_UNIXTIME" in result.stdout
        assert "Examples:" in result.stdout
        assert "ssl-eol --host example.com:8443 --timeout 3s" in result.stdout
        assert "default: 1s" in result.stdout

    def test_version_command(self):
        result = _run("--version")

        assert result.returncode == 0
        assert "ssl-eol version" in result.stdout

    def test_no_arguments(self):
        result = _run()

        assert result.returncode == 1
        assert "usage:" in result.stdout

    def test_scenario_against_stub_server(self, tls_server):
        """A certificate expiring 2030-01-01T00:00:00Z prints its epoch value."""
        result = _run(
            "--host",
            tls_server.address,
            "--timeout",
            "500ms",
            "--format",
            "{{.EOL_UNIXTIME}}",
        )

        assert result.returncode == 0
        assert result.stdout == "1893456000"
        assert "Host:" in result.stderr

    def test_default_format(self, tls_server):
        result = _run("--host", tls_server.address, "--nolog")

        assert result.returncode == 0
        assert re.match(r"^EOL: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} [+-]\d{4}", result.stdout)
        assert result.stderr == ""

    def test_handshake_failure(self, plain_server):
        result = _run("--host", plain_server.address, "--no-color")

        assert result.returncode == 1
        assert result.stdout == ""
        assert "Can't handshake" in result.stderr

    def test_connection_refused(self, closed_port):
        result = _run("--host", f"127.0.0.1:{closed_port}", "--no-color", "--nolog")

        assert result.returncode == 2
        assert "Can't connect to" in result.stderr


class TestPackageIntegration:
    """Integration tests for package functionality."""

    def test_package_import(self):
        import ssl_eol

        assert hasattr(ssl_eol, "main")
        assert isinstance(ssl_eol.__version__, str)
        assert re.match(r"^\d+\.\d+\.\d+$", ssl_eol.__version__)

    def test_all_imports(self):
        from ssl_eol import (
            cli,
            connection,
            exceptions,
            formatting,
            parser,
            template,
        )
        from ssl_eol.main import main as main_function, run_check

        assert callable(main_function)
        assert callable(run_check)
        assert hasattr(cli, "create_parser")
        assert hasattr(cli, "parse_host_arg")
        assert hasattr(connection, "fetch_peer_connection")
        assert hasattr(parser, "parse_der_cert")
        assert hasattr(template, "compile_template")
        assert hasattr(formatting, "setup_logging")
        assert hasattr(exceptions, "handle_checker_error")
