"""
Unit tests for the command-line entry point.
"""

import pytest

from actionserver import __version__
from actionserver.__main__ import build_parser, main


class TestCLI:
    """Tests for argument parsing."""

    def test_defaults(self):
        """Test that unset options defer to the environment."""
        args = build_parser().parse_args([])

        assert args.host is None
        assert args.port is None
        assert args.workers == 3

    def test_options(self):
        """Test every option."""
        args = build_parser().parse_args(
            ["--host", "0.0.0.0", "--port", "9000", "--backlog", "8", "--workers", "0", "--log-level", "DEBUG"]
        )

        assert (args.host, args.port, args.backlog, args.workers, args.log_level) == (
            "0.0.0.0", 9000, 8, 0, "DEBUG"
        )

    def test_version(self, capsys):
        """Test --version."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])

        assert __version__ in capsys.readouterr().out

    def test_negative_workers(self, capsys):
        """Test that a negative worker count is refused."""
        assert main(["--workers", "-1"]) == 2
        assert "--workers" in capsys.readouterr().err

    def test_invalid_port(self, capsys):
        """Test that configuration errors exit with status 2."""
        assert main(["--port", "70000", "--workers", "0"]) == 2
        assert "port" in capsys.readouterr().err
