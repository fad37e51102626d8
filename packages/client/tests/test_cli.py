"""Tests for the command line entry point."""

import pytest
import structlog

from tm_client.main import build_parser, configure_logging


def test_login_arguments():
    args = build_parser().parse_args(["-c", "custom.yaml", "login", "ada@example.com", "--password", "pw"])
    assert args.config == "custom.yaml"
    assert args.command == "login"
    assert args.email == "ada@example.com"
    assert args.password == "pw"


def test_default_config_path():
    args = build_parser().parse_args(["whoami"])
    assert args.config == "tm-client.yaml"


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


@pytest.mark.parametrize("fmt", ["json", "text"])
def test_configure_logging(fmt):
    configure_logging("debug", fmt)
    structlog.get_logger().debug("test.event", value=1)
    structlog.reset_defaults()
