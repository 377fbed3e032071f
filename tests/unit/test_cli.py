from unittest.mock import patch

import pytest
from click.testing import CliRunner

from spiffe_jwt import __version__
from spiffe_jwt.cli import main

REQUIRED_ARGS = [
    "--jwt-audience", "vault",
    "--jwt-file-name", "/tmp/jwt/token",
    "--spiffe-agent-socket", "/run/spire/agent.sock",
]


@pytest.fixture
def daemon_cls():
    with patch("spiffe_jwt.cli.SidecarDaemon") as cls, patch("spiffe_jwt.cli.configure_logging"):
        cls.return_value.run.return_value = 0
        yield cls


def test_one_shot_flags(daemon_cls):
    result = CliRunner().invoke(main, REQUIRED_ARGS + ["--one-shot", "--refresh-interval-override", "30s"])

    assert result.exit_code == 0
    settings = daemon_cls.call_args[0][0]
    assert settings.daemon_mode is False
    assert settings.jwt_audience == "vault"
    assert settings.refresh_interval_override.total_seconds() == 30


def test_exit_code_from_daemon(daemon_cls):
    daemon_cls.return_value.run.return_value = 1
    result = CliRunner().invoke(main, REQUIRED_ARGS)
    assert result.exit_code == 1


def test_environment_only(daemon_cls):
    env = {
        "JWT_AUDIENCE": "vault",
        "JWT_FILE_NAME": "/tmp/jwt/token",
        "SPIFFE_AGENT_SOCKET": "/run/spire/agent.sock",
        "ESCALATION_STRATEGY": "delete-pod",
        "POD_NAME": "app-1",
        "POD_NAMESPACE": "default",
    }
    result = CliRunner().invoke(main, [], env=env)

    assert result.exit_code == 0
    settings = daemon_cls.call_args[0][0]
    assert settings.daemon_mode is True
    assert settings.pod_name == "app-1"


def test_missing_required_is_usage_error(daemon_cls):
    result = CliRunner().invoke(main, ["--jwt-audience", "vault"])

    assert result.exit_code == 2
    assert "JWT_FILE_NAME" in result.output
    daemon_cls.assert_not_called()


def test_unknown_strategy_rejected(daemon_cls):
    result = CliRunner().invoke(main, REQUIRED_ARGS + ["--escalation-strategy", "reboot"])
    assert result.exit_code == 2


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
