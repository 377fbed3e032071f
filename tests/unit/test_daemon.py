"""
Sidecar Daemon Tests

One-shot and daemon modes wired end to end with a fake credential source.
"""

import threading
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

from spiffe_jwt.config import load_settings
from spiffe_jwt.daemon import SidecarDaemon
from spiffe_jwt.errors import AgentUnreachableError, FetchRejectedError
from spiffe_jwt.escalation import DirectEscalation, PodDeleter, SelfDeletionEscalation
from spiffe_jwt.identity.source import CredentialSource


def make_settings(tmp_path, **overrides):
    values = {
        "jwt_audience": "vault",
        "jwt_file_name": str(tmp_path / "jwt" / "token"),
        "spiffe_agent_socket": str(tmp_path / "agent.sock"),
    }
    values.update(overrides)
    return load_settings(**values)


class TestOneShotMode:

    def test_success_writes_file(self, tmp_path, make_credential, fake_source):
        credential = make_credential(token="one.shot.jwt")
        escalation = Mock()
        health_server = Mock()
        daemon = SidecarDaemon(
            make_settings(tmp_path, daemon_mode=False),
            source=fake_source(credential),
            escalation=escalation,
            health_server=health_server,
        )

        assert daemon.run() == 0
        assert (tmp_path / "jwt" / "token").read_text() == "one.shot.jwt"
        assert daemon.readiness.is_ready()
        escalation.escalate.assert_not_called()
        health_server.serve.assert_not_called()

    def test_failure_exits_non_zero_without_escalation(self, tmp_path, fake_source):
        escalation = Mock()
        health_server = Mock()
        daemon = SidecarDaemon(
            make_settings(tmp_path, daemon_mode=False),
            source=fake_source(FetchRejectedError("audience not authorized")),
            escalation=escalation,
            health_server=health_server,
        )

        assert daemon.run() == 1
        assert not (tmp_path / "jwt" / "token").exists()
        escalation.escalate.assert_not_called()
        health_server.serve.assert_not_called()


class TestDaemonMode:

    def test_renews_then_escalates(self, tmp_path, make_credential, fake_source):
        escalated = threading.Event()
        escalation = Mock()
        escalation.escalate.side_effect = lambda error: escalated.set()
        error = AgentUnreachableError("agent down")

        daemon = SidecarDaemon(
            make_settings(tmp_path),
            source=fake_source(make_credential(token="first.jwt.token"), error),
            escalation=escalation,
            health_server=Mock(),
        )
        daemon.renewer._sleep = Mock()

        def serve():
            # The health server outlives the renewal loop until escalation
            assert escalated.wait(5)

        daemon.health_server.serve.side_effect = serve

        assert daemon.run() == 0
        escalation.escalate.assert_called_once_with(error)
        daemon.renewer._sleep.assert_called_once()
        assert daemon.readiness.is_ready()
        assert (tmp_path / "jwt" / "token").read_text() == "first.jwt.token"

    def test_loop_crash_terminates_process(self, tmp_path, fake_source):
        terminate = Mock()
        escalation = Mock()
        escalation.escalate.side_effect = RuntimeError("boom")
        daemon = SidecarDaemon(
            make_settings(tmp_path),
            source=fake_source(AgentUnreachableError("agent down")),
            escalation=escalation,
            health_server=Mock(),
            terminate=terminate,
        )

        daemon.start_renewal().join(5)

        terminate.assert_called_once_with(1)

    def test_wires_settings(self, tmp_path):
        settings = make_settings(tmp_path, refresh_interval_override="45s", health_port=9000, jwt_file_mode="0600")
        daemon = SidecarDaemon(settings, health_server=None)

        assert isinstance(daemon.escalation, DirectEscalation)
        assert daemon.scheduler.override == timedelta(seconds=45)
        assert daemon.source.address == f"unix://{tmp_path / 'agent.sock'}"
        assert daemon.source.timeout == timedelta(seconds=10)
        assert daemon.renewer.file_mode == 0o600
        assert daemon.health_server.port == 9000

    def test_malformed_svid_deletes_pod(self, tmp_path, svid_factory):
        malformed = SimpleNamespace(token="header.payload.signature", audience={"vault"},
                                    expiry=None, spiffe_id=None)
        client = MagicMock()
        client.fetch_jwt_svid.return_value = svid_factory()
        client.validate_jwt_svid.return_value = malformed
        api = MagicMock()
        terminate = Mock()

        settings = make_settings(tmp_path, escalation_strategy="delete-pod",
                                 pod_name="app-7d9f", pod_namespace="payments")
        escalation = SelfDeletionEscalation(
            PodDeleter("app-7d9f", "payments", api_factory=lambda: api),
            sleep=Mock(),
            terminate=terminate,
        )
        source = CredentialSource(settings.spiffe_agent_socket, "vault", client_factory=lambda address: client)
        daemon = SidecarDaemon(settings, source=source, escalation=escalation,
                               health_server=Mock(), terminate=terminate)

        daemon.start_renewal().join(5)

        assert api.delete_namespaced_pod.call_count == 1
        terminate.assert_called_once_with(1)
        assert not daemon.readiness.is_ready()
        assert not (tmp_path / "jwt" / "token").exists()
