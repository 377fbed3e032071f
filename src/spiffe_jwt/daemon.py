"""
Sidecar Daemon

Process runtime for spiffe-jwt. Wires the credential source, scheduler,
readiness flag, escalation strategy and health server from the settings, then
runs in one of two modes:

- Daemon mode: renewal loop in a background thread, health server in the
  calling thread.
- One-shot mode: a single fetch+write, reported through the exit code.
"""

import threading
from typing import Callable, Optional

from .config import SidecarSettings, format_duration
from .errors import SpiffeJWTError
from .escalation import EXIT_FAILURE, Escalation, build_escalation, exit_process
from .health import HealthServer
from .identity.source import CredentialSource
from .readiness import ReadinessFlag
from .renewer import CredentialRenewer
from .scheduler import RenewalScheduler
from .utils.logging import get_logger

logger = get_logger(__name__)

EXIT_SUCCESS = 0


class SidecarDaemon:
    """
    Main sidecar process.
    """

    def __init__(
        self,
        settings: SidecarSettings,
        source: Optional[CredentialSource] = None,
        escalation: Optional[Escalation] = None,
        health_server: Optional[HealthServer] = None,
        terminate: Callable[[int], None] = exit_process,
    ):
        self.settings = settings
        self.readiness = ReadinessFlag()
        self._terminate = terminate

        self.source = source or CredentialSource(
            agent_socket=settings.spiffe_agent_socket,
            audience=settings.jwt_audience,
            timeout=settings.fetch_timeout,
        )
        self.scheduler = RenewalScheduler(override=settings.refresh_interval_override)
        self.escalation = escalation or build_escalation(settings, terminate=terminate)
        self.renewer = CredentialRenewer(
            source=self.source,
            file_path=settings.jwt_file_name,
            scheduler=self.scheduler,
            readiness=self.readiness,
            escalation=self.escalation,
            file_mode=settings.jwt_file_mode,
        )
        self._health_server = health_server
        self._renewal_thread: Optional[threading.Thread] = None

    @property
    def health_server(self) -> HealthServer:
        if self._health_server is None:
            self._health_server = HealthServer(
                self.readiness,
                host=self.settings.health_host,
                port=self.settings.health_port,
            )
        return self._health_server

    def run(self) -> int:
        """Run in the configured mode; returns the process exit code."""
        if self.settings.daemon_mode:
            logger.info("Running in daemon mode")
            return self.run_daemon()

        logger.info("Running in one-shot mode")
        return self.run_once()

    def run_once(self) -> int:
        """One fetch+write; no escalation, no health server."""
        try:
            credential = self.renewer.renew_once()
        except SpiffeJWTError as e:
            logger.error(
                f"unable to fetch or write JWT SVID, shutting down: {e}",
                extra={"extra_data": {"code": e.code, **e.details}},
            )
            return EXIT_FAILURE

        remaining = credential.remaining(self.scheduler.clock())
        logger.info(f"JWT SVID fetched and written, it expires in {format_duration(remaining)}")
        return EXIT_SUCCESS

    def run_daemon(self) -> int:
        """Start the renewal loop, then serve health checks until shutdown."""
        logger.info(f"Escalation strategy: {self.escalation.name}")
        self.start_renewal()
        self.health_server.serve()
        return EXIT_SUCCESS

    def start_renewal(self) -> threading.Thread:
        self._renewal_thread = threading.Thread(
            target=self._renewal_main,
            name="jwt-svid-renewal",
            daemon=True,
        )
        self._renewal_thread.start()
        return self._renewal_thread

    def _renewal_main(self) -> None:
        try:
            self.renewer.run()
        except Exception:
            # Treated as an unrecoverable renewal failure
            logger.exception("renewal loop crashed, shutting down")
            self._terminate(EXIT_FAILURE)
