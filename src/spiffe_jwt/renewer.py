"""
Credential Renewer - Renewal Loop State Machine

Keeps the JWT SVID file continuously valid:

    INITIALIZING -> RENEWING -> WAITING -> RENEWING -> ... -> TERMINATING

RENEWING fetches a validated JWT SVID, overwrites the file with it, marks the
sidecar ready and computes the next interval. WAITING sleeps for that interval.
Any failure while renewing moves straight to TERMINATING, which hands the
error to the escalation strategy. There is no in-process retry: a restart by
the orchestrator is the recovery mechanism.
"""

import time
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .config import format_duration
from .errors import PersistFailedError, RenewalError, SpiffeJWTError
from .escalation import Escalation
from .identity.credential import Credential
from .identity.source import CredentialSource
from .readiness import ReadinessFlag
from .scheduler import RenewalScheduler
from .utils.files import DEFAULT_FILE_MODE, atomic_write
from .utils.logging import get_logger

logger = get_logger(__name__)


def _unexpected_failure(exc: Exception) -> RenewalError:
    return RenewalError(
        f"renewal failed unexpectedly: {type(exc).__name__}: {exc}",
        details={"cause": f"{type(exc).__name__}: {exc}"},
    )


class RenewalState(str, Enum):
    INITIALIZING = "initializing"
    RENEWING = "renewing"
    WAITING = "waiting"
    TERMINATING = "terminating"


class CredentialRenewer:
    """
    Fetch -> persist -> schedule -> wait, forever, one cycle at a time.

    Args:
        source: Fetches validated credentials from the SPIFFE agent
        file_path: Where the JWT SVID is written (overwritten every cycle)
        scheduler: Computes the wait before the next fetch
        readiness: Flag set after the first successful cycle
        escalation: Terminal strategy for failed cycles (daemon mode only)
        file_mode: Permission bits of the written file
        sleep: Blocks for the given number of seconds
    """

    def __init__(
        self,
        source: CredentialSource,
        file_path: Union[str, Path],
        scheduler: RenewalScheduler,
        readiness: ReadinessFlag,
        escalation: Optional[Escalation] = None,
        file_mode: int = DEFAULT_FILE_MODE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.file_path = Path(file_path)
        self.scheduler = scheduler
        self.readiness = readiness
        self.escalation = escalation
        self.file_mode = file_mode
        self._sleep = sleep

        self.state = RenewalState.INITIALIZING
        self.current: Optional[Credential] = None
        self.cycles = 0

    def renew_once(self) -> Credential:
        """
        Run one RENEWING step: fetch, persist, mark ready.

        Raises:
            SpiffeJWTError: any fetch, validation or persist failure
        """
        self.state = RenewalState.RENEWING
        try:
            credential = self.source.fetch()
            self._persist(credential)
        except SpiffeJWTError:
            raise
        except Exception as e:
            raise _unexpected_failure(e) from e

        self.current = credential
        self.cycles += 1
        self.readiness.mark_ready()
        return credential

    def _persist(self, credential: Credential) -> None:
        try:
            atomic_write(self.file_path, credential.marshal().encode(), mode=self.file_mode)
        except OSError as e:
            raise PersistFailedError(
                f"failed to write JWT file {self.file_path}: {e}",
                details={"path": str(self.file_path), "cause": f"{type(e).__name__}: {e}"},
            ) from e
        logger.info(f"JWT SVID written to {self.file_path}")

    def run(self) -> None:
        """
        Renew until a cycle fails, then escalate.

        Only returns if the escalation strategy's terminate hook returns.
        """
        if self.escalation is None:
            raise ValueError("run() needs an escalation strategy; use renew_once() for one-shot mode")

        while True:
            try:
                credential = self.renew_once()
                interval = self._next_interval(credential)
            except SpiffeJWTError as e:
                self.state = RenewalState.TERMINATING
                self.escalation.escalate(e)
                return

            self.state = RenewalState.WAITING
            if self.cycles == 1:
                logger.info(f"Ticker started, refreshing JWT SVID in {format_duration(interval)}")
            else:
                logger.info(f"JWT SVID will be refreshed in {format_duration(interval)}")
            self.wait(interval)

    def _next_interval(self, credential: Credential) -> timedelta:
        try:
            return self.scheduler.next_interval(credential)
        except Exception as e:
            raise _unexpected_failure(e) from e

    def wait(self, interval: timedelta) -> None:
        self._sleep(interval.total_seconds())
