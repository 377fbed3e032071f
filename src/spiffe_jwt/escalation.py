"""
Escalation Strategies

What the sidecar does once renewal has failed. Both strategies are terminal:
the process never continues with a stale or missing JWT SVID, and nothing is
retried in-process. Recovery is left to the orchestrator.

- DirectEscalation: exit non-zero; the kubelet restarts the container.
- SelfDeletionEscalation: delete the hosting pod (foreground propagation) so
  its controller recreates it, pause so this process cannot restart before the
  deletion lands, then exit non-zero.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Optional

from kubernetes import client, config
from kubernetes.config import ConfigException

from .config import EscalationStrategy, SidecarSettings, format_duration
from .errors import EscalationFailedError, SpiffeJWTError
from .utils.logging import get_logger

logger = get_logger(__name__)

EXIT_FAILURE = 1
DEFAULT_SELF_DELETION_PAUSE = timedelta(seconds=60)
FOREGROUND_PROPAGATION = "Foreground"


def exit_process(code: int) -> None:
    """Terminate the whole process, whichever thread calls it."""
    logging.shutdown()
    os._exit(code)


def _failure_context(error: SpiffeJWTError) -> dict:
    return {"extra_data": {"code": error.code, **error.details}}


class Escalation(ABC):
    """Terminal action taken when a renewal cycle fails."""

    name = "escalation"

    def __init__(self, terminate: Callable[[int], None] = exit_process):
        self._terminate = terminate

    @abstractmethod
    def escalate(self, error: SpiffeJWTError) -> None:
        """Handle ``error``. Does not return unless ``terminate`` does."""


class DirectEscalation(Escalation):
    name = EscalationStrategy.DIRECT.value

    def escalate(self, error: SpiffeJWTError) -> None:
        logger.error(
            f"unable to fetch or write JWT SVID, shutting down: {error}",
            extra=_failure_context(error),
        )
        self._terminate(EXIT_FAILURE)


def load_core_api(kubeconfig: Optional[str] = None) -> Any:
    """CoreV1Api from the in-cluster service account, falling back to kubeconfig."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except ConfigException:
            config.load_kube_config()
    return client.CoreV1Api()


class PodDeleter:
    """
    Deletes the pod hosting this sidecar.

    Args:
        pod_name: Name of the pod (usually from the Downward API)
        namespace: Namespace of the pod
        kubeconfig: Kubeconfig path when running outside the cluster
        api_factory: Builds the CoreV1Api client; loaded lazily on first delete
    """

    def __init__(
        self,
        pod_name: str,
        namespace: str,
        kubeconfig: Optional[str] = None,
        api_factory: Optional[Callable[[], Any]] = None,
    ):
        self.pod_name = pod_name
        self.namespace = namespace
        self._api_factory = api_factory or (lambda: load_core_api(kubeconfig))

    def delete(self) -> None:
        """
        Raises:
            EscalationFailedError: the API client could not be built or the
                delete request was refused
        """
        details = {"pod": self.pod_name, "namespace": self.namespace}
        try:
            api = self._api_factory()
            api.delete_namespaced_pod(
                name=self.pod_name,
                namespace=self.namespace,
                body=client.V1DeleteOptions(propagation_policy=FOREGROUND_PROPAGATION),
            )
        except Exception as e:
            raise EscalationFailedError(
                f"failed to delete pod {self.namespace}/{self.pod_name}: {e}",
                details={**details, "cause": f"{type(e).__name__}: {e}"},
            ) from e
        logger.info(f"Requested deletion of pod {self.namespace}/{self.pod_name}")


class SelfDeletionEscalation(Escalation):
    name = EscalationStrategy.DELETE_POD.value

    def __init__(
        self,
        deleter: PodDeleter,
        pause: timedelta = DEFAULT_SELF_DELETION_PAUSE,
        sleep: Callable[[float], None] = time.sleep,
        terminate: Callable[[int], None] = exit_process,
    ):
        super().__init__(terminate)
        self.deleter = deleter
        self.pause = pause
        self._sleep = sleep

    def escalate(self, error: SpiffeJWTError) -> None:
        logger.error(
            f"unable to fetch or write JWT SVID, deleting pod: {error}",
            extra=_failure_context(error),
        )

        try:
            self.deleter.delete()
        except EscalationFailedError as e:
            # Nothing left to wait for
            logger.critical(f"pod deletion failed, exiting: {e}", extra=_failure_context(e))
            self._terminate(EXIT_FAILURE)
            return

        logger.warning(f"Waiting {format_duration(self.pause)} for pod deletion before exiting")
        self._sleep(self.pause.total_seconds())
        self._terminate(EXIT_FAILURE)


def build_escalation(settings: SidecarSettings, terminate: Callable[[int], None] = exit_process) -> Escalation:
    """Escalation strategy selected by ``ESCALATION_STRATEGY``."""
    if settings.escalation_strategy is EscalationStrategy.DELETE_POD:
        deleter = PodDeleter(
            pod_name=settings.pod_name,
            namespace=settings.pod_namespace,
            kubeconfig=settings.kubeconfig,
        )
        return SelfDeletionEscalation(deleter, pause=settings.self_deletion_pause, terminate=terminate)
    return DirectEscalation(terminate=terminate)
