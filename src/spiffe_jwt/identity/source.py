"""
Credential Source - SPIFFE Workload API Adapter

Fetches one JWT SVID for the configured audience from the local SPIFFE agent
and validates it before handing it to the renewal loop:

- Connects to the agent's Workload API socket (one connection per fetch)
- Requests a JWT SVID scoped to the audience
- Validates the token's signature and audience binding with the agent
- Bounds the whole exchange with a timeout so a hung agent cannot stall renewal

Failures are classified into AgentUnreachableError, FetchRejectedError and
ValidationFailedError. Token contents are never logged.
"""

import threading
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from spiffe import WorkloadApiClient

from ..errors import (
    AgentUnreachableError,
    FetchRejectedError,
    RenewalError,
    ValidationFailedError,
)
from ..utils.logging import get_logger
from .credential import Credential

logger = get_logger(__name__)

DEFAULT_FETCH_TIMEOUT = timedelta(seconds=10)

# gRPC status codes meaning the agent never answered
_UNREACHABLE_STATUS = ("UNAVAILABLE", "DEADLINE_EXCEEDED")


def workload_api_address(agent_socket: str) -> str:
    """Socket paths are given bare; the Workload API client wants a URI."""
    if "://" in agent_socket:
        return agent_socket
    return "unix://" + agent_socket


def _default_client_factory(address: str) -> Any:
    return WorkloadApiClient(socket_path=address)


def _is_unreachable(exc: Optional[BaseException]) -> bool:
    """Walk the exception chain looking for a connection-level failure."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, (ConnectionError, TimeoutError, FileNotFoundError)):
            return True

        code = getattr(exc, "code", None)
        if callable(code):
            try:
                status = code()
            except TypeError:
                status = None
            if getattr(status, "name", None) in _UNREACHABLE_STATUS:
                return True

        exc = exc.__cause__ or exc.__context__
    return False


def _cause(exc: BaseException) -> Dict[str, str]:
    return {"cause": f"{type(exc).__name__}: {exc}"}


class CredentialSource:
    """
    Fetches and validates JWT SVIDs from the SPIFFE agent.

    Args:
        agent_socket: Workload API socket path or URI
        audience: Audience every credential is requested for
        timeout: Upper bound for a single fetch (connect, fetch and validate)
        client_factory: Builds a Workload API client for an address
    """

    def __init__(
        self,
        agent_socket: str,
        audience: str,
        timeout: timedelta = DEFAULT_FETCH_TIMEOUT,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.address = workload_api_address(agent_socket)
        self.audience = audience
        self.timeout = timeout
        self._client_factory = client_factory or _default_client_factory

    def fetch(self, audience: Optional[str] = None, timeout: Optional[timedelta] = None) -> Credential:
        """
        Fetch one validated credential.

        Raises:
            AgentUnreachableError: agent not reachable, or no answer within the timeout
            FetchRejectedError: the agent refused to issue a JWT SVID
            ValidationFailedError: the JWT SVID did not verify for the audience
        """
        audience = audience or self.audience
        timeout = timeout or self.timeout
        outcome: Dict[str, Any] = {}

        def _worker():
            try:
                outcome["credential"] = self._fetch_validated(audience)
            except Exception as e:
                outcome["error"] = e

        # Daemon thread: a hung agent call must not keep the process alive
        worker = threading.Thread(target=_worker, name="jwt-svid-fetch", daemon=True)
        worker.start()
        worker.join(timeout.total_seconds())

        if worker.is_alive():
            raise AgentUnreachableError(
                f"SPIFFE agent at {self.address} did not answer within {timeout.total_seconds():g}s",
                details={"address": self.address, "timeout_seconds": timeout.total_seconds()},
            )
        if "error" in outcome:
            raise outcome["error"]
        return outcome["credential"]

    def _fetch_validated(self, audience: str) -> Credential:
        try:
            client = self._client_factory(self.address)
        except Exception as e:
            raise AgentUnreachableError(
                f"failed to create JWT source: {e}",
                details={"address": self.address, **_cause(e)},
            ) from e
        logger.info("JWT source created")

        try:
            try:
                svid = client.fetch_jwt_svid(audience={audience})
            except Exception as e:
                raise self._classify(e, "unable to fetch JWT SVID", FetchRejectedError) from e

            credential = self._validate(client, svid, audience)
            logger.info("JWT SVID fetched and validated")
            return credential
        finally:
            self._close(client)

    def _close(self, client: Any) -> None:
        try:
            client.close()
        except Exception as e:
            logger.warning(f"failed to close Workload API client: {type(e).__name__}: {e}")

    def _validate(self, client: Any, svid: Any, audience: str) -> Credential:
        token = getattr(svid, "token", None)
        if not token:
            raise ValidationFailedError("agent returned an empty JWT SVID", details={"audience": audience})

        try:
            validated = client.validate_jwt_svid(token, audience)
        except Exception as e:
            raise self._classify(e, "JWT SVID failed validation", ValidationFailedError) from e

        try:
            bound = audience in set(validated.audience or ())
            credential = Credential.from_epoch(
                token=token,
                audience=audience,
                expiry=validated.expiry,
                spiffe_id=str(validated.spiffe_id) if validated.spiffe_id is not None else None,
            )
        except (AttributeError, TypeError, ValueError, OverflowError, OSError) as e:
            raise ValidationFailedError(
                "agent returned a malformed JWT SVID",
                details={"audience": audience, **_cause(e)},
            ) from e

        if not bound:
            raise ValidationFailedError(
                f"JWT SVID is not bound to audience {audience!r}",
                details={"audience": audience},
            )
        return credential

    def _classify(self, exc: Exception, message: str, default: type) -> RenewalError:
        if _is_unreachable(exc):
            return AgentUnreachableError(
                f"{message}: SPIFFE agent unreachable",
                details={"address": self.address, **_cause(exc)},
            )
        return default(f"{message}: {exc}", details={"address": self.address, **_cause(exc)})
