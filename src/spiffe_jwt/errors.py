"""
spiffe-jwt Error Taxonomy.

Every failure the renewal loop can hit is mapped onto one of these classes so
the escalation path and the log output are driven by a single hierarchy.

All errors include:
- Machine-readable error code (JWT_<CATEGORY>)
- The phase that failed (fetch, validate, persist, escalate, config)
- Structured details (NEVER the token itself)
"""

from typing import Any, Dict, Optional


class SpiffeJWTError(Exception):
    """Base exception for all spiffe-jwt errors.

    - code: Machine-readable error code (e.g., JWT_AGENT_UNREACHABLE)
    - message: Human-readable description
    - details: Structured metadata, always carrying the failing ``phase``
    """

    code = "JWT_INTERNAL_ERROR"
    phase = "internal"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = {"phase": self.phase}
        self.details.update(details or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary suitable for structured logging."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Renewal failures (terminal for the running process)
# =============================================================================


class RenewalError(SpiffeJWTError):
    """Base class for failures raised while in the renewing state."""

    code = "JWT_RENEWAL_FAILED"
    phase = "renew"


class AgentUnreachableError(RenewalError):
    """The SPIFFE agent could not be reached, or did not answer in time."""

    code = "JWT_AGENT_UNREACHABLE"
    phase = "fetch"


class FetchRejectedError(RenewalError):
    """The agent answered the fetch with an error (e.g. audience not authorized)."""

    code = "JWT_FETCH_REJECTED"
    phase = "fetch"


class ValidationFailedError(RenewalError):
    """The returned JWT SVID failed signature or audience verification."""

    code = "JWT_VALIDATION_FAILED"
    phase = "validate"


class PersistFailedError(RenewalError):
    """The JWT SVID could not be written to its configured path."""

    code = "JWT_PERSIST_FAILED"
    phase = "persist"


# =============================================================================
# Escalation and configuration
# =============================================================================


class EscalationFailedError(SpiffeJWTError):
    """The request to delete the hosting pod failed."""

    code = "JWT_ESCALATION_FAILED"
    phase = "escalate"


class ConfigurationError(SpiffeJWTError):
    """Raised when the process configuration is missing or inconsistent."""

    code = "JWT_CONFIG_INVALID"
    phase = "config"
