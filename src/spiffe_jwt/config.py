"""
spiffe-jwt Configuration Module

Provides the sidecar configuration with:
- Environment variable loading (unprefixed names, e.g. JWT_AUDIENCE)
- Command-line overrides passed in by the CLI
- Type validation via Pydantic
- Go-style duration strings ("30s", "5m", "1h30m") for interval settings

Presence and cross-field requirements are validated here, before any renewal
work starts.
"""

import re
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class EscalationStrategy(str, Enum):
    """What the sidecar does once a renewal fails."""
    DIRECT = "direct"
    DELETE_POD = "delete-pod"


class LogFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_PLAIN_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_duration(value: Any) -> Optional[timedelta]:
    """
    Parse a duration setting.

    Accepts a ``timedelta``, a number of seconds, or a Go-style duration
    string such as ``"90s"``, ``"5m"`` or ``"1h30m"``. Empty values mean unset.
    """
    if value is None or isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    if not text:
        return None

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    # Bare numbers are seconds
    if _PLAIN_NUMBER.fullmatch(text):
        return timedelta(seconds=sign * float(text))

    seconds = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * seconds)


def format_duration(value: timedelta) -> str:
    """Render a duration in Go notation (e.g. 2m30s)."""
    total = value.total_seconds()
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if hours or minutes:
        parts.append(f"{int(minutes)}m")
    parts.append(f"{seconds:g}s")
    return sign + "".join(parts)


class SidecarSettings(BaseSettings):
    """
    spiffe-jwt sidecar settings.

    Loads from environment variables; keyword arguments (the CLI flags) take
    precedence over the environment.

    Usage:
        settings = load_settings(jwt_audience="vault")
    """
    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra='ignore',
    )

    # ==========================================================================
    # MODE
    # ==========================================================================
    daemon_mode: bool = Field(default=True, description="Keep renewing in the background; false runs a single fetch")

    # ==========================================================================
    # CREDENTIAL
    # ==========================================================================
    jwt_audience: str = Field(..., min_length=1, description="Audience the JWT SVID is requested for")
    jwt_file_name: str = Field(..., min_length=1, description="File the JWT SVID is written to")
    jwt_file_mode: int = Field(default=0o644, description="Permission bits of the JWT file (octal)")
    spiffe_agent_socket: str = Field(..., min_length=1, description="SPIFFE agent Workload API socket")
    fetch_timeout: timedelta = Field(default=timedelta(seconds=10), description="Upper bound for one fetch")

    # ==========================================================================
    # SCHEDULING
    # ==========================================================================
    refresh_interval_override: Optional[timedelta] = Field(
        default=None, description="Fixed refresh interval, still capped at 80% of the remaining lifetime"
    )

    # ==========================================================================
    # HEALTH
    # ==========================================================================
    health_host: str = Field(default="0.0.0.0", description="Address the health server binds to")
    health_port: int = Field(default=8080, ge=1, le=65535, description="Port to listen for health checks")

    # ==========================================================================
    # ESCALATION
    # ==========================================================================
    escalation_strategy: EscalationStrategy = Field(
        default=EscalationStrategy.DIRECT, description="direct (exit) or delete-pod (self-deletion)"
    )
    pod_name: Optional[str] = Field(default=None, description="Name of the pod hosting this sidecar")
    pod_namespace: Optional[str] = Field(default=None, description="Namespace of the pod hosting this sidecar")
    self_deletion_pause: timedelta = Field(
        default=timedelta(seconds=60), description="Pause after requesting pod deletion, before exiting"
    )
    kubeconfig: Optional[str] = Field(default=None, description="Kubeconfig used outside the cluster")

    # ==========================================================================
    # OBSERVABILITY
    # ==========================================================================
    log_level: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    log_format: LogFormat = Field(default=LogFormat.TEXT, description="Log output: text or json")

    @field_validator("refresh_interval_override", mode="before")
    @classmethod
    def _parse_override(cls, value: Any) -> Optional[timedelta]:
        interval = parse_duration(value)
        # Zero or negative means "not set"
        if interval is not None and interval <= timedelta(0):
            return None
        return interval

    @field_validator("fetch_timeout", "self_deletion_pause", mode="before")
    @classmethod
    def _parse_positive_duration(cls, value: Any) -> timedelta:
        interval = parse_duration(value)
        if interval is None or interval <= timedelta(0):
            raise ValueError("must be a positive duration")
        return interval

    @field_validator("jwt_file_mode", mode="before")
    @classmethod
    def _parse_file_mode(cls, value: Any) -> int:
        if isinstance(value, str):
            text = value.strip().lower()
            if text.startswith("0o"):
                text = text[2:]
            return int(text, 8)
        return value

    @field_validator("escalation_strategy", "log_format", mode="before")
    @classmethod
    def _normalize_choice(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @field_validator("pod_name", "pod_namespace", "kubeconfig", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_escalation_target(self) -> "SidecarSettings":
        if self.escalation_strategy is EscalationStrategy.DELETE_POD:
            missing = [name.upper() for name in ("pod_name", "pod_namespace") if not getattr(self, name)]
            if missing:
                raise ValueError(f"escalation strategy delete-pod requires {', '.join(missing)}")
        return self


def load_settings(**overrides: Any) -> SidecarSettings:
    """
    Build validated settings from the environment plus explicit overrides.

    ``None`` overrides are ignored so unset CLI flags fall through to the
    environment and the defaults.

    Raises:
        ConfigurationError: if a required value is missing or invalid
    """
    values: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
    try:
        return SidecarSettings(**values)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "settings"
            problems.append(f"{field.upper()}: {err['msg']}")
        raise ConfigurationError(
            "invalid configuration: " + "; ".join(problems),
            details={"fields": problems},
        ) from e
