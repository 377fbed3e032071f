from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class Credential:
    """A validated JWT SVID. Superseded, never mutated, by each renewal."""
    token: str = field(repr=False)
    audience: str
    expiry: datetime
    spiffe_id: Optional[str] = None

    @classmethod
    def from_epoch(cls, token: str, audience: str, expiry: float, spiffe_id: Optional[str] = None) -> "Credential":
        return cls(
            token=token,
            audience=audience,
            expiry=datetime.fromtimestamp(expiry, tz=timezone.utc),
            spiffe_id=spiffe_id,
        )

    def marshal(self) -> str:
        """Wire form of the credential: the compact JWT string, unchanged."""
        return self.token

    def remaining(self, now: datetime) -> timedelta:
        return self.expiry - now
