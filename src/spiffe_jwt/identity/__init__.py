"""
spiffe-jwt Identity Subsystem

Agent-side access to the SPIFFE Workload API:

- Credential: immutable, validated JWT SVID
- CredentialSource: fetches and validates one JWT SVID per call
"""

from .credential import Credential
from .source import CredentialSource, DEFAULT_FETCH_TIMEOUT, workload_api_address

__all__ = [
    "Credential",
    "CredentialSource",
    "DEFAULT_FETCH_TIMEOUT",
    "workload_api_address",
]
