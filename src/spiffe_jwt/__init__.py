"""
spiffe-jwt

Sidecar that keeps a JWT SVID from the local SPIFFE agent written to a file,
renewing it ahead of expiry and escalating to a restart when it cannot.
"""

__version__ = "1.0.0"
