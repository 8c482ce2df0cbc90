"""Signing engines and key material staging.

This module provides:
- The signing engine contract and its error types
- An openssl subprocess engine and an in-process cryptography engine
- Scoped temporary directories for key material on disk
"""

from certs.ca.certificate_generator import CryptographySigningEngine
from certs.ca.openssl import OpenSSLSigningEngine
from certs.ca.signing_engine import (
    SigningEngine,
    SigningError,
    SigningTimeoutError,
    SigningToolError,
    build_signing_engine,
)

__all__ = [
    "CryptographySigningEngine",
    "OpenSSLSigningEngine",
    "SigningEngine",
    "SigningError",
    "SigningTimeoutError",
    "SigningToolError",
    "build_signing_engine",
]
