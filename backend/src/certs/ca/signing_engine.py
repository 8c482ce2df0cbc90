"""Signing engine contract.

A signing engine creates key pairs, self-signed certificates and CSRs, and signs
CSRs with a CA key/cert pair. Every artifact is a PEM file on disk. Each call is
bounded by a caller-supplied timeout in seconds.
Self-signed certificates are CA certificates unless the caller passes
`ca=False`, which produces a server leaf.

Two implementations ship:
- `OpenSSLSigningEngine` drives the `openssl` command line tool.
- `CryptographySigningEngine` runs in-process on the `cryptography` package.
"""

from pathlib import Path
from typing import Protocol


class SigningError(Exception):
    """Base class for signing engine failures."""

    pass


class SigningToolError(SigningError):
    """Raised when the engine could not start or reported a failure."""

    pass


class SigningTimeoutError(SigningError):
    """Raised when a signing engine call exceeded its timeout."""

    pass


class SigningEngine(Protocol):
    """Operations the certificate manager needs from a signing engine."""

    def generate_self_signed(
        self,
        key_file: Path,
        cert_file: Path,
        *,
        common_name: str,
        validity_days: int,
        timeout: float,
        ca: bool = True,
    ) -> None: ...

    def generate_csr(
        self,
        key_file: Path,
        csr_file: Path,
        *,
        common_name: str,
        organization: str,
        timeout: float,
    ) -> None: ...

    def sign_csr(
        self,
        csr_file: Path,
        ca_key_file: Path,
        ca_cert_file: Path,
        cert_file: Path,
        *,
        validity_days: int,
        timeout: float,
    ) -> None: ...


def build_signing_engine(kind: str, openssl_binary: str = "openssl") -> SigningEngine:
    """Create the engine named by configuration ("openssl" or "cryptography")."""
    # Imported here so each engine module can import the errors above
    from certs.ca.certificate_generator import CryptographySigningEngine
    from certs.ca.openssl import OpenSSLSigningEngine

    kind = kind.lower()
    if kind == "openssl":
        return OpenSSLSigningEngine(binary=openssl_binary)
    if kind == "cryptography":
        return CryptographySigningEngine()
    raise ValueError(f"Unknown signing engine: {kind}")
