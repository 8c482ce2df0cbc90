"""Certificate inspection helpers.

Used for logging issued certificates and for checking that a freshly signed
certificate chains to the CA it was signed with.
"""

import hashlib
import logging

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

logger = logging.getLogger(__name__)


class CryptoError(Exception):
    """Raised when certificate data cannot be parsed or verified."""

    pass


def load_certificate(cert_pem: bytes) -> x509.Certificate:
    """Parse a PEM certificate."""
    try:
        return x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise CryptoError(f"Invalid certificate: {e}") from e


def compute_thumbprint(cert_pem: bytes) -> str:
    """Compute the lowercase hex SHA-256 thumbprint of a PEM certificate."""
    cert = load_certificate(cert_pem)
    der_bytes = cert.public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()


def verify_issued_by(cert_pem: bytes, ca_cert_pem: bytes) -> None:
    """Check that cert_pem was issued and signed by ca_cert_pem.

    Raises:
        CryptoError: If the issuer does not match or the signature is invalid.
    """
    cert = load_certificate(cert_pem)
    ca_cert = load_certificate(ca_cert_pem)

    if cert.issuer != ca_cert.subject:
        raise CryptoError("certificate issuer does not match CA subject")

    ca_public_key = ca_cert.public_key()
    try:
        if isinstance(ca_public_key, rsa.RSAPublicKey):
            ca_public_key.verify(
                cert.signature,
                cert.tbs_certificate_bytes,
                padding.PKCS1v15(),
                cert.signature_hash_algorithm,  # type: ignore[arg-type]
            )
        elif isinstance(ca_public_key, ec.EllipticCurvePublicKey):
            ca_public_key.verify(
                cert.signature,
                cert.tbs_certificate_bytes,
                ec.ECDSA(cert.signature_hash_algorithm),  # type: ignore[arg-type]
            )
        else:
            raise CryptoError(f"Unsupported CA key type: {type(ca_public_key).__name__}")
    except InvalidSignature as e:
        raise CryptoError("certificate signature does not verify against CA key") from e
