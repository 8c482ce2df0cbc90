"""Value objects passed between discovery, CSR creation, signing and persistence.

Artifacts referenced by `CertSigningRequest` and `Cert` are files on disk inside
a per-request working directory. The request owns that directory until signing
consumes it; the resulting `Cert` shares it and is discarded after persistence.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Standard field names for TLS secrets
TLS_KEY = "tls.key"
TLS_CERT = "tls.crt"
CA_CERT = "ca.crt"

# Legacy field names used by route secrets; the route idempotency check reads these
ROUTE_KEY = "server-key.pem"
ROUTE_CERT = "server-cert.pem"

# Secret types
SECRET_TYPE_TLS = "kubernetes.io/tls"
SECRET_TYPE_OPAQUE = "Opaque"

# Workload label whose value names the secret a component's certificate goes into
CERT_SECRET_NAME_LABEL = "certSecretName"

SecretData = dict[str, bytes]


def is_complete(data: SecretData | None, key_field: str, cert_field: str) -> bool:
    """True if the secret data carries both the key and the certificate field."""
    return bool(data) and key_field in data and cert_field in data  # type: ignore[operator]


@dataclass(frozen=True)
class CertComponent:
    """A workload that needs a certificate, and the secret it is stored under."""

    name: str
    namespace: str
    secret_name: str


@dataclass(frozen=True)
class LabeledResource:
    """One entry of a label-filtered workload listing."""

    name: str
    namespace: str
    label_value: str


@dataclass(frozen=True)
class CAMaterial:
    """CA key pair as PEM bytes, materialized from the store for signing only."""

    key: bytes
    cert: bytes


def _discard_dir(work_dir: Path | None) -> None:
    if work_dir is None:
        return
    shutil.rmtree(work_dir, ignore_errors=True)
    logger.debug("cert_artifacts_discarded", extra={"work_dir": str(work_dir)})


@dataclass
class CertSigningRequest:
    """A generated private key and the CSR derived from it."""

    component: CertComponent
    csr_file: Path
    key_file: Path
    work_dir: Path | None = None

    def discard(self) -> None:
        """Remove the key and CSR from disk."""
        _discard_dir(self.work_dir)


@dataclass
class Cert:
    """A signed or self-signed certificate paired with its private key."""

    component: CertComponent
    key_file: Path
    cert_file: Path
    work_dir: Path | None = None

    def read_key(self) -> bytes:
        return self.key_file.read_bytes()

    def read_cert(self) -> bytes:
        return self.cert_file.read_bytes()

    def discard(self) -> None:
        """Remove the key and certificate from disk."""
        _discard_dir(self.work_dir)
