"""Certificate authority bootstrap.

The CA key pair lives in a secret in the global namespace, under tls.key and
tls.crt. It is either generated self-signed or imported once from a key/cert
pair on disk. Where the CA lives is fixed at construction.
"""

import logging
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from opentelemetry import trace

from certs.ca.signing_engine import SigningEngine
from certs.ca.staging import scratch_dir
from certs.domain.models import SECRET_TYPE_OPAQUE, TLS_CERT, TLS_KEY
from certs.metrics import cert_metrics
from certs.repository.secret_store import SecretStore
from certs.services.cert_manager import CertDataError, call_engine

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CertificateAuthority:
    """Creates and locates the root CA secret."""

    DEFAULT_COMMON_NAME = "Cluster Certificate Manager CA"
    DEFAULT_VALIDITY_DAYS = 11000
    DEFAULT_TIMEOUT_SECONDS = 60.0

    def __init__(
        self,
        store: SecretStore,
        engine: SigningEngine,
        *,
        global_namespace: str,
        common_name: str = DEFAULT_COMMON_NAME,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        work_dir: str | Path | None = None,
        key_path: str | Path | None = None,
        cert_path: str | Path | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.global_namespace = global_namespace
        self.common_name = common_name
        self.validity_days = validity_days
        self.timeout = timeout
        self.work_dir = work_dir
        self.key_path = Path(key_path) if key_path else None
        self.cert_path = Path(cert_path) if cert_path else None

    def create_self_signed_cert_secret(self, secret_name: str) -> None:
        """Generate a new self-signed CA and store it under secret_name.

        Always reissues; callers wanting idempotency use `ensure`.
        """
        with tracer.start_as_current_span("CertificateAuthority.create_self_signed_cert_secret") as span:
            span.set_attribute("secret_name", secret_name)
            span.set_attribute("validity_days", self.validity_days)

            with scratch_dir(self.work_dir, prefix="tls-") as staging:
                key_file = staging / TLS_KEY
                cert_file = staging / TLS_CERT
                call_engine(
                    "generate_self_signed",
                    self.engine.generate_self_signed,
                    key_file,
                    cert_file,
                    common_name=self.common_name,
                    validity_days=self.validity_days,
                    timeout=self.timeout,
                    ca=True,
                )
                data = {TLS_KEY: key_file.read_bytes(), TLS_CERT: cert_file.read_bytes()}

            self.store.create_or_replace(self.global_namespace, secret_name, data, SECRET_TYPE_OPAQUE)

            cert_metrics.record_ca_bootstrapped("generated")
            logger.info(
                "ca_secret_created",
                extra={"namespace": self.global_namespace, "secret_name": secret_name},
            )

    def import_from_files(self, secret_name: str, key_path: Path, cert_path: Path) -> None:
        """Store an existing CA key/cert pair under secret_name.

        Raises:
            CertDataError: If the files do not hold a matching key and certificate.
        """
        with tracer.start_as_current_span("CertificateAuthority.import_from_files") as span:
            span.set_attribute("secret_name", secret_name)

            key_pem = key_path.read_bytes()
            cert_pem = cert_path.read_bytes()
            try:
                private_key = serialization.load_pem_private_key(key_pem, password=None)
                certificate = x509.load_pem_x509_certificate(cert_pem)
            except ValueError as e:
                logger.error(
                    "ca_import_failed",
                    extra={"key_path": str(key_path), "cert_path": str(cert_path), "error": str(e)},
                )
                raise CertDataError(f"Failed to load CA from file: {e}") from e

            if _public_bytes(private_key.public_key()) != _public_bytes(certificate.public_key()):
                raise CertDataError("CA key does not match CA certificate")

            self.store.create_or_replace(
                self.global_namespace,
                secret_name,
                {TLS_KEY: key_pem, TLS_CERT: cert_pem},
                SECRET_TYPE_OPAQUE,
            )

            cert_metrics.record_ca_bootstrapped("file")
            logger.info(
                "ca_secret_imported",
                extra={
                    "namespace": self.global_namespace,
                    "secret_name": secret_name,
                    "ca_cert_expires": certificate.not_valid_after_utc.isoformat(),
                },
            )

    def ensure(self, secret_name: str) -> bool:
        """Create the CA secret unless it already exists.

        Imports the configured key/cert files when both exist, otherwise
        generates a new CA.

        Returns:
            True if a CA secret was written.
        """
        if self.store.exists(self.global_namespace, secret_name):
            cert_metrics.record_ca_ready()
            logger.debug(
                "ca_secret_present",
                extra={"namespace": self.global_namespace, "secret_name": secret_name},
            )
            return False

        if (
            self.key_path is not None
            and self.cert_path is not None
            and self.key_path.exists()
            and self.cert_path.exists()
        ):
            self.import_from_files(secret_name, self.key_path, self.cert_path)
        else:
            self.create_self_signed_cert_secret(secret_name)
        return True


def _public_bytes(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
