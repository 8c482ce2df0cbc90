"""Certificate manager: route issuance, discovery, CSR creation, signing, persistence.

Private keys only exist on disk inside per-call directories under `cert_dir`:
- route issuance and CA staging use a scratch directory removed before return
- `create_csr` hands its directory to the returned request; `sign_csr` reuses it
  for the certificate; `provision` removes it once the secret is written
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from opentelemetry import trace

from certs.ca.crypto import CryptoError, compute_thumbprint, verify_issued_by
from certs.ca.signing_engine import SigningEngine, SigningTimeoutError, SigningToolError
from certs.ca.staging import make_work_dir, scratch_dir, write_private_file
from certs.domain.models import (
    CA_CERT,
    CERT_SECRET_NAME_LABEL,
    ROUTE_CERT,
    ROUTE_KEY,
    SECRET_TYPE_OPAQUE,
    SECRET_TYPE_TLS,
    TLS_CERT,
    TLS_KEY,
    CAMaterial,
    Cert,
    CertComponent,
    CertSigningRequest,
    is_complete,
)
from certs.metrics import cert_metrics
from certs.repository.secret_store import SecretNotFoundError, SecretStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CertDataError(Exception):
    """Raised when a secret lacks a field needed for signing or persistence."""

    pass


def call_engine(operation: str, fn: Callable[..., None], *args: Any, **kwargs: Any) -> None:
    """Invoke a signing engine method, recording failures by kind."""
    try:
        fn(*args, **kwargs)
    except SigningTimeoutError:
        cert_metrics.record_signing_failure(operation, "timeout")
        raise
    except SigningToolError:
        cert_metrics.record_signing_failure(operation, "tool_error")
        raise


class CertManager:
    """Issues and signs certificates for cluster components."""

    DEFAULT_VALIDITY_DAYS = 11000
    DEFAULT_TIMEOUT_SECONDS = 60.0
    DEFAULT_ORGANIZATION = "io.enmasse"

    def __init__(
        self,
        store: SecretStore,
        engine: SigningEngine,
        *,
        global_namespace: str,
        cert_dir: str | Path | None = None,
        organization: str = DEFAULT_ORGANIZATION,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.engine = engine
        self.global_namespace = global_namespace
        self.cert_dir = cert_dir
        self.organization = organization
        self.validity_days = validity_days
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Route certificates
    # ------------------------------------------------------------------

    def issue_route_cert(self, secret_name: str, namespace: str, *hostnames: str) -> bool:
        """Fill a route secret with a self-signed key and certificate.

        The secret must already exist; a missing secret is a no-op. A secret that
        already holds both server-key.pem and server-cert.pem is left untouched.
        Otherwise the two fields are written, keeping the other fields and the
        secret type. The certificate is a leaf, not a CA.
        Hostnames are logged only, they are not written into the certificate.

        Returns:
            True if a certificate was generated and stored.
        """
        with tracer.start_as_current_span("CertManager.issue_route_cert") as span:
            span.set_attribute("namespace", namespace)
            span.set_attribute("secret_name", secret_name)

            data = self.store.get(namespace, secret_name)
            if data is None:
                span.set_attribute("result", "secret_missing")
                cert_metrics.record_route_cert_skipped("secret_missing")
                logger.debug(
                    "route_cert_skipped",
                    extra={"namespace": namespace, "secret_name": secret_name, "reason": "secret_missing"},
                )
                return False

            if is_complete(data, ROUTE_KEY, ROUTE_CERT):
                span.set_attribute("result", "already_issued")
                cert_metrics.record_route_cert_skipped("already_issued")
                return False

            logger.info(
                "Creating self-signed certificates",
                extra={"namespace": namespace, "secret_name": secret_name, "hostnames": list(hostnames)},
            )

            with scratch_dir(self.cert_dir, prefix="route-") as work_dir:
                key_file = work_dir / ROUTE_KEY
                cert_file = work_dir / ROUTE_CERT
                call_engine(
                    "generate_self_signed",
                    self.engine.generate_self_signed,
                    key_file,
                    cert_file,
                    common_name=secret_name,
                    validity_days=self.validity_days,
                    timeout=self.timeout,
                    ca=False,
                )
                updated = dict(data)
                updated[ROUTE_KEY] = key_file.read_bytes()
                updated[ROUTE_CERT] = cert_file.read_bytes()

            secret_type = self.store.get_type(namespace, secret_name) or SECRET_TYPE_OPAQUE
            # Last write wins if another issuer raced us here
            self.store.create_or_replace(namespace, secret_name, updated, secret_type)

            span.set_attribute("result", "issued")
            cert_metrics.record_route_cert_issued()
            logger.info(
                "route_cert_issued",
                extra={"namespace": namespace, "secret_name": secret_name},
            )
            return True

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_components(self, namespace: str) -> list[CertComponent]:
        """List workloads in namespace that need a certificate."""
        with tracer.start_as_current_span("CertManager.list_components") as span:
            span.set_attribute("namespace", namespace)
            components = [
                CertComponent(
                    name=resource.name,
                    namespace=namespace,
                    secret_name=resource.label_value,
                )
                for resource in self.store.list_by_label(namespace, CERT_SECRET_NAME_LABEL)
            ]
            span.set_attribute("count", len(components))
            return components

    def cert_exists(self, component: CertComponent | str) -> bool:
        """Check whether the secret for a component, or a secret name, exists.

        A plain name is looked up in the store's own namespace.
        """
        if isinstance(component, CertComponent):
            return self.store.exists(component.namespace, component.secret_name)
        return self.store.exists(None, component)

    # ------------------------------------------------------------------
    # CSR workflow
    # ------------------------------------------------------------------

    def create_csr(self, component: CertComponent) -> CertSigningRequest:
        """Generate a private key and a CSR for a component.

        Subject: O=<organization>, CN=<component name>. The files are named
        <namespace>.<name>.key / .csr inside a directory owned by the request.
        """
        with tracer.start_as_current_span("CertManager.create_csr") as span:
            span.set_attribute("namespace", component.namespace)
            span.set_attribute("component", component.name)

            stem = f"{component.namespace}.{component.name}"
            work_dir = make_work_dir(self.cert_dir, prefix=f"{stem}.")
            key_file = work_dir / f"{stem}.key"
            csr_file = work_dir / f"{stem}.csr"
            request = CertSigningRequest(
                component=component,
                csr_file=csr_file,
                key_file=key_file,
                work_dir=work_dir,
            )

            try:
                call_engine(
                    "generate_csr",
                    self.engine.generate_csr,
                    key_file,
                    csr_file,
                    common_name=component.name,
                    organization=self.organization,
                    timeout=self.timeout,
                )
            except Exception:
                request.discard()
                raise

            cert_metrics.record_csr_created()
            logger.info(
                "csr_created",
                extra={"namespace": component.namespace, "component": component.name},
            )
            return request

    def sign_csr(self, request: CertSigningRequest, ca_secret_name: str) -> Cert:
        """Sign a CSR with the CA stored in secret ca_secret_name.

        The CA secret is looked up by name in the store's own namespace. Its key
        and certificate are staged in a scratch directory that is removed before
        this method returns, whether or not signing succeeded. The result is
        checked against the CA certificate before it is handed back.

        Raises:
            SecretNotFoundError: If the CA secret does not exist.
            CertDataError: If the CA secret lacks tls.key or tls.crt.
            SigningError: If the signing engine fails or times out, or its output
                does not chain to the CA.
        """
        component = request.component
        with tracer.start_as_current_span("CertManager.sign_csr") as span:
            span.set_attribute("namespace", component.namespace)
            span.set_attribute("component", component.name)
            span.set_attribute("ca_secret_name", ca_secret_name)

            ca = self._load_ca(ca_secret_name)
            cert_file = request.key_file.parent / f"{component.namespace}.{component.name}.crt"

            start_time = time.time()
            with scratch_dir(self.cert_dir, prefix="ca-") as ca_dir:
                ca_key_file = write_private_file(ca_dir / TLS_KEY, ca.key)
                ca_cert_file = write_private_file(ca_dir / TLS_CERT, ca.cert)
                try:
                    call_engine(
                        "sign_csr",
                        self.engine.sign_csr,
                        request.csr_file,
                        ca_key_file,
                        ca_cert_file,
                        cert_file,
                        validity_days=self.validity_days,
                        timeout=self.timeout,
                    )
                    verify_issued_by(cert_file.read_bytes(), ca.cert)
                except CryptoError as e:
                    cert_file.unlink(missing_ok=True)
                    cert_metrics.record_signing_failure("sign_csr", "wrong_issuer")
                    raise SigningToolError(
                        f"Signed certificate does not chain to CA {ca_secret_name}: {e}"
                    ) from e
                except Exception:
                    cert_file.unlink(missing_ok=True)
                    raise

            duration = time.time() - start_time
            cert_metrics.record_certificate_signed(duration)
            logger.info(
                "csr_signed",
                extra={
                    "namespace": component.namespace,
                    "component": component.name,
                    "ca_secret_name": ca_secret_name,
                    "duration_seconds": duration,
                },
            )
            return Cert(
                component=component,
                key_file=request.key_file,
                cert_file=cert_file,
                work_dir=request.work_dir,
            )

    def create_secret(self, cert: Cert, ca_secret_name: str) -> None:
        """Store a signed certificate as a new TLS secret in the component's namespace.

        The secret holds tls.key, tls.crt and ca.crt, where ca.crt is the CA
        certificate from ca_secret_name in the global namespace. Create-only.

        Raises:
            SecretConflictError: If the component's secret already exists.
            SecretNotFoundError: If the CA secret does not exist.
            CertDataError: If the CA secret has no certificate.
        """
        component = cert.component
        with tracer.start_as_current_span("CertManager.create_secret") as span:
            span.set_attribute("namespace", component.namespace)
            span.set_attribute("secret_name", component.secret_name)

            key_pem = cert.read_key()
            cert_pem = cert.read_cert()

            ca_secret = self.store.get(self.global_namespace, ca_secret_name)
            if ca_secret is None:
                raise SecretNotFoundError(
                    f"CA secret {self.global_namespace}/{ca_secret_name} not found"
                )
            if TLS_CERT not in ca_secret:
                raise CertDataError(f"CA secret {ca_secret_name} is missing {TLS_CERT}")

            data = {
                TLS_KEY: key_pem,
                TLS_CERT: cert_pem,
                CA_CERT: ca_secret[TLS_CERT],
            }
            self.store.create(component.namespace, component.secret_name, data, SECRET_TYPE_TLS)

            cert_metrics.record_secret_created(component.namespace)
            logger.info(
                "cert_secret_created",
                extra={
                    "namespace": component.namespace,
                    "secret_name": component.secret_name,
                    "thumbprint": compute_thumbprint(cert_pem),
                },
            )

    def provision(self, component: CertComponent, ca_secret_name: str) -> None:
        """Run create_csr, sign_csr and create_secret for one component.

        The request's key, CSR and certificate files are removed on every path.
        """
        request = self.create_csr(component)
        try:
            cert = self.sign_csr(request, ca_secret_name)
            self.create_secret(cert, ca_secret_name)
        finally:
            request.discard()

    # ------------------------------------------------------------------

    def _load_ca(self, ca_secret_name: str) -> CAMaterial:
        """Read the CA pair by name from the store's own namespace."""
        ca_secret = self.store.get(None, ca_secret_name)
        if ca_secret is None:
            raise SecretNotFoundError(f"CA secret {ca_secret_name} not found")
        missing = [field for field in (TLS_KEY, TLS_CERT) if field not in ca_secret]
        if missing:
            raise CertDataError(f"CA secret {ca_secret_name} is missing {', '.join(missing)}")
        return CAMaterial(key=ca_secret[TLS_KEY], cert=ca_secret[TLS_CERT])
