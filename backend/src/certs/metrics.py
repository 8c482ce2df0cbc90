"""OpenTelemetry metrics for the certificate manager."""

from collections.abc import Iterator

from opentelemetry import metrics

meter = metrics.get_meter("certs")

route_certs_issued_total = meter.create_counter(
    name="certs_route_certs_issued_total",
    description="Route secrets filled with a new self-signed certificate",
    unit="1",
)

route_certs_skipped_total = meter.create_counter(
    name="certs_route_certs_skipped_total",
    description="Route issuances skipped",
    unit="1",
)

csrs_created_total = meter.create_counter(
    name="certs_csrs_created_total",
    description="Total CSRs created",
    unit="1",
)

certificates_signed_total = meter.create_counter(
    name="certs_certificates_signed_total",
    description="Total CSRs signed by a CA",
    unit="1",
)

signing_failures_total = meter.create_counter(
    name="certs_signing_failures_total",
    description="Signing engine failures",
    unit="1",
)

secrets_created_total = meter.create_counter(
    name="certs_secrets_created_total",
    description="Component certificate secrets created",
    unit="1",
)

ca_bootstraps_total = meter.create_counter(
    name="certs_ca_bootstraps_total",
    description="CA secrets written by bootstrap",
    unit="1",
)

signing_duration = meter.create_histogram(
    name="certs_signing_duration_seconds",
    description="Signing engine call duration in seconds",
    unit="s",
)

# CA present gauge
_ca_ready = False


def _get_ca_ready(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    yield metrics.Observation(1 if _ca_ready else 0, {})


ca_ready_gauge = meter.create_observable_gauge(
    name="certs_ca_ready",
    description="CA secret available (1=yes, 0=no)",
    unit="1",
    callbacks=[_get_ca_ready],
)


class CertMetrics:
    """Facade for certificate metrics with proper labels."""

    def record_route_cert_issued(self) -> None:
        route_certs_issued_total.add(1)

    def record_route_cert_skipped(self, reason: str) -> None:
        """Labels: reason=secret_missing|already_issued"""
        route_certs_skipped_total.add(1, {"reason": reason})

    def record_csr_created(self) -> None:
        csrs_created_total.add(1)

    def record_certificate_signed(self, duration_seconds: float) -> None:
        certificates_signed_total.add(1)
        signing_duration.record(duration_seconds, {"operation": "sign_csr"})

    def record_signing_failure(self, operation: str, reason: str) -> None:
        """Labels: reason=tool_error|timeout|wrong_issuer"""
        signing_failures_total.add(1, {"operation": operation, "reason": reason})

    def record_secret_created(self, namespace: str) -> None:
        secrets_created_total.add(1, {"namespace": namespace})

    def record_ca_bootstrapped(self, source: str) -> None:
        """Labels: source=generated|file"""
        global _ca_ready
        ca_bootstraps_total.add(1, {"source": source})
        _ca_ready = True

    def record_ca_ready(self) -> None:
        global _ca_ready
        _ca_ready = True


# Singleton instance
cert_metrics = CertMetrics()
