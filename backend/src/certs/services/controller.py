"""Reconcile loop tying discovery to the CSR pipeline."""

import logging

from opentelemetry import trace

from certs.domain.models import CertComponent
from certs.services.bootstrap import CertificateAuthority
from certs.services.cert_manager import CertManager

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CertController:
    """Makes sure every labelled workload in a namespace has a certificate secret."""

    def __init__(self, manager: CertManager, ca: CertificateAuthority, ca_secret_name: str):
        self.manager = manager
        self.ca = ca
        self.ca_secret_name = ca_secret_name

    def reconcile(self, namespace: str) -> list[CertComponent]:
        """Provision certificates for components whose secret is missing.

        Returns:
            The components that were provisioned in this pass.
        """
        with tracer.start_as_current_span("CertController.reconcile") as span:
            span.set_attribute("namespace", namespace)

            self.ca.ensure(self.ca_secret_name)

            provisioned = []
            for component in self.manager.list_components(namespace):
                if self.manager.cert_exists(component):
                    continue
                self.manager.provision(component, self.ca_secret_name)
                provisioned.append(component)

            span.set_attribute("provisioned", len(provisioned))
            logger.info(
                "namespace_reconciled",
                extra={
                    "namespace": namespace,
                    "provisioned": [c.name for c in provisioned],
                },
            )
            return provisioned
