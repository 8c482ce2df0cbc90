"""Shared fixtures: an in-memory key material store and an in-process signing engine."""

import pytest

from certs.ca.certificate_generator import CryptographySigningEngine
from certs.repository.secret_store import SqlSecretStore
from certs.services.bootstrap import CertificateAuthority
from certs.services.cert_manager import CertManager
from shared.database import build_engine

GLOBAL_NAMESPACE = "global"
CA_SECRET_NAME = "ca-secret"


@pytest.fixture
def store() -> SqlSecretStore:
    """Fresh in-memory store scoped to the global namespace."""
    secret_store = SqlSecretStore(build_engine("sqlite://"), namespace=GLOBAL_NAMESPACE)
    secret_store.init_schema()
    return secret_store


@pytest.fixture
def signing_engine() -> CryptographySigningEngine:
    return CryptographySigningEngine()


@pytest.fixture
def cert_dir(tmp_path):
    path = tmp_path / "certs"
    path.mkdir()
    return path


@pytest.fixture
def manager(store, signing_engine, cert_dir) -> CertManager:
    return CertManager(
        store,
        signing_engine,
        global_namespace=GLOBAL_NAMESPACE,
        cert_dir=cert_dir,
        timeout=60,
    )


@pytest.fixture
def ca(store, signing_engine, cert_dir) -> CertificateAuthority:
    return CertificateAuthority(
        store,
        signing_engine,
        global_namespace=GLOBAL_NAMESPACE,
        work_dir=cert_dir,
        timeout=60,
    )


@pytest.fixture
def ca_secret(ca, store) -> dict[str, bytes]:
    """Bootstrap the CA secret and return its data."""
    ca.create_self_signed_cert_secret(CA_SECRET_NAME)
    return store.get(GLOBAL_NAMESPACE, CA_SECRET_NAME)
