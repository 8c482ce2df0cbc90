"""Tests for CA bootstrap."""

from unittest.mock import MagicMock, patch

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from certs.ca.certificate_generator import CryptographySigningEngine
from certs.ca.signing_engine import SigningTimeoutError, SigningToolError
from certs.domain.models import SECRET_TYPE_OPAQUE, TLS_CERT, TLS_KEY
from certs.services.bootstrap import CertificateAuthority
from certs.services.cert_manager import CertDataError


@pytest.fixture
def ca_files(tmp_path, signing_engine):
    """A CA key/cert pair on disk, as an operator would provide it."""
    key_path = tmp_path / "ca.key"
    cert_path = tmp_path / "ca.crt"
    signing_engine.generate_self_signed(
        key_path, cert_path, common_name="Operator CA", validity_days=365, timeout=60
    )
    return key_path, cert_path


class TestCreateSelfSignedCertSecret:
    def test_writes_key_and_cert_to_global_namespace(self, ca, store):
        ca.create_self_signed_cert_secret("ca-secret")

        data = store.get("global", "ca-secret")
        assert set(data) == {TLS_KEY, TLS_CERT}
        assert store.get_type("global", "ca-secret") == SECRET_TYPE_OPAQUE
        cert = x509.load_pem_x509_certificate(data[TLS_CERT])
        assert cert.subject == cert.issuer

    def test_key_matches_certificate(self, ca, store):
        ca.create_self_signed_cert_secret("ca-secret")

        data = store.get("global", "ca-secret")
        key = serialization.load_pem_private_key(data[TLS_KEY], password=None)
        cert = x509.load_pem_x509_certificate(data[TLS_CERT])
        assert key.public_key().public_numbers() == cert.public_key().public_numbers()

    def test_always_reissues(self, ca, store):
        ca.create_self_signed_cert_secret("ca-secret")
        first = store.get("global", "ca-secret")

        ca.create_self_signed_cert_secret("ca-secret")

        second = store.get("global", "ca-secret")
        assert second[TLS_CERT] != first[TLS_CERT]
        assert second[TLS_KEY] != first[TLS_KEY]

    def test_uses_configured_common_name_and_validity(self, store, cert_dir):
        engine = MagicMock(wraps=CryptographySigningEngine())
        ca = CertificateAuthority(
            store,
            engine,
            global_namespace="global",
            common_name="Test CA",
            validity_days=30,
            timeout=5,
            work_dir=cert_dir,
        )

        ca.create_self_signed_cert_secret("ca-secret")

        kwargs = engine.generate_self_signed.call_args.kwargs
        assert kwargs == {"common_name": "Test CA", "validity_days": 30, "timeout": 5, "ca": True}

    def test_staging_removed_after_success(self, ca, cert_dir):
        ca.create_self_signed_cert_secret("ca-secret")

        assert list(cert_dir.iterdir()) == []

    def test_staging_removed_and_nothing_stored_on_failure(self, store, cert_dir):
        engine = MagicMock()
        engine.generate_self_signed.side_effect = SigningToolError("exit 1")
        ca = CertificateAuthority(store, engine, global_namespace="global", work_dir=cert_dir)

        with pytest.raises(SigningToolError):
            ca.create_self_signed_cert_secret("ca-secret")

        assert list(cert_dir.iterdir()) == []
        assert store.exists("global", "ca-secret") is False

    @pytest.mark.parametrize(
        "error, reason",
        [(SigningToolError("exit 1"), "tool_error"), (SigningTimeoutError("timed out"), "timeout")],
    )
    def test_engine_failure_is_counted(self, store, cert_dir, error, reason):
        engine = MagicMock()
        engine.generate_self_signed.side_effect = error
        ca = CertificateAuthority(store, engine, global_namespace="global", work_dir=cert_dir)

        with patch("certs.services.cert_manager.cert_metrics") as mock_metrics:
            with pytest.raises(type(error)):
                ca.create_self_signed_cert_secret("ca-secret")

        mock_metrics.record_signing_failure.assert_called_once_with("generate_self_signed", reason)

    def test_generated_certificate_is_a_ca(self, ca, store):
        ca.create_self_signed_cert_secret("ca-secret")

        cert = x509.load_pem_x509_certificate(store.get("global", "ca-secret")[TLS_CERT])
        assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is True


class TestImportFromFiles:
    def test_imports_pair_verbatim(self, ca, store, ca_files):
        key_path, cert_path = ca_files

        ca.import_from_files("ca-secret", key_path, cert_path)

        assert store.get("global", "ca-secret") == {
            TLS_KEY: key_path.read_bytes(),
            TLS_CERT: cert_path.read_bytes(),
        }

    def test_mismatched_key_rejected(self, ca, store, ca_files, tmp_path, signing_engine):
        _, cert_path = ca_files
        other_key = tmp_path / "other.key"
        signing_engine.generate_self_signed(
            other_key, tmp_path / "other.crt", common_name="Other", validity_days=1, timeout=60
        )

        with pytest.raises(CertDataError, match="does not match"):
            ca.import_from_files("ca-secret", other_key, cert_path)

        assert store.exists("global", "ca-secret") is False

    def test_unparseable_files_rejected(self, ca, store, tmp_path):
        key_path = tmp_path / "ca.key"
        cert_path = tmp_path / "ca.crt"
        key_path.write_bytes(b"not a key")
        cert_path.write_bytes(b"not a cert")

        with pytest.raises(CertDataError, match="Failed to load CA"):
            ca.import_from_files("ca-secret", key_path, cert_path)

        assert store.exists("global", "ca-secret") is False


class TestEnsure:
    def test_generates_when_missing(self, ca, store):
        with patch("certs.services.bootstrap.cert_metrics") as mock_metrics:
            assert ca.ensure("ca-secret") is True

        assert store.exists("global", "ca-secret")
        mock_metrics.record_ca_bootstrapped.assert_called_once_with("generated")

    def test_idempotent(self, ca, store):
        ca.ensure("ca-secret")
        first = store.get("global", "ca-secret")

        with patch("certs.services.bootstrap.cert_metrics") as mock_metrics:
            assert ca.ensure("ca-secret") is False

        assert store.get("global", "ca-secret") == first
        mock_metrics.record_ca_ready.assert_called_once()

    def test_prefers_configured_files(self, store, signing_engine, cert_dir, ca_files):
        key_path, cert_path = ca_files
        ca = CertificateAuthority(
            store,
            signing_engine,
            global_namespace="global",
            work_dir=cert_dir,
            key_path=key_path,
            cert_path=cert_path,
        )

        assert ca.ensure("ca-secret") is True

        assert store.get("global", "ca-secret")[TLS_CERT] == cert_path.read_bytes()

    def test_falls_back_to_generation_when_files_absent(self, store, signing_engine, cert_dir, tmp_path):
        ca = CertificateAuthority(
            store,
            signing_engine,
            global_namespace="global",
            work_dir=cert_dir,
            key_path=tmp_path / "missing.key",
            cert_path=tmp_path / "missing.crt",
        )

        assert ca.ensure("ca-secret") is True

        cert = x509.load_pem_x509_certificate(store.get("global", "ca-secret")[TLS_CERT])
        assert cert.subject.rfc4514_string() == f"CN={CertificateAuthority.DEFAULT_COMMON_NAME}"
