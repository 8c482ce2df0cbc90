"""In-process signing engine built on the `cryptography` package.

Produces the same PEM artifacts as the openssl engine:
- Keys: RSA 2048, PKCS8, unencrypted
- Self-signed certificates: Subject = Issuer = CN=<common_name>, CA=True, or a
  serverAuth leaf with CA=False when `ca` is False
- CSRs: Subject O=<organization>, CN=<common_name>
- Signed certificates: Subject from the CSR, Issuer from the CA certificate,
  serial tracked in a `<ca cert>.srl` file next to the CA certificate
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from certs.ca.signing_engine import SigningTimeoutError, SigningToolError
from certs.ca.staging import write_private_file

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CryptographySigningEngine:
    """Generates keys, CSRs and certificates without an external process.

    Work runs on the calling thread; the timeout is checked before any output
    file is written, so a call that overran leaves nothing behind.
    """

    KEY_SIZE = 2048

    def generate_self_signed(
        self,
        key_file: Path,
        cert_file: Path,
        *,
        common_name: str,
        validity_days: int,
        timeout: float,
        ca: bool = True,
    ) -> None:
        with tracer.start_as_current_span("CryptographySigningEngine.generate_self_signed") as span:
            span.set_attribute("ca", ca)
            start_time = time.time()
            try:
                key = self._generate_key()
                name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
                now = datetime.now(timezone.utc)
                builder = (
                    x509.CertificateBuilder()
                    .subject_name(name)
                    .issuer_name(name)
                    .public_key(key.public_key())
                    .serial_number(x509.random_serial_number())
                    .not_valid_before(now)
                    .not_valid_after(now + timedelta(days=validity_days))
                    .add_extension(
                        x509.BasicConstraints(ca=ca, path_length=None),
                        critical=True,
                    )
                    .add_extension(
                        x509.KeyUsage(
                            digital_signature=True,
                            key_cert_sign=ca,
                            crl_sign=ca,
                            key_encipherment=True,
                            content_commitment=False,
                            data_encipherment=False,
                            key_agreement=False,
                            encipher_only=False,
                            decipher_only=False,
                        ),
                        critical=True,
                    )
                )
                if not ca:
                    builder = builder.add_extension(
                        x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                        critical=False,
                    )
                certificate = builder.sign(key, hashes.SHA256())
            except Exception as e:
                raise SigningToolError(f"Failed to generate self-signed certificate: {e}") from e

            self._check_deadline(start_time, timeout, "generate_self_signed")
            write_private_file(key_file, self._key_pem(key))
            cert_file.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))

    def generate_csr(
        self,
        key_file: Path,
        csr_file: Path,
        *,
        common_name: str,
        organization: str,
        timeout: float,
    ) -> None:
        with tracer.start_as_current_span("CryptographySigningEngine.generate_csr") as span:
            span.set_attribute("common_name", common_name)
            start_time = time.time()
            try:
                key = self._generate_key()
                csr = (
                    x509.CertificateSigningRequestBuilder()
                    .subject_name(
                        x509.Name(
                            [
                                x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
                                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                            ]
                        )
                    )
                    .sign(key, hashes.SHA256())
                )
            except Exception as e:
                raise SigningToolError(f"Failed to generate CSR: {e}") from e

            self._check_deadline(start_time, timeout, "generate_csr")
            write_private_file(key_file, self._key_pem(key))
            csr_file.write_bytes(csr.public_bytes(serialization.Encoding.PEM))

    def sign_csr(
        self,
        csr_file: Path,
        ca_key_file: Path,
        ca_cert_file: Path,
        cert_file: Path,
        *,
        validity_days: int,
        timeout: float,
    ) -> None:
        with tracer.start_as_current_span("CryptographySigningEngine.sign_csr") as span:
            start_time = time.time()
            try:
                csr = x509.load_pem_x509_csr(csr_file.read_bytes())
                ca_key = serialization.load_pem_private_key(ca_key_file.read_bytes(), password=None)
                ca_cert = x509.load_pem_x509_certificate(ca_cert_file.read_bytes())
            except (OSError, ValueError) as e:
                raise SigningToolError(f"Failed to load signing input: {e}") from e

            if not csr.is_signature_valid:
                raise SigningToolError("CSR signature does not verify")

            serial_number = self._next_serial(ca_cert_file)
            span.set_attribute("serial", format(serial_number, "x"))

            try:
                now = datetime.now(timezone.utc)
                certificate = (
                    x509.CertificateBuilder()
                    .subject_name(csr.subject)
                    .issuer_name(ca_cert.subject)
                    .public_key(csr.public_key())
                    .serial_number(serial_number)
                    .not_valid_before(now)
                    .not_valid_after(now + timedelta(days=validity_days))
                    .add_extension(
                        x509.BasicConstraints(ca=False, path_length=None),
                        critical=True,
                    )
                    .add_extension(
                        x509.KeyUsage(
                            digital_signature=True,
                            key_encipherment=True,
                            key_cert_sign=False,
                            crl_sign=False,
                            content_commitment=False,
                            data_encipherment=False,
                            key_agreement=False,
                            encipher_only=False,
                            decipher_only=False,
                        ),
                        critical=True,
                    )
                    .add_extension(
                        x509.ExtendedKeyUsage(
                            [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
                        ),
                        critical=False,
                    )
                    .sign(ca_key, hashes.SHA256())  # type: ignore[arg-type]
                )
            except (InvalidSignature, TypeError, ValueError) as e:
                raise SigningToolError(f"Failed to sign CSR: {e}") from e

            self._check_deadline(start_time, timeout, "sign_csr")
            cert_file.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))

    def _generate_key(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=65537, key_size=self.KEY_SIZE)

    def _key_pem(self, key: PrivateKeyTypes) -> bytes:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def _next_serial(self, ca_cert_file: Path) -> int:
        """Read, increment and store the serial kept next to the CA certificate.

        Creates the serial file with a random value on first use, like
        openssl's -CAcreateserial.
        """
        serial_file = ca_cert_file.with_suffix(".srl")
        if serial_file.exists():
            serial_number = int(serial_file.read_text().strip(), 16) + 1
        else:
            serial_number = x509.random_serial_number()
        serial_file.write_text(format(serial_number, "X") + "\n")
        return serial_number

    def _check_deadline(self, start_time: float, timeout: float, operation: str) -> None:
        elapsed = time.time() - start_time
        if elapsed > timeout:
            logger.error(
                "signing_operation_timed_out",
                extra={"operation": operation, "timeout_seconds": timeout, "elapsed": elapsed},
            )
            raise SigningTimeoutError(f"{operation} took {elapsed:.1f}s, limit is {timeout}s")
