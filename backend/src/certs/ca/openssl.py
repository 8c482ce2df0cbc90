"""Signing engine backed by the `openssl` command line tool."""

import logging
import subprocess
import time
from pathlib import Path

from opentelemetry import trace

from certs.ca.signing_engine import SigningToolError, SigningTimeoutError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class OpenSSLSigningEngine:
    """Runs openssl as a blocking subprocess for every operation.

    - Key: RSA 2048, unencrypted (-nodes)
    - Self-signed and signed certificates: -days validity_days
    - Self-signed leaves (ca=False): CA:FALSE and serverAuth via -addext
    - Serial numbers for signed certificates: -CAcreateserial, kept next to the CA cert
    """

    KEY_SPEC = "rsa:2048"

    def __init__(self, binary: str = "openssl") -> None:
        self.binary = binary

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
        args = [
            "req", "-new", "-x509", "-batch", "-nodes",
            "-newkey", self.KEY_SPEC,
            "-days", str(validity_days),
            "-subj", f"/CN={common_name}",
            "-keyout", str(key_file),
            "-out", str(cert_file),
        ]
        if not ca:
            args += [
                "-addext", "basicConstraints=critical,CA:FALSE",
                "-addext", "keyUsage=critical,digitalSignature,keyEncipherment",
                "-addext", "extendedKeyUsage=serverAuth",
            ]
        self._run(args, timeout=timeout)

    def generate_csr(
        self,
        key_file: Path,
        csr_file: Path,
        *,
        common_name: str,
        organization: str,
        timeout: float,
    ) -> None:
        self._run(
            [
                "req", "-new", "-batch", "-nodes",
                "-newkey", self.KEY_SPEC,
                "-subj", f"/O={organization}/CN={common_name}",
                "-keyout", str(key_file),
                "-out", str(csr_file),
            ],
            timeout=timeout,
        )

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
        self._run(
            [
                "x509", "-req",
                "-days", str(validity_days),
                "-in", str(csr_file),
                "-CA", str(ca_cert_file),
                "-CAkey", str(ca_key_file),
                "-CAcreateserial",
                "-out", str(cert_file),
            ],
            timeout=timeout,
        )

    def _run(self, args: list[str], timeout: float) -> None:
        """Run one openssl command, mapping failures to signing errors."""
        cmd = [self.binary, *args]
        with tracer.start_as_current_span("OpenSSLSigningEngine.run") as span:
            span.set_attribute("command", args[0])
            span.set_attribute("timeout_seconds", timeout)

            logger.info("Running command", extra={"command": " ".join(cmd)})
            start_time = time.time()
            try:
                result = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    timeout=timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                logger.error(
                    "signing_command_timed_out",
                    extra={"command": args[0], "timeout_seconds": timeout},
                )
                raise SigningTimeoutError(
                    f"{self.binary} {args[0]} timed out after {timeout} seconds"
                ) from e
            except OSError as e:
                logger.error(
                    "signing_command_failed_to_start",
                    extra={"command": args[0], "error": str(e)},
                )
                raise SigningToolError(f"Could not start {self.binary}: {e}") from e

            duration = time.time() - start_time
            span.set_attribute("exit_code", result.returncode)

            if result.returncode != 0:
                output = result.stdout.decode("utf-8", errors="replace").strip()
                logger.error(
                    "signing_command_failed",
                    extra={
                        "command": args[0],
                        "exit_code": result.returncode,
                        "output": output,
                    },
                )
                raise SigningToolError(
                    f"{self.binary} {args[0]} exited with {result.returncode}: {output}"
                )

            logger.debug(
                "signing_command_completed",
                extra={"command": args[0], "duration_seconds": duration},
            )
