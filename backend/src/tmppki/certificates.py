"""Lazily issued X.509 certificates.

A Certificate is bound to its key and an issuance (self-signed or CA-signed)
at construction, but is only built and signed on first use. The DER bytes of
the first successful issuance are cached: the serial number and signature
are random, so reissuing would silently change the certificate's identity.
"""

import hashlib
import logging
from contextlib import closing
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)
from opentelemetry import trace

from tmppki.errors import CertificateCreationError, TmpPKIError
from tmppki.metrics import pki_metrics
from tmppki.pem import encode_pem
from tmppki.templates import CertificateTemplate

if TYPE_CHECKING:
    from tmppki.keys import Key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CERTIFICATE_PEM_HEADER = "CERTIFICATE"


@dataclass(frozen=True)
class SelfSigned:
    """The template signs itself with the certificate's own key."""

    template: CertificateTemplate


@dataclass(frozen=True)
class CASigned:
    """Signed by issuer_key, with issuer_template's subject as issuer name."""

    template: CertificateTemplate
    issuer_template: CertificateTemplate
    issuer_key: "Key"


Issuance = SelfSigned | CASigned


class Certificate:
    """A certificate for a Key, issued on first access and then cached."""

    def __init__(self, key: "Key", issuance: Issuance) -> None:
        self._key = key
        self._issuance = issuance
        self._der: bytes | None = None
        self._certificate: x509.Certificate | None = None

    @property
    def key(self) -> "Key":
        return self._key

    @property
    def issuance(self) -> Issuance:
        return self._issuance

    @property
    def is_materialized(self) -> bool:
        return self._der is not None

    @property
    def certificate(self) -> x509.Certificate:
        """Parsed certificate (subject, validity, extensions). Issues if needed."""
        if self._certificate is None:
            self.marshal_der()
        return self._certificate  # type: ignore[return-value]

    def private(self) -> PrivateKeyTypes:
        return self._key.private()

    def public(self) -> PublicKeyTypes:
        return self._key.public()

    def marshal_der(self) -> bytes:
        """Return the DER encoding, issuing the certificate on first call.

        Raises:
            CertificateCreationError: If building or signing fails. Nothing
                is cached, so a later call retries.
        """
        if self._der is None:
            certificate = self._materialize()
            self._der = certificate.public_bytes(serialization.Encoding.DER)
            self._certificate = certificate
        return self._der

    def marshal_pem(self) -> bytes:
        return encode_pem(CERTIFICATE_PEM_HEADER, self.marshal_der())

    def encode_pem(self, sink: BinaryIO) -> None:
        """Write the PEM encoding to sink and close it, even on failure."""
        with closing(sink):
            sink.write(self.marshal_pem())

    def fingerprint(self) -> str:
        """Lowercase hex SHA-256 over the DER encoding."""
        return hashlib.sha256(self.marshal_der()).hexdigest().lower()

    def _materialize(self) -> x509.Certificate:
        issuance = self._issuance
        template = issuance.template

        if isinstance(issuance, CASigned):
            mode = "ca_signed"
            issuer_name = issuance.issuer_template.subject
            signer = issuance.issuer_key
        else:
            mode = "self_signed"
            issuer_name = template.subject
            signer = self._key

        with tracer.start_as_current_span("Certificate.materialize") as span:
            span.set_attribute("mode", mode)
            span.set_attribute("algorithm", self._key.algorithm.value)

            try:
                builder = (
                    x509.CertificateBuilder()
                    .subject_name(template.subject)
                    .issuer_name(issuer_name)
                    .public_key(self._key.public())  # type: ignore[arg-type]
                    .serial_number(template.serial_number)
                    .not_valid_before(template.not_before)
                    .not_valid_after(template.not_after)
                )
                for extension, critical in template.extensions():
                    builder = builder.add_extension(extension, critical=critical)

                certificate = builder.sign(
                    signer.private(),  # type: ignore[arg-type]
                    signer.signature_hash(),  # type: ignore[arg-type]
                )
            except TmpPKIError:
                raise
            except Exception as e:
                logger.error(
                    "certificate_creation_failed",
                    extra={"mode": mode, "error": str(e)},
                )
                raise CertificateCreationError(f"Failed to create certificate: {e}") from e

            serial_str = format(certificate.serial_number, "x")
            span.set_attribute("serial", serial_str)

            pki_metrics.record_certificate_issued(mode)

            logger.info(
                "certificate_issued",
                extra={
                    "mode": mode,
                    "algorithm": self._key.algorithm.value,
                    "serial": serial_str,
                    "not_after": template.not_after.isoformat(),
                },
            )

            return certificate
