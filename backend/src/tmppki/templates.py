"""Certificate templates and their defaults.

A template carries everything about a certificate except the keys: subject,
serial, validity window and extensions. Leaf and CA defaults:

- Leaf: CN=Temporary PKI Certificate, 1 year, digitalSignature,
  EKU serverAuth + clientAuth
- CA: CN=Temporary PKI Certificate Authority, 1 year,
  digitalSignature + keyCertSign, basicConstraints CA=TRUE
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Flag, auto

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from tmppki.errors import UnrecoverablePKIError

logger = logging.getLogger(__name__)

DEFAULT_COMMON_NAME = "Temporary PKI Certificate"
DEFAULT_CA_COMMON_NAME = "Temporary PKI Certificate Authority"

# Serials are drawn from [1, 2^130 - 1)
SERIAL_NUMBER_LIMIT = 2**130 - 1


class KeyUsage(Flag):
    """X.509 key usage bits."""

    NONE = 0
    DIGITAL_SIGNATURE = auto()
    CONTENT_COMMITMENT = auto()
    KEY_ENCIPHERMENT = auto()
    DATA_ENCIPHERMENT = auto()
    KEY_AGREEMENT = auto()
    KEY_CERT_SIGN = auto()
    CRL_SIGN = auto()

    def to_extension(self) -> x509.KeyUsage:
        return x509.KeyUsage(
            digital_signature=KeyUsage.DIGITAL_SIGNATURE in self,
            content_commitment=KeyUsage.CONTENT_COMMITMENT in self,
            key_encipherment=KeyUsage.KEY_ENCIPHERMENT in self,
            data_encipherment=KeyUsage.DATA_ENCIPHERMENT in self,
            key_agreement=KeyUsage.KEY_AGREEMENT in self,
            key_cert_sign=KeyUsage.KEY_CERT_SIGN in self,
            crl_sign=KeyUsage.CRL_SIGN in self,
            encipher_only=False,
            decipher_only=False,
        )


@dataclass
class CertificateTemplate:
    """Signing template for a certificate."""

    subject: x509.Name
    serial_number: int
    not_before: datetime
    not_after: datetime
    key_usage: KeyUsage = KeyUsage.DIGITAL_SIGNATURE
    extended_key_usage: list[x509.ObjectIdentifier] = field(default_factory=list)
    is_ca: bool = False
    basic_constraints_valid: bool = False
    subject_alt_names: list[x509.GeneralName] = field(default_factory=list)

    def extensions(self) -> list[tuple[x509.ExtensionType, bool]]:
        """Extensions to add to the certificate, as (extension, critical) pairs."""
        extensions: list[tuple[x509.ExtensionType, bool]] = []

        if self.basic_constraints_valid:
            extensions.append((x509.BasicConstraints(ca=self.is_ca, path_length=None), True))

        if self.key_usage != KeyUsage.NONE:
            extensions.append((self.key_usage.to_extension(), True))

        if self.extended_key_usage:
            extensions.append((x509.ExtendedKeyUsage(self.extended_key_usage), False))

        if self.subject_alt_names:
            extensions.append((x509.SubjectAlternativeName(self.subject_alt_names), False))

        return extensions


def random_serial_number() -> int:
    """Draw a uniformly random serial number from the OS entropy source.

    Raises:
        UnrecoverablePKIError: If the entropy source fails.
    """
    try:
        return secrets.randbelow(SERIAL_NUMBER_LIMIT - 1) + 1
    except OSError as e:
        logger.critical("entropy_source_failed", extra={"error": str(e)})
        raise UnrecoverablePKIError(f"Random source failed: {e}") from e


def common_name(value: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, value)])


def _one_year_after(when: datetime) -> datetime:
    try:
        return when.replace(year=when.year + 1)
    except ValueError:
        # Feb 29
        return when.replace(year=when.year + 1, day=28)


def default_cert_template() -> CertificateTemplate:
    now = datetime.now(timezone.utc)
    return CertificateTemplate(
        subject=common_name(DEFAULT_COMMON_NAME),
        serial_number=random_serial_number(),
        not_before=now,
        not_after=_one_year_after(now),
        key_usage=KeyUsage.DIGITAL_SIGNATURE,
        extended_key_usage=[
            ExtendedKeyUsageOID.SERVER_AUTH,
            ExtendedKeyUsageOID.CLIENT_AUTH,
        ],
    )


def default_ca_template() -> CertificateTemplate:
    template = default_cert_template()
    template.subject = common_name(DEFAULT_CA_COMMON_NAME)
    template.is_ca = True
    template.key_usage = KeyUsage.DIGITAL_SIGNATURE | KeyUsage.KEY_CERT_SIGN
    template.basic_constraints_valid = True
    return template
