"""Key algorithms, security strengths and private keys.

Each algorithm family maps an abstract security strength to a concrete
curve or modulus size:

    strength  ECDSA   RSA
    112       P-224   2048
    128       P-256   3072
    160       -       4096
    192       P-384   7680
    256       -       15360

Ed25519 has exactly one key size and ignores the strength argument.
"""

import base64
import logging
import struct
import time
from contextlib import closing
from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import BinaryIO

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)
from opentelemetry import trace

from tmppki.certificates import CASigned, Certificate, SelfSigned
from tmppki.errors import (
    AlgorithmMismatchError,
    KeyConsistencyError,
    StrengthRequiredError,
    StrengthUnsupportedError,
    TmpPKIError,
    UnrecognizedAlgorithmError,
    UnrecoverablePKIError,
)
from tmppki.metrics import pki_metrics
from tmppki.pem import decode_pem, encode_pem
from tmppki.templates import CertificateTemplate, default_cert_template

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RSA_PUBLIC_EXPONENT = 65537


class SecurityStrength(IntEnum):
    """Security strength in bits of equivalent symmetric resistance."""

    S112 = 112
    S128 = 128
    S160 = 160
    S192 = 192
    S256 = 256


ELLIPTIC_STRENGTHS: dict[SecurityStrength, type[ec.EllipticCurve]] = {
    SecurityStrength.S112: ec.SECP224R1,
    SecurityStrength.S128: ec.SECP256R1,
    SecurityStrength.S192: ec.SECP384R1,
}

RSA_STRENGTHS: dict[SecurityStrength, int] = {
    SecurityStrength.S112: 2048,
    SecurityStrength.S128: 3072,
    SecurityStrength.S160: 4096,
    SecurityStrength.S192: 7680,
    SecurityStrength.S256: 15360,
}


class Algorithm(StrEnum):
    """Supported key families."""

    ECDSA = "ecdsa"
    ED25519 = "ed25519"
    RSA = "rsa"

    @classmethod
    def parse(cls, name: str) -> "Algorithm":
        """Look up an algorithm by case-insensitive name.

        Raises:
            UnrecognizedAlgorithmError: If the name is not a supported family.
        """
        try:
            return cls(name.lower())
        except (ValueError, AttributeError) as e:
            raise UnrecognizedAlgorithmError(name) from e

    @property
    def header(self) -> str:
        """PEM label used for this family's private keys."""
        return ALGORITHM_PEM_HEADERS[self]

    def generate_key(self, strength: int | None = None) -> "Key":
        """Generate a new private key of this family.

        Args:
            strength: Security strength; required for ECDSA and RSA,
                ignored for Ed25519.

        Returns:
            The generated Key.

        Raises:
            StrengthRequiredError: ECDSA/RSA called without a strength.
            StrengthUnsupportedError: Strength not in the family's table.
            KeyConsistencyError: Ed25519 public key derivation disagrees.
        """
        with tracer.start_as_current_span("Algorithm.generate_key") as span:
            span.set_attribute("algorithm", self.value)
            if strength is not None:
                span.set_attribute("strength", int(strength))

            start_time = time.time()

            if self is Algorithm.ECDSA:
                curve = _lookup(ELLIPTIC_STRENGTHS, self, strength)
                private_key: PrivateKeyTypes = ec.generate_private_key(curve())
            elif self is Algorithm.ED25519:
                private_key = _generate_ed25519()
            elif self is Algorithm.RSA:
                bits = _lookup(RSA_STRENGTHS, self, strength)
                private_key = rsa.generate_private_key(
                    public_exponent=RSA_PUBLIC_EXPONENT,
                    key_size=bits,
                )
            else:
                raise UnrecognizedAlgorithmError(self)

            duration = time.time() - start_time
            pki_metrics.record_key_generated(self.value, duration)

            logger.debug(
                "key_generated",
                extra={
                    "algorithm": self.value,
                    "strength": None if strength is None else int(strength),
                    "duration_seconds": duration,
                },
            )

            return Key(algorithm=self, private_key=private_key)

    def must_generate_key(self, strength: int | None = None) -> "Key":
        """Like generate_key, for call sites that cannot continue without a key.

        Raises:
            UnrecoverablePKIError: Wrapping whatever generate_key raised.
        """
        try:
            return self.generate_key(strength)
        except TmpPKIError as e:
            logger.critical(
                "key_generation_aborted",
                extra={"algorithm": self.value, "error": str(e)},
            )
            raise UnrecoverablePKIError(f"Key generation failed: {e}") from e


ALGORITHM_PEM_HEADERS: dict[Algorithm, str] = {
    Algorithm.ECDSA: "EC PRIVATE KEY",
    Algorithm.ED25519: "OPENSSH PRIVATE KEY",
    Algorithm.RSA: "RSA PRIVATE KEY",
}

_HANDLE_TYPES: dict[Algorithm, type] = {
    Algorithm.ECDSA: ec.EllipticCurvePrivateKey,
    Algorithm.ED25519: ed25519.Ed25519PrivateKey,
    Algorithm.RSA: rsa.RSAPrivateKey,
}

# SEC1 for ECDSA, PKCS#8 for Ed25519, PKCS#1 for RSA
_PRIVATE_FORMATS: dict[Algorithm, serialization.PrivateFormat] = {
    Algorithm.ECDSA: serialization.PrivateFormat.TraditionalOpenSSL,
    Algorithm.ED25519: serialization.PrivateFormat.PKCS8,
    Algorithm.RSA: serialization.PrivateFormat.TraditionalOpenSSL,
}

_OPENSSH_MAGIC = b"openssh-key-v1\x00"


def _lookup(table: dict, algorithm: Algorithm, strength: int | None):
    if strength is None:
        raise StrengthRequiredError(algorithm.value)
    try:
        return table[SecurityStrength(strength)]
    except (ValueError, KeyError) as e:
        raise StrengthUnsupportedError(algorithm.value, strength) from e


def _generate_ed25519() -> ed25519.Ed25519PrivateKey:
    private_key = ed25519.Ed25519PrivateKey.generate()

    derived = private_key.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    embedded = _embedded_public_key(private_key).public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    if derived != embedded:
        raise KeyConsistencyError("Ed25519 public keys don't match")

    return private_key


def _ssh_string(data: bytes, offset: int) -> tuple[bytes, int]:
    (length,) = struct.unpack_from(">I", data, offset)
    start = offset + 4
    return data[start : start + length], start + length


def _embedded_public_key(private_key: ed25519.Ed25519PrivateKey) -> PublicKeyTypes:
    """Public key stored alongside the seed in the OpenSSH private key encoding.

    Layout: magic, cipher name, KDF name, KDF options, key count, then the
    public key blob of the first key.
    """
    _, body = decode_pem(
        private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        )
    )
    if not body.startswith(_OPENSSH_MAGIC):
        raise KeyConsistencyError("Ed25519 key has no OpenSSH key header")

    offset = len(_OPENSSH_MAGIC)
    for _ in range(3):
        _, offset = _ssh_string(body, offset)
    blob, _ = _ssh_string(body, offset + 4)

    return serialization.load_ssh_public_key(b"ssh-ed25519 " + base64.b64encode(blob))


@dataclass(frozen=True)
class Key:
    """A private key tagged with its algorithm family."""

    algorithm: Algorithm
    private_key: PrivateKeyTypes

    def private(self) -> PrivateKeyTypes:
        return self._handle()

    def public(self) -> PublicKeyTypes:
        return self._handle().public_key()

    def signature_hash(self) -> hashes.HashAlgorithm | None:
        """Digest used when this key signs a certificate (None for Ed25519)."""
        self._handle()
        if self.algorithm is Algorithm.ED25519:
            return None
        return hashes.SHA256()

    def marshal_der(self) -> bytes:
        """Encode the private key in the family's DER format."""
        return self._handle().private_bytes(
            encoding=serialization.Encoding.DER,
            format=_PRIVATE_FORMATS[self.algorithm],
            encryption_algorithm=serialization.NoEncryption(),
        )

    def marshal_pem(self) -> bytes:
        return encode_pem(self.algorithm.header, self.marshal_der())

    def encode_pem(self, sink: BinaryIO) -> None:
        """Write the PEM encoding to sink and close it, even on failure."""
        with closing(sink):
            sink.write(self.marshal_pem())

    def certificate(
        self,
        template: CertificateTemplate | None = None,
        issuer_template: CertificateTemplate | None = None,
        issuer_key: "Key | None" = None,
    ) -> Certificate:
        """Bind a deferred certificate to this key.

        Without an issuer the certificate is self-signed. With an issuer
        template and key it is signed by the issuer.

        Raises:
            ValueError: If only one of issuer_template/issuer_key is given.
        """
        if template is None:
            template = default_cert_template()

        if (issuer_template is None) != (issuer_key is None):
            raise ValueError("issuer_template and issuer_key must be given together")

        if issuer_template is None:
            return Certificate(self, SelfSigned(template))
        return Certificate(self, CASigned(template, issuer_template, issuer_key))

    def _handle(self) -> PrivateKeyTypes:
        expected = _HANDLE_TYPES.get(self.algorithm)
        if expected is None:
            raise UnrecognizedAlgorithmError(self.algorithm)
        if not isinstance(self.private_key, expected):
            raise AlgorithmMismatchError(str(self.algorithm), self.private_key)
        return self.private_key
