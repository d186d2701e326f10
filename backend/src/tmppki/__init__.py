"""Temporary PKI: short-lived keys and certificates for TLS.

This package provides:
- Key generation for ECDSA, Ed25519 and RSA at a chosen security strength
- Lazily issued self-signed or CA-signed X.509 certificates
- TemporaryPKI bundles written to disk and removed after use
- A uvicorn-backed TLS server driven by a bundle
"""

from tmppki.bundle import TemporaryPKI, split_path
from tmppki.certificates import CERTIFICATE_PEM_HEADER, CASigned, Certificate, SelfSigned
from tmppki.errors import (
    AlgorithmMismatchError,
    CertificateCreationError,
    CleanupError,
    KeyConsistencyError,
    MaterializationError,
    StrengthRequiredError,
    StrengthUnsupportedError,
    TmpPKIError,
    UnrecognizedAlgorithmError,
    UnrecoverablePKIError,
)
from tmppki.keys import (
    ALGORITHM_PEM_HEADERS,
    ELLIPTIC_STRENGTHS,
    RSA_STRENGTHS,
    Algorithm,
    Key,
    SecurityStrength,
)
from tmppki.lifecycle import InvalidTransitionError, PKIState
from tmppki.serving import ServeResult, TLSServeError, TLSServer, UvicornTLSServer
from tmppki.templates import (
    CertificateTemplate,
    KeyUsage,
    default_ca_template,
    default_cert_template,
)

__all__ = [
    "ALGORITHM_PEM_HEADERS",
    "CERTIFICATE_PEM_HEADER",
    "ELLIPTIC_STRENGTHS",
    "RSA_STRENGTHS",
    "Algorithm",
    "AlgorithmMismatchError",
    "CASigned",
    "Certificate",
    "CertificateCreationError",
    "CertificateTemplate",
    "CleanupError",
    "InvalidTransitionError",
    "Key",
    "KeyConsistencyError",
    "KeyUsage",
    "MaterializationError",
    "PKIState",
    "SecurityStrength",
    "SelfSigned",
    "ServeResult",
    "StrengthRequiredError",
    "StrengthUnsupportedError",
    "TLSServeError",
    "TLSServer",
    "TemporaryPKI",
    "TmpPKIError",
    "UnrecognizedAlgorithmError",
    "UnrecoverablePKIError",
    "UvicornTLSServer",
    "default_ca_template",
    "default_cert_template",
    "split_path",
]
