"""Unit tests for algorithms, strength tables and keys."""

import io
from unittest.mock import MagicMock, patch

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from tmppki.errors import (
    AlgorithmMismatchError,
    KeyConsistencyError,
    StrengthRequiredError,
    StrengthUnsupportedError,
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
    _embedded_public_key,
)
from tmppki.pem import decode_pem


def public_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="module")
def keys() -> dict[Algorithm, Key]:
    """One key per family, shared across the module."""
    return {
        Algorithm.ECDSA: Algorithm.ECDSA.generate_key(SecurityStrength.S128),
        Algorithm.ED25519: Algorithm.ED25519.generate_key(),
        Algorithm.RSA: Algorithm.RSA.generate_key(SecurityStrength.S112),
    }


class TestStrengthTables:
    """Tests for the strength → curve / modulus tables."""

    def test_elliptic_strengths(self):
        assert ELLIPTIC_STRENGTHS == {
            SecurityStrength.S112: ec.SECP224R1,
            SecurityStrength.S128: ec.SECP256R1,
            SecurityStrength.S192: ec.SECP384R1,
        }

    def test_rsa_strengths(self):
        assert RSA_STRENGTHS == {
            SecurityStrength.S112: 2048,
            SecurityStrength.S128: 3072,
            SecurityStrength.S160: 4096,
            SecurityStrength.S192: 7680,
            SecurityStrength.S256: 15360,
        }

    def test_pem_headers(self):
        assert ALGORITHM_PEM_HEADERS == {
            Algorithm.ECDSA: "EC PRIVATE KEY",
            Algorithm.ED25519: "OPENSSH PRIVATE KEY",
            Algorithm.RSA: "RSA PRIVATE KEY",
        }
        assert Algorithm.RSA.header == "RSA PRIVATE KEY"


class TestAlgorithm:
    """Tests for Algorithm parsing and key generation."""

    @pytest.mark.parametrize(
        "name,expected",
        [("ecdsa", Algorithm.ECDSA), ("Ed25519", Algorithm.ED25519), ("RSA", Algorithm.RSA)],
    )
    def test_parse_is_case_insensitive(self, name, expected):
        assert Algorithm.parse(name) is expected

    @pytest.mark.parametrize("name", ["dsa", "", "x25519"])
    def test_parse_unknown_raises(self, name):
        with pytest.raises(UnrecognizedAlgorithmError):
            Algorithm.parse(name)

    @pytest.mark.parametrize("algorithm", [Algorithm.ECDSA, Algorithm.RSA])
    def test_strength_required(self, algorithm):
        with pytest.raises(StrengthRequiredError):
            algorithm.generate_key()

    @pytest.mark.parametrize(
        "algorithm,strength",
        [
            (Algorithm.ECDSA, SecurityStrength.S160),
            (Algorithm.ECDSA, SecurityStrength.S256),
            (Algorithm.ECDSA, 100),
            (Algorithm.RSA, 80),
            (Algorithm.RSA, 512),
        ],
    )
    def test_strength_unsupported(self, algorithm, strength):
        with pytest.raises(StrengthUnsupportedError) as exc_info:
            algorithm.generate_key(strength)
        assert exc_info.value.strength == strength

    @pytest.mark.parametrize("strength", [None, 112, 160, 999])
    def test_ed25519_ignores_strength(self, strength):
        key = Algorithm.ED25519.generate_key(strength)
        assert isinstance(key.private(), ed25519.Ed25519PrivateKey)

    @pytest.mark.parametrize(
        "strength,curve",
        [(s, c) for s, c in ELLIPTIC_STRENGTHS.items()],
    )
    def test_generate_ecdsa_every_strength(self, strength, curve):
        key = Algorithm.ECDSA.generate_key(strength)
        assert key.algorithm is Algorithm.ECDSA
        assert isinstance(key.private().curve, curve)

    @pytest.mark.parametrize(
        "strength", [SecurityStrength.S112, SecurityStrength.S128, SecurityStrength.S160]
    )
    def test_generate_rsa(self, strength):
        key = Algorithm.RSA.generate_key(strength)
        assert key.private().key_size == RSA_STRENGTHS[strength]
        assert key.private().public_key().public_numbers().e == 65537

    @pytest.mark.slow
    @pytest.mark.parametrize("strength", [SecurityStrength.S192, SecurityStrength.S256])
    def test_generate_rsa_large(self, strength):
        key = Algorithm.RSA.generate_key(strength)
        assert key.private().key_size == RSA_STRENGTHS[strength]

    def test_plain_int_strength_accepted(self):
        key = Algorithm.ECDSA.generate_key(192)
        assert isinstance(key.private().curve, ec.SECP384R1)

    def test_ed25519_embedded_public_key_matches(self):
        """The public half stored in the OpenSSH encoding is the derived key."""
        private_key = ed25519.Ed25519PrivateKey.generate()

        embedded = _embedded_public_key(private_key)

        assert public_der(embedded) == public_der(private_key.public_key())

    def test_ed25519_public_key_mismatch_raises(self):
        """A key whose stored public half disagrees with the derived one is rejected."""
        other = ed25519.Ed25519PrivateKey.generate().public_key()

        with patch("tmppki.keys._embedded_public_key", return_value=other):
            with pytest.raises(KeyConsistencyError):
                Algorithm.ED25519.generate_key()

    def test_ed25519_missing_openssh_header_raises(self):
        with patch(
            "tmppki.keys.decode_pem",
            return_value=("OPENSSH PRIVATE KEY", b"not-an-openssh-key"),
        ):
            with pytest.raises(KeyConsistencyError, match="OpenSSH"):
                Algorithm.ED25519.generate_key()

    def test_generate_records_metrics(self):
        with patch("tmppki.keys.pki_metrics") as mock_metrics:
            Algorithm.ED25519.generate_key()

        mock_metrics.record_key_generated.assert_called_once()
        assert mock_metrics.record_key_generated.call_args.args[0] == "ed25519"

    def test_must_generate_key_returns_key(self):
        key = Algorithm.ECDSA.must_generate_key(SecurityStrength.S112)
        assert key.algorithm is Algorithm.ECDSA

    def test_must_generate_key_aborts(self):
        with pytest.raises(UnrecoverablePKIError) as exc_info:
            Algorithm.RSA.must_generate_key()
        assert isinstance(exc_info.value.__cause__, StrengthRequiredError)


class TestKey:
    """Tests for Key encoding and derivation."""

    @pytest.mark.parametrize("algorithm", list(Algorithm))
    def test_public_is_deterministic(self, keys, algorithm):
        key = keys[algorithm]
        assert public_der(key.public()) == public_der(key.public())

    def test_ecdsa_der_is_sec1(self, keys):
        der = keys[Algorithm.ECDSA].marshal_der()
        loaded = serialization.load_der_private_key(der, password=None)
        assert isinstance(loaded, ec.EllipticCurvePrivateKey)
        # SEC1 ECPrivateKey starts with version INTEGER 1, PKCS#8 with 0
        assert der[2:5] == b"\x02\x01\x01"

    def test_rsa_der_is_pkcs1(self, keys):
        der = keys[Algorithm.RSA].marshal_der()
        expected = keys[Algorithm.RSA].private().private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
        assert der == expected

    def test_ed25519_der_is_pkcs8(self, keys):
        der = keys[Algorithm.ED25519].marshal_der()
        expected = keys[Algorithm.ED25519].private().private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        assert der == expected

    @pytest.mark.parametrize("algorithm", list(Algorithm))
    def test_pem_round_trip_preserves_public_key(self, keys, algorithm):
        key = keys[algorithm]

        label, der = decode_pem(key.marshal_pem())
        loaded = serialization.load_der_private_key(der, password=None)

        assert label == algorithm.header
        assert public_der(loaded.public_key()) == public_der(key.public())

    def test_algorithm_handle_mismatch_raises(self, keys):
        forged = Key(algorithm=Algorithm.RSA, private_key=keys[Algorithm.ECDSA].private())

        with pytest.raises(AlgorithmMismatchError):
            forged.marshal_der()
        with pytest.raises(AlgorithmMismatchError):
            forged.public()

    def test_signature_hash(self, keys):
        assert keys[Algorithm.ED25519].signature_hash() is None
        assert keys[Algorithm.RSA].signature_hash().name == "sha256"
        assert keys[Algorithm.ECDSA].signature_hash().name == "sha256"

    def test_encode_pem_writes_and_closes(self, keys):
        class Sink(io.BytesIO):
            def close(self):
                self.written = self.getvalue()
                super().close()

        sink = Sink()
        keys[Algorithm.ECDSA].encode_pem(sink)

        assert sink.closed
        assert sink.written == keys[Algorithm.ECDSA].marshal_pem()

    def test_encode_pem_closes_sink_on_failure(self, keys):
        sink = MagicMock()
        sink.write.side_effect = OSError("disk full")

        with pytest.raises(OSError, match="disk full"):
            keys[Algorithm.RSA].encode_pem(sink)

        sink.close.assert_called_once()

    def test_certificate_requires_issuer_pair(self, keys):
        with pytest.raises(ValueError, match="together"):
            keys[Algorithm.ECDSA].certificate(issuer_key=keys[Algorithm.RSA])

    def test_key_is_rsa_private_key(self, keys):
        assert isinstance(keys[Algorithm.RSA].private(), rsa.RSAPrivateKey)
