"""Exception taxonomy for temporary PKI generation.

- Configuration errors: bad algorithm or strength, never retried
- Generation errors: the underlying primitive failed
- Consistency errors: a key is in a state the constructors cannot produce
- I/O errors: writing or removing bundle files failed
"""


class TmpPKIError(Exception):
    """Base class for all temporary PKI errors."""

    pass


class UnrecognizedAlgorithmError(TmpPKIError):
    """Raised for an algorithm identifier outside the supported set."""

    def __init__(self, algorithm: object):
        self.algorithm = algorithm
        super().__init__(f"Unrecognized key algorithm: {algorithm!r}")


class StrengthRequiredError(TmpPKIError):
    """Raised when an algorithm needs a security strength and none was given."""

    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__(f"Security strength must be given for {algorithm}")


class StrengthUnsupportedError(TmpPKIError):
    """Raised when a security strength has no entry in the algorithm's table."""

    def __init__(self, algorithm: str, strength: object):
        self.algorithm = algorithm
        self.strength = strength
        super().__init__(f"Security strength {strength} not available for {algorithm}")


class KeyConsistencyError(TmpPKIError):
    """Raised when a generated key pair does not agree with itself."""

    pass


class AlgorithmMismatchError(KeyConsistencyError):
    """Raised when a key handle's type does not match its algorithm tag."""

    def __init__(self, algorithm: str, handle: object):
        self.algorithm = algorithm
        super().__init__(
            f"Key tagged {algorithm} holds a {type(handle).__name__} handle"
        )


class CertificateCreationError(TmpPKIError):
    """Raised when building or signing a certificate fails."""

    pass


class MaterializationError(TmpPKIError):
    """Raised when a bundle artifact cannot be written to disk."""

    def __init__(self, path: str, error: OSError):
        self.path = path
        self.error = error
        super().__init__(f"Failed to write {path}: {error}")


class CleanupError(TmpPKIError):
    """Raised when one or more bundle files could not be removed.

    Every written file is attempted; all failures are collected here.
    """

    def __init__(self, failures: list[tuple[str, OSError]]):
        self.failures = failures
        paths = ", ".join(path for path, _ in failures)
        super().__init__(f"Failed to remove {len(failures)} file(s): {paths}")


class UnrecoverablePKIError(RuntimeError):
    """Raised where continuing is unsafe (no entropy, bootstrap key failure).

    Not a TmpPKIError subclass: callers are not expected to handle it.
    """

    pass
