"""Temporary PKI bundles: keys and certificates materialized on disk.

A TemporaryPKI generates its keys eagerly and issues its certificates
lazily. generate_pki() writes the artifacts and returns a cleanup callback
that removes exactly the files that were written.

Paths are either fixed (created or truncated in place) or, when the bundle
is temporary, a directory plus filename pattern handed to tempfile. In
temporary mode the last "*" in the pattern is replaced by a random string
(a pattern without "*" gets the random string appended), and the resolved
name is stored back on the bundle.
"""

import logging
import os
import tempfile
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import BinaryIO, Protocol

from opentelemetry import trace

from shared.config import settings
from tmppki.certificates import Certificate
from tmppki.errors import CleanupError, MaterializationError, TmpPKIError
from tmppki.keys import Algorithm, Key, SecurityStrength
from tmppki.lifecycle import InvalidTransitionError, PKIEvent, PKILifecycle, PKIState
from tmppki.metrics import pki_metrics
from tmppki.serving import TLSServer
from tmppki.templates import CertificateTemplate, default_ca_template

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Artifact names, in write order
CA_CERT = "ca_cert"
CA_KEY = "ca_key"
KEY = "key"
CERT = "cert"

SECRET_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644


class _PEMWriter(Protocol):
    def encode_pem(self, sink: BinaryIO) -> None: ...


def split_path(path: str) -> tuple[str, str]:
    """Split a path into (directory, pattern) on the last "/".

    An empty directory means the system temp directory.
    """
    directory, _, pattern = path.rpartition("/")
    return directory, pattern


def _pattern_affixes(pattern: str) -> tuple[str, str]:
    if "*" in pattern:
        prefix, _, suffix = pattern.rpartition("*")
        return prefix, suffix
    return pattern, ""


class TemporaryPKI:
    """A leaf key and certificate, optionally signed by a temporary CA.

    The CA, when present, always uses an RSA key at strength 160.
    """

    CA_ALGORITHM = Algorithm.RSA
    CA_STRENGTH = SecurityStrength.S160

    def __init__(
        self,
        algorithm: Algorithm,
        strength: int | None = None,
        template: CertificateTemplate | None = None,
        *,
        with_ca: bool = False,
        temporary: bool = False,
    ) -> None:
        self._id = uuid.uuid4().hex[:12]
        self._lifecycle = PKILifecycle(self._id)
        self._temporary = temporary
        self._ready = False
        self._cleanup: Callable[[], None] | None = None

        self._ca_key: Key | None = None
        self._ca_certificate: Certificate | None = None

        with tracer.start_as_current_span("TemporaryPKI.generate_keys") as span:
            span.set_attribute("algorithm", str(algorithm))
            span.set_attribute("with_ca", with_ca)

            self._key = algorithm.generate_key(strength)

            if with_ca:
                ca_template = default_ca_template()
                self._ca_key = self.CA_ALGORITHM.generate_key(self.CA_STRENGTH)
                self._ca_certificate = self._ca_key.certificate(ca_template)
                self._certificate = self._key.certificate(template, ca_template, self._ca_key)
            else:
                self._certificate = self._key.certificate(template)

        self._paths: dict[str, str | None] = {
            CA_CERT: settings.TMPPKI_CA_CERT_PATH if with_ca else None,
            CA_KEY: settings.TMPPKI_CA_KEY_PATH if with_ca else None,
            KEY: settings.TMPPKI_KEY_PATH,
            CERT: settings.TMPPKI_CERT_PATH,
        }

        self._lifecycle.transition(PKIEvent.KEYS_GENERATED)

        logger.info(
            "temporary_pki_created",
            extra={
                "bundle_id": self._id,
                "algorithm": str(algorithm),
                "with_ca": with_ca,
                "temporary": temporary,
            },
        )

    # -- accessors ---------------------------------------------------------

    @property
    def key(self) -> Key:
        return self._key

    @property
    def certificate(self) -> Certificate:
        return self._certificate

    @property
    def ca_key(self) -> Key | None:
        return self._ca_key

    @property
    def ca_certificate(self) -> Certificate | None:
        return self._ca_certificate

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def state(self) -> PKIState:
        return self._lifecycle.state

    @property
    def temporary(self) -> bool:
        return self._temporary

    @property
    def key_path(self) -> str:
        return self._paths[KEY] or ""

    @key_path.setter
    def key_path(self, path: str) -> None:
        self._set_path(KEY, path)

    @property
    def cert_path(self) -> str:
        return self._paths[CERT] or ""

    @cert_path.setter
    def cert_path(self, path: str) -> None:
        self._set_path(CERT, path)

    @property
    def ca_key_path(self) -> str | None:
        return self._paths[CA_KEY]

    @ca_key_path.setter
    def ca_key_path(self, path: str | None) -> None:
        self._set_path(CA_KEY, path)

    @property
    def ca_cert_path(self) -> str | None:
        return self._paths[CA_CERT]

    @ca_cert_path.setter
    def ca_cert_path(self, path: str | None) -> None:
        self._set_path(CA_CERT, path)

    def _set_path(self, artifact: str, path: str | None) -> None:
        if self._lifecycle.state is not PKIState.KEYS_GENERATED:
            raise TmpPKIError(
                f"Cannot change {artifact} path in state {self._lifecycle.state.value}"
            )
        self._paths[artifact] = path

    # -- materialization ---------------------------------------------------

    def generate_pki(self) -> Callable[[], None]:
        """Write every configured artifact and return the cleanup callback.

        Order: CA certificate, CA key, leaf key, leaf certificate. The first
        failure aborts; files written before it are left in place.

        Raises:
            InvalidTransitionError: If the bundle was already materialized.
            MaterializationError: If a file cannot be created or written.
            CertificateCreationError: If a certificate cannot be issued.
        """
        if not self._lifecycle.can_transition(PKIEvent.FILES_WRITTEN):
            raise InvalidTransitionError(
                self._id, self._lifecycle.state.value, PKIEvent.FILES_WRITTEN.value
            )

        with tracer.start_as_current_span("TemporaryPKI.generate_pki") as span:
            span.set_attribute("bundle_id", self._id)
            span.set_attribute("temporary", self._temporary)

            written: list[tuple[str, str]] = []
            for artifact, writer, secret in self._artifacts():
                path = self._paths[artifact]
                if not path:
                    continue
                resolved = self._write(artifact, path, writer, secret)
                written.append((artifact, resolved))

            def cleanup() -> None:
                self._remove(written)

            self._cleanup = cleanup
            self._ready = True
            self._lifecycle.transition(PKIEvent.FILES_WRITTEN)

            logger.info(
                "temporary_pki_materialized",
                extra={"bundle_id": self._id, "paths": [path for _, path in written]},
            )

            return cleanup

    @contextmanager
    def materialized(self) -> Iterator["TemporaryPKI"]:
        """Materialize for the duration of a with-block, then clean up."""
        cleanup = self.generate_pki()
        try:
            yield self
        finally:
            cleanup()

    def listen_and_serve_tls(self, server: TLSServer):
        """Serve TLS from this bundle, removing its files when serving stops.

        Materializes first if needed. Cleanup runs however the serve call
        ends; an exception from serving takes precedence over one from
        cleanup, which is then only logged.
        """
        cleanup = self._cleanup if self._ready else self.generate_pki()
        if cleanup is None:
            raise TmpPKIError(f"Bundle {self._id} is ready but has no cleanup callback")

        logger.info(
            "temporary_pki_serving",
            extra={
                "bundle_id": self._id,
                "cert_path": self.cert_path,
                "key_path": self.key_path,
            },
        )

        try:
            result = server.serve_tls(self.cert_path, self.key_path)
        except BaseException:
            try:
                cleanup()
            except CleanupError as e:
                logger.error(
                    "temporary_pki_cleanup_failed",
                    extra={"bundle_id": self._id, "error": str(e)},
                )
            raise

        cleanup()
        return result

    def _artifacts(self) -> list[tuple[str, _PEMWriter, bool]]:
        artifacts: list[tuple[str, _PEMWriter, bool]] = []
        if self._ca_certificate is not None and self._ca_key is not None:
            artifacts.append((CA_CERT, self._ca_certificate, False))
            artifacts.append((CA_KEY, self._ca_key, True))
        artifacts.append((KEY, self._key, True))
        artifacts.append((CERT, self._certificate, False))
        return artifacts

    def _write(self, artifact: str, path: str, writer: _PEMWriter, secret: bool) -> str:
        try:
            resolved, sink = self._open(path, secret)
        except OSError as e:
            logger.error(
                "artifact_write_failed",
                extra={"bundle_id": self._id, "artifact": artifact, "path": path},
            )
            raise MaterializationError(path, e) from e

        self._paths[artifact] = resolved

        try:
            writer.encode_pem(sink)
        except OSError as e:
            logger.error(
                "artifact_write_failed",
                extra={"bundle_id": self._id, "artifact": artifact, "path": resolved},
            )
            raise MaterializationError(resolved, e) from e

        pki_metrics.record_file_written(artifact)
        logger.debug(
            "artifact_written",
            extra={"bundle_id": self._id, "artifact": artifact, "path": resolved},
        )
        return resolved

    def _open(self, path: str, secret: bool) -> tuple[str, BinaryIO]:
        if self._temporary:
            directory, pattern = split_path(path)
            prefix, suffix = _pattern_affixes(pattern)
            fd, resolved = tempfile.mkstemp(suffix=suffix, prefix=prefix, dir=directory or None)
        else:
            mode = SECRET_FILE_MODE if secret else PUBLIC_FILE_MODE
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            # os.open only applies mode to files it creates
            try:
                os.fchmod(fd, mode)
            except OSError:
                os.close(fd)
                raise
            resolved = path
        return resolved, os.fdopen(fd, "wb")

    def _remove(self, written: list[tuple[str, str]]) -> None:
        with tracer.start_as_current_span("TemporaryPKI.cleanup") as span:
            span.set_attribute("bundle_id", self._id)

            failures: list[tuple[str, OSError]] = []
            for artifact, path in written:
                try:
                    os.remove(path)
                except OSError as e:
                    failures.append((path, e))
                    pki_metrics.record_cleanup_failure(artifact)
                    logger.warning(
                        "artifact_remove_failed",
                        extra={"bundle_id": self._id, "path": path, "error": str(e)},
                    )
                    continue
                pki_metrics.record_file_removed(artifact)

            if failures:
                span.set_attribute("failures", len(failures))
                raise CleanupError(failures)

            if self._lifecycle.state is PKIState.MATERIALIZED:
                self._ready = False
                self._lifecycle.transition(PKIEvent.FILES_REMOVED)

            logger.info(
                "temporary_pki_cleaned",
                extra={"bundle_id": self._id, "removed": len(written)},
            )
