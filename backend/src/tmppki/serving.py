"""TLS servers that can be driven by a TemporaryPKI.

A TemporaryPKI only needs something that serves TLS from a certificate file
and a key file and blocks until it stops. UvicornTLSServer does that for any
ASGI application.
"""

import logging
import threading
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import uvicorn

from tmppki.errors import TmpPKIError

logger = logging.getLogger(__name__)


class ServeResult(StrEnum):
    CLOSED = "closed"


class TLSServeError(TmpPKIError):
    """Raised when the server could not start or exited abnormally."""

    pass


@runtime_checkable
class TLSServer(Protocol):
    def serve_tls(self, certfile: str, keyfile: str) -> Any:
        """Serve TLS with the given files, blocking until shutdown or error."""
        ...


class _NotifyingServer(uvicorn.Server):
    def __init__(self, config: uvicorn.Config, started: threading.Event) -> None:
        super().__init__(config)
        self._started_event = started

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self._started_event.set()


class UvicornTLSServer:
    """Serve an ASGI app over TLS with uvicorn.

    serve_tls() blocks the calling thread. shutdown() may be called from any
    other thread; serve_tls() then returns ServeResult.CLOSED.
    The same instance may serve again once serve_tls() has returned.
    """

    def __init__(
        self,
        app: Any,
        host: str = "127.0.0.1",
        port: int = 8443,
        log_level: str = "warning",
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.log_level = log_level
        self._server: uvicorn.Server | None = None
        self._started = threading.Event()
        self._shutdown_requested = threading.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wait_started(self, timeout: float | None = None) -> bool:
        """Block until the server is accepting connections."""
        return self._started.wait(timeout)

    def serve_tls(self, certfile: str, keyfile: str) -> ServeResult:
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            ssl_certfile=certfile,
            ssl_keyfile=keyfile,
            log_level=self.log_level,
        )
        server = _NotifyingServer(config, self._started)
        self._server = server
        self._closed = False
        if self._shutdown_requested.is_set():
            server.should_exit = True

        logger.info(
            "tls_server_starting",
            extra={"host": self.host, "port": self.port, "certfile": certfile},
        )

        try:
            server.run()
        except (SystemExit, OSError) as e:
            # uvicorn calls sys.exit() when it cannot bind; bad TLS files raise ssl.SSLError
            raise TLSServeError(f"TLS server failed to start on {self.host}:{self.port}") from e
        finally:
            self._server = None
            self._started.clear()
            self._shutdown_requested.clear()

        self._closed = True
        logger.info("tls_server_closed", extra={"host": self.host, "port": self.port})
        return ServeResult.CLOSED

    def shutdown(self) -> None:
        """Ask a running serve_tls() to stop."""
        self._shutdown_requested.set()
        server = self._server
        if server is not None:
            server.should_exit = True
