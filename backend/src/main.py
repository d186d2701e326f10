"""Serve a FastAPI app over TLS from a throwaway PKI bundle.

The bundle is generated at startup and its files are removed when the
server stops, whichever way it stops.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from shared.config import settings
from shared.logging import logger, setup_logging
from shared.metrics import setup_metrics
from tmppki import Algorithm, TemporaryPKI, UvicornTLSServer


def setup_tracing() -> TracerProvider:
    resource = Resource.create({"service.name": settings.APP_NAME})
    provider = TracerProvider(resource=resource)

    processor = BatchSpanProcessor(ConsoleSpanExporter())
    provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)
    return provider


app = FastAPI(title=settings.APP_NAME)

# Instrument FastAPI
FastAPIInstrumentor.instrument_app(app)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "service": settings.APP_NAME}


@app.get("/hello")
async def hello() -> dict[str, str]:
    return {"message": "Hello World!"}


def build_pki() -> TemporaryPKI:
    """Create the bundle described by settings."""
    return TemporaryPKI(
        Algorithm.parse(settings.TMPPKI_ALGORITHM),
        settings.TMPPKI_STRENGTH,
        with_ca=settings.TMPPKI_WITH_CA,
        temporary=settings.TMPPKI_TEMPORARY,
    )


def main() -> None:
    logger_provider = setup_logging()
    tracer_provider = setup_tracing()
    meter_provider = setup_metrics(settings.APP_NAME)
    LoggingInstrumentor().instrument(set_logging_format=True)

    try:
        pki = build_pki()
        server = UvicornTLSServer(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT)
        result = pki.listen_and_serve_tls(server)
        logger.info("server_stopped", extra={"result": str(result)})
    finally:
        meter_provider.shutdown()
        tracer_provider.shutdown()
        logger_provider.shutdown()


if __name__ == "__main__":
    main()
