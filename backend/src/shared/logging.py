import logging
import sys

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter
from opentelemetry.sdk.resources import Resource

from .config import settings

_STREAM_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> LoggerProvider:
    """Route stdlib logging through OpenTelemetry and to stdout.

    Returns the provider so short-lived processes can flush it on exit:
    the batch processor otherwise drops records still queued at shutdown.
    """
    level = (level or settings.LOG_LEVEL).upper()

    resource = Resource.create({"service.name": settings.APP_NAME})
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(ConsoleLogRecordExporter())
    )
    set_logger_provider(logger_provider)

    root = logging.getLogger()
    # Re-running replaces handlers from an earlier call
    for existing in list(root.handlers):
        if getattr(existing, "_tmppki_handler", False):
            root.removeHandler(existing)

    otel_handler = LoggingHandler(level=getattr(logging, level), logger_provider=logger_provider)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(_STREAM_FORMAT))

    for handler in (otel_handler, stream_handler):
        handler._tmppki_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return logger_provider


logger = logging.getLogger("tmppki")
