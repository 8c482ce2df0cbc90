import logging
import sys

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter
from opentelemetry.sdk.resources import Resource

from .config import settings

# Marks handlers installed here so a second setup replaces instead of stacking them
_HANDLER_MARK = "_certmanager_handler"


def setup_logging() -> LoggerProvider:
    """Route stdlib logging to OpenTelemetry and to stdout.

    Safe to call more than once: handlers from an earlier call are removed.
    Returns the logger provider so the caller can flush it on shutdown.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)

    level = settings.LOG_LEVEL.upper()

    resource = Resource.create({"service.name": settings.APP_NAME, "deployment.environment": settings.APP_ENV})
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(ConsoleLogRecordExporter()))
    set_logger_provider(logger_provider)

    otel_handler = LoggingHandler(level=getattr(logging, level), logger_provider=logger_provider)

    # Signing failures show up here before the batch processor flushes
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    for handler in (otel_handler, stream_handler):
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)
    root.setLevel(level)

    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logger_provider
