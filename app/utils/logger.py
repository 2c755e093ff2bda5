import logging
import sys
import os
from types import FrameType
from loguru import logger
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry._logs import set_logger_provider

HIJACKED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sqlalchemy.engine",
    "httpx",
)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> <level>{level}</level>: "
    "<cyan>[{name}:{line}]</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging to Loguru.
    Skips OpenTelemetry's own records so the OTel sink cannot feed itself.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith("opentelemetry"):
            return

        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module to find the real caller
        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _add_otel_sink(endpoint: str, level: str) -> None:
    """
    Ship Loguru records to an OTLP collector.

    Failures are printed to stderr and never raised: the service must boot without a collector.
    """
    try:
        resource = Resource.create(
            {
                "service.name": os.getenv("OTEL_SERVICE_NAME", "food-rescue-api"),
                "deployment.environment": os.getenv("DEPLOYMENT_ENV", "production"),
            }
        )

        logger_provider = LoggerProvider(resource=resource)
        set_logger_provider(logger_provider)

        insecure = os.getenv("OTEL_EXPORTER_OTLP_INSECURE", "false").lower() == "true"
        exporter = OTLPLogExporter(endpoint=endpoint, insecure=insecure)
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(exporter))

        otel_handler = LoggingHandler(
            level=logging.getLevelName(level), logger_provider=logger_provider
        )
        logger.add(otel_handler, level=level, serialize=True)

        logger.info("Logging (Loguru Sink) Active.")

    except Exception as e:
        print(f"Log Setup Failed: {e}", file=sys.stderr)


def setup_logging():
    """
    Route stdlib logging through Loguru and configure the console and optional OTLP sinks.

    The level comes from `LOG_LEVEL` (default INFO). The OTLP sink is only added when
    `OTEL_EXPORTER_OTLP_ENDPOINT` is set.

    Returns:
        The configured Loguru logger.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)

    for name in HIJACKED_LOGGERS:
        log = logging.getLogger(name)
        log.handlers = []
        log.propagate = False
        log.addHandler(InterceptHandler())

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMAT,
        colorize=True,
        enqueue=True,
    )

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        _add_otel_sink(endpoint, level)

    return logger
