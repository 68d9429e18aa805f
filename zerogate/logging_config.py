import logging
import sys

from pythonjsonlogger import jsonlogger

from zerogate.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(environment)s %(message)s"


class ServiceContextFilter(logging.Filter):
    """Stamps every record with the service name and environment."""

    def __init__(self, service: str, environment: str):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment
        return True


def configure_logging(settings: Settings) -> logging.Handler:
    """
    JSON lines on stdout, one per record.

    Transition steps pass entity ids, actions and step names through
    `extra=`, so they land as top-level keys next to level and logger.
    Returns the installed handler.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # create_app may run more than once per process (tests)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ServiceContextFilter(settings.app_name, settings.environment))
    handler.setFormatter(jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={"levelname": "level", "name": "logger"},
    ))
    root.addHandler(handler)

    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)
    # Ledger transport logs every JSON-RPC round trip at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return handler
