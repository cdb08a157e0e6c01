# logging_config.py
import logging
from logging.handlers import RotatingFileHandler
from trackpool.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_MAX_BYTES = 10_000_000
LOG_BACKUP_COUNT = 3

# third-party loggers routed through the root handlers, with their floor level
PROPAGATED_LOGGERS = {
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": logging.WARNING,
}
# engine echo is controlled by settings.debug, keep its own handler out of our output
SILENCED_LOGGERS = ("sqlalchemy.engine",)


def _build_handlers(level: int):
    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [
        logging.StreamHandler(),
        RotatingFileHandler(settings.log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging():
    root_logger = logging.getLogger()
    # reloader or test run imported the app twice
    if getattr(root_logger, "_trackpool_configured", False):
        return

    level = logging.DEBUG if settings.debug else logging.INFO
    root_logger.setLevel(level)
    for handler in _build_handlers(logging.DEBUG):
        root_logger.addHandler(handler)
    root_logger._trackpool_configured = True

    for name, floor in PROPAGATED_LOGGERS.items():
        logger = logging.getLogger(name)
        logger.propagate = True
        if floor is not None:
            logger.setLevel(floor)

    for name in SILENCED_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.WARNING)
        logger.handlers = []
        logger.propagate = False

    logging.getLogger(__name__).debug(f"logging ready, file={settings.log_file} level={logging.getLevelName(level)}")
