"""Logging configuration for Ledgerline.

Sets up logging to both file (with date-based naming) and console. Service
modules log through child loggers such as ``ledgerline.reconciliation``; the
console prints the component name after the level.
"""

import logging
from datetime import date
from config import Config

LOGGER_NAME = "ledgerline"


class ComponentFilter(logging.Filter):
    """Sets ``record.component`` to " [name]" for child loggers, "" otherwise."""

    def filter(self, record: logging.LogRecord) -> bool:
        prefix = f"{LOGGER_NAME}."
        if record.name.startswith(prefix):
            record.component = f" [{record.name[len(prefix):]}]"
        else:
            record.component = ""
        return True


def setup_logging(config: Config) -> logging.Logger:
    """Set up application logging with file and console handlers.

    Args:
        config: Application configuration containing log settings.

    Returns:
        Configured logger instance.
    """
    config.log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.log_level)

    # Clear any existing handlers (in case this is called multiple times)
    logger.handlers.clear()

    # File handler - logs to ledgerline-{date}.log with the full logger name
    log_file_path = config.log_dir / f"{LOGGER_NAME}-{date.today().isoformat()}.log"
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(config.log_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.log_level)
    console_handler.addFilter(ComponentFilter())
    console_handler.setFormatter(logging.Formatter("%(levelname)s%(component)s - %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Get the application logger, or one of its children.

    Args:
        name: Optional component name, e.g. "reconciliation".

    Returns:
        ``ledgerline`` or ``ledgerline.<name>``.
    """
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)
