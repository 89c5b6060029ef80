"""
Logging Configuration
Structured logging with loguru
Source: https://github.com/Delgan/loguru
"""

import logging
import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Third-party loggers that flood INFO with per-request detail
QUIET_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3")


class InterceptHandler(logging.Handler):
    """Route standard library log records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
) -> None:
    """
    Configure logging for a CLI run.

    Engine modules log through ``logging.getLogger(__name__)``; those
    records are intercepted so rule building, oracle batches and analysis
    progress all end up in the same loguru sinks as the gateways.

    Args:
        level: Log level name (validated by ComplianceSettings)
        log_file: Optional log file, rotated and zipped
        json_logs: Serialize records as JSON lines
    """
    logger.remove()

    if json_logs:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="50 MB",
            retention="14 days",
            compression="zip",
            format=FILE_FORMAT,
            level=level,
            serialize=json_logs,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured: level={level}, json_logs={json_logs}, file={log_file or '-'}")


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """
    Logger bound to a module name.

    Example:
        >>> from sut_compliance.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Rule snapshot saved")
    """
    return logger.bind(name=name)
