import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

LOGGER_NAME = "video_localizer"

# uvicorn runs in-process; its records go to the same file
SERVER_LOGGERS = ("uvicorn", "uvicorn.error")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _build_handlers(log_file: Path) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()

    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
    return [file_handler, console_handler]


def setup_logging(log_level: str = "INFO", log_dir: str = "/app/data/logs") -> logging.Logger:
    """Route localizer and HTTP server logs to <log_dir>/localizer.log and the console"""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / "localizer.log"

    level = getattr(logging, log_level.upper(), logging.INFO)
    handlers = _build_handlers(log_file)

    for name in (LOGGER_NAME,) + SERVER_LOGGERS:
        target = logging.getLogger(name)
        target.setLevel(level if name == LOGGER_NAME else max(level, logging.INFO))
        # Re-running setup (tests, reloads) must not duplicate output
        for handler in target.handlers[:]:
            target.removeHandler(handler)
        for handler in handlers:
            target.addHandler(handler)
        target.propagate = False

    logger = logging.getLogger(LOGGER_NAME)
    logger.info(f"Logging initialized at {logging.getLevelName(level)}. Log file: {log_file}")
    return logger


def log_exception(logger: logging.Logger, message: str) -> None:
    """Log an error message together with the active traceback"""
    logger.error(message, exc_info=True)
