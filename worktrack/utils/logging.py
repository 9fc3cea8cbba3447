"""Logging setup and execution-scoped loggers."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILE_PATTERN = "worktrack_*.log*"


class WorktrackFormatter(logging.Formatter):
    """Single-line formatter that tags records with their execution.

    Records logged through `get_logger(name, session_id, ...)` carry
    `session_id` and `execution_sequence` attributes, rendered as
    `[session#sequence]` after the logger name.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        """Initialize formatter.

        Args:
            use_colors: Colour the level name when stderr is a terminal
        """
        super().__init__()
        self.use_colors = use_colors

    def _level(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if self.use_colors and color and sys.stderr.isatty():
            # Padding goes outside the escape codes so columns stay aligned
            return f"{color}{record.levelname}{self.RESET}" + " " * (8 - len(record.levelname))
        return f"{record.levelname:8}"

    @staticmethod
    def _execution_tag(record: logging.LogRecord) -> str:
        session_id = getattr(record, "session_id", None)
        if session_id is None:
            return ""
        sequence = getattr(record, "execution_sequence", None)
        return f" [{session_id}#{sequence}]" if sequence is not None else f" [{session_id}]"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        component = record.name.rsplit(".", 1)[-1]
        line = (
            f"[{timestamp}] {self._level(record)} {component:10}"
            f"{self._execution_tag(record)} {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _remove_expired_logs(log_dir: Path, retention_days: int) -> None:
    if retention_days <= 0:
        return
    cutoff = datetime.now().timestamp() - retention_days * 86400
    for path in log_dir.glob(LOG_FILE_PATTERN):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
        except FileNotFoundError:
            continue


def _file_handler(log_file: Path, rotation_mb: int, retention_days: int) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    _remove_expired_logs(log_file.parent, retention_days)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=max(1, rotation_mb) * 1024 * 1024,
        backupCount=max(1, retention_days),
    )
    handler.setFormatter(WorktrackFormatter(use_colors=False))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    rotation_mb: int = 10,
    retention_days: int = 7,
    use_colors: bool = True,
    console: bool = True,
) -> None:
    """Configure root logging for the CLI.

    Safe to call repeatedly: handlers installed by an earlier call are
    replaced, handlers installed by anyone else are left alone.

    Args:
        level: Log level name, case-insensitive
        log_file: Log file path
        log_dir: Directory for a timestamped log file (used if log_file not provided)
        rotation_mb: Max log size before rotation (MB)
        retention_days: Days to retain log files (<=0 disables cleanup)
        use_colors: Colour console level names
        console: Log to stderr
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in list(root_logger.handlers):
        if isinstance(handler.formatter, WorktrackFormatter):
            root_logger.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(WorktrackFormatter(use_colors=use_colors))
        root_logger.addHandler(console_handler)

    if log_file is None and log_dir is not None:
        log_file = Path(log_dir) / f"worktrack_{datetime.now():%Y%m%d_%H%M%S}.log"
    if log_file is not None:
        root_logger.addHandler(_file_handler(Path(log_file), rotation_mb, retention_days))

    # asyncio logs every slow callback at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(
    name: str,
    session_id: str | None = None,
    execution_sequence: int | None = None,
) -> logging.Logger | logging.LoggerAdapter:
    """Get a logger, bound to one execution when a session is given.

    Args:
        name: Logger name
        session_id: Session the records belong to
        execution_sequence: Execution ordinal within the session

    Returns:
        The named logger, or an adapter adding the execution fields to
        every record
    """
    logger = logging.getLogger(name)
    if session_id is None:
        return logger
    return logging.LoggerAdapter(
        logger,
        {"session_id": session_id, "execution_sequence": execution_sequence},
    )
