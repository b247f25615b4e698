"""Logging configuration utilities for the pipeline."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logging(
    log_file: Path | str | None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> logging.Logger:
    """Configure logging to the console and, optionally, a file.

    Safe to call more than once: handlers already attached to the root
    logger (including pytest's caplog handler) are kept and not duplicated.

    Args:
        log_file: Path to the log file, or None for console only
        console_level: Logging level for console output
        file_level: Logging level for file output

    Returns:
        Configured root logger
    """
    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()

    has_our_console = any(
        type(h) is logging.StreamHandler and h.level == console_level
        for h in root_logger.handlers
    )
    if not has_our_console:
        # Unencodable characters in messages are replaced on narrow consoles
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(errors="replace")  # pyright: ignore[reportAttributeAccessIssue]
        console_handler = logging.StreamHandler(stream=sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(formatter)
        root_logger.setLevel(logging.DEBUG)
        root_logger.addHandler(console_handler)

    if log_file is not None:
        resolved_path = str(Path(log_file).resolve())
        has_our_file = any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == resolved_path
            for h in root_logger.handlers
        )
        if not has_our_file:
            # One log file per run; a new path replaces the previous file handler
            for handler in [h for h in root_logger.handlers if isinstance(h, logging.FileHandler)]:
                root_logger.removeHandler(handler)
                handler.close()
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(file_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    return root_logger
