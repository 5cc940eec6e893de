"""
Centralized logging configuration for privutxo.

Console output is colored through colorlog; a plain-text file handler is
added only when a log directory is requested (the CLI does this, library
users normally don't).

Subsystem loggers live under the ``privutxo`` namespace:
``privutxo.curve``, ``privutxo.prover``, ``privutxo.service`` and so on.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog


LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class PrivUTXOLogger:
    """Centralized logger for privutxo components"""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[Union[str, Path]] = None,
        log_to_file: bool = False,
    ):
        """
        Setup logging configuration.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_dir: Directory for log files. If None, uses ./logs
            log_to_file: Whether to write logs to file
        """
        if cls._initialized:
            return

        root_logger = logging.getLogger("privutxo")
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.propagate = False

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
                datefmt=DATE_FORMAT,
                log_colors=LOG_COLORS,
            )
        )
        root_logger.addHandler(console_handler)

        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(cls._log_dir / "privutxo.log")
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop all handlers so setup() can run again (used by the CLI and tests)."""
        root_logger = logging.getLogger("privutxo")
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)
        cls._initialized = False
        cls._log_dir = None

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'curve', 'service', 'prover')

        Returns:
            Logger instance
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"privutxo.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return PrivUTXOLogger.get_logger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_to_file: bool = False,
):
    """Setup logging configuration, accepting level names like 'DEBUG'."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    PrivUTXOLogger.reset()
    PrivUTXOLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)


def short_hex(data: Union[bytes, str, int], length: int = 10) -> str:
    """Abbreviate an identifier for log lines."""
    if isinstance(data, bytes):
        text = "0x" + data.hex()
    elif isinstance(data, int):
        text = hex(data)
    else:
        text = data
    return text[:length] + "..." if len(text) > length else text
