"""
File-only logger — NEVER writes to stdout (would corrupt the MCP protocol)
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Union

from .config import Config

_ROOT = "universal_mcp"
_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}


def _secure_handler(log_path: Path, level: int, fmt: str) -> RotatingFileHandler:
    """Create a rotating file handler with restricted permissions."""
    handler = RotatingFileHandler(
        log_path,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=10,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))

    # Log files may contain tool arguments
    try:
        os.chmod(log_path, 0o600)
    except OSError:
        pass  # file may not exist yet on first call

    return handler


def _root_logger() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if root.handlers:
        return root

    Config.ensure_dirs()
    root.setLevel(LEVELS.get(Config.LOG_LEVEL.lower(), logging.INFO))
    root.addHandler(_secure_handler(Config.LOG_FILE, logging.DEBUG, _FORMAT))
    root.addHandler(_secure_handler(Config.ERROR_LOG, logging.ERROR, _FORMAT))

    # Never propagate to the real root (which might have stdout handlers)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger that writes to file only"""
    _root_logger()
    return logging.getLogger(f"{_ROOT}.{name}")


def _invocation_logger() -> logging.Logger:
    logger = logging.getLogger(f"{_ROOT}.invocations")
    if logger.handlers:
        return logger
    _root_logger()
    logger.setLevel(logging.INFO)
    logger.addHandler(_secure_handler(Config.INVOCATION_LOG, logging.INFO, "%(message)s"))
    logger.propagate = False
    return logger


def log_invocation(entry: Dict[str, Any]):
    """Append one invocation entry to the JSON-lines invocation log."""
    _invocation_logger().info(json.dumps(entry, default=str, ensure_ascii=False))


def set_level(level: Union[str, int]) -> int:
    """Change the level of every server logger. Returns the numeric level."""
    if isinstance(level, str):
        numeric = LEVELS.get(level.lower())
        if numeric is None:
            raise ValueError(f"Unknown log level: {level}")
    else:
        numeric = int(level)
    _root_logger().setLevel(numeric)
    get_logger("logger").info(f"Log level changed to {logging.getLevelName(numeric)}")
    return numeric
