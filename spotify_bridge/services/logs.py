"""
Goal: Set up loguru logging to stderr and a rolling log file under the app folder.
Keep output friendly and never leak tokens or client secrets.
"""

import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from spotify_bridge.settings import LOG_DIR, LOG_LEVEL

_SECRET_PAIR = re.compile(
    r"(access_token|refresh_token|client_secret|code|authorization)([\"']?\s*[=:]\s*[\"']?)[^\s&\"',]+",
    flags=re.IGNORECASE,
)
_BEARER = re.compile(r"(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+")


def _sanitize_log_message(msg: str) -> str:
    """Remove sensitive information from log messages."""
    msg = _BEARER.sub(r"\1 [REDACTED]", msg)
    return _SECRET_PAIR.sub(r"\1\2[REDACTED]", msg)


def _redact(record) -> bool:
    record["message"] = _sanitize_log_message(record["message"])
    return True


def configure_logging(level: Optional[str] = None, log_dir: Optional[Path] = None) -> None:
    level = level or LOG_LEVEL
    target = Path(log_dir or LOG_DIR)

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        colorize=True,
        backtrace=False,
        diagnose=False,
        filter=_redact,
    )
    target.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(target / "{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="14 days",
        level=level,
        backtrace=False,
        diagnose=False,
        serialize=False,
        enqueue=True,
        encoding="utf-8",
        filter=_redact,
    )
