"""Central logging configuration for the periodization service.

Everything goes to the console and a size-rotated ``periodizer.log``. Calls to
the text-generation collaborator (load assignment, drill generation, plan
summaries) are also written to ``generation.log`` so failed or malformed model
responses can be reviewed without the request noise.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path

from pydantic import ValidationError

from periodizer.config import get_settings

_configured = False

MAIN_LOG_FILE = "periodizer.log"
GENERATION_LOG_FILE = "generation.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "sqlalchemy.engine")

_GENERATION_LOGGERS = (
    "periodizer.services.text_generation",
    "periodizer.services.drill_generation",
    "periodizer.services.periodization",
    "periodizer.services.plan_narrative",
)


def build_logging_config(log_dir: Path, level: str, debug: bool = False) -> dict:
    """``dictConfig`` mapping for the given directory and root level.

    With ``debug`` the generation channel records DEBUG output (prompts and
    raw responses) regardless of the root level.
    """
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    generation_level = "DEBUG" if debug else level
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": fmt,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_dir / MAIN_LOG_FILE),
                "maxBytes": LOG_MAX_BYTES,
                "backupCount": LOG_BACKUP_COUNT,
                "encoding": "utf-8",
                "formatter": "standard",
                "level": level,
            },
            "generation": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_dir / GENERATION_LOG_FILE),
                "maxBytes": LOG_MAX_BYTES,
                "backupCount": LOG_BACKUP_COUNT,
                "encoding": "utf-8",
                "formatter": "standard",
                "level": generation_level,
            },
        },
        "loggers": {
            **{name: {"level": "WARNING", "propagate": True} for name in _QUIET_LOGGERS},
            **{
                name: {"level": generation_level, "handlers": ["generation"], "propagate": True}
                for name in _GENERATION_LOGGERS
            },
        },
        "root": {
            "level": level,
            "handlers": ["console", "file"],
        },
    }


def configure_logging() -> None:
    """Configure application logging once per process."""

    global _configured
    if _configured:
        return

    try:
        settings = get_settings()
        log_dir = settings.log_dir
        level = settings.log_level
        debug = settings.debug
    except ValidationError:
        # Invalid environment; still log somewhere so the error is visible.
        log_dir = Path("logs")
        level = "INFO"
        debug = False
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(build_logging_config(log_dir, level, debug))
    _configured = True
    logging.getLogger(__name__).debug("Logging configured at %s (dir=%s, debug=%s)", level, log_dir, debug)
