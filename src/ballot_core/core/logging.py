"""Loguru logging configuration.

Every record carries a ``component`` extra (``lifecycle``, ``eligibility``,
``vote``, ``tally``, ``storage``; ``-`` when unbound).  Records bound with
``json_output=True`` are additionally emitted as JSON.  A rotating log file
is written when ``log_dir`` is set.

Tracebacks are rendered without variable values (``diagnose=False``) so ballot
contents never reach a sink through an exception.
"""

import sys
from pathlib import Path

from loguru import logger

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[component]:<11} | {name}:{function}:{line} | {message}"
)


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit (case-insensitive).
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"component": "-"})
    logger.add(
        sys.stderr,
        level=level,
        format=_LOG_FORMAT,
        serialize=False,
        diagnose=False,
    )
    logger.add(
        sys.stderr,
        level=level,
        serialize=True,
        diagnose=False,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "ballot-core.log",
            level=level,
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
            diagnose=False,
        )


def component_logger(component: str):  # noqa: ANN201
    """Return the global logger bound to a component name."""
    return logger.bind(component=component)
