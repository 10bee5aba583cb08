"""
Root logger configuration shared by the Celery worker and local scripts.
"""

from __future__ import annotations

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("botocore", "aiobotocore", "httpx", "httpcore", "openai")


def configure_logging(logger: logging.Logger | None = None) -> None:
    """
    Attach the standard formatter to `logger` (root logger by default).

    Celery passes its own root logger via the after_setup_logger signal;
    outside a worker this is called with no argument.
    """
    target = logger or logging.getLogger()
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO,
    )
    target.setLevel(level)

    if not target.handlers:
        target.addHandler(logging.StreamHandler())
    for handler in target.handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
