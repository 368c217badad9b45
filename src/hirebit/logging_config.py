from __future__ import annotations

import logging

from hirebit.config import get_settings


_LOG_CONFIGURED = False

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("apscheduler.executors.default", "httpx", "openai", "pdfminer", "xhtml2pdf")


def configure_logging() -> None:
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _LOG_CONFIGURED = True
