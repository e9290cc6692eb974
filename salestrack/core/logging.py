from __future__ import annotations

import logging

from salestrack.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    if any(getattr(handler, "_salestrack", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._salestrack = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel((level or get_settings().log_level).upper())
    # httpx logs every request line at INFO, including Gumroad's access_token query.
    logging.getLogger("httpx").setLevel(logging.WARNING)
