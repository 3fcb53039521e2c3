from __future__ import annotations

import logging

from sfinsight.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_configured = False


def configure_logging() -> None:
    # Install a single root handler; repeated calls only refresh the level.
    global _configured
    settings = get_settings()
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    # Salesforce client libraries are chatty at INFO.
    logging.getLogger("simple_salesforce").setLevel(logging.WARNING)
    _configured = True
