from __future__ import annotations

import logging

AUDIT_LOGGER_NAME = "orgscope.audit"


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set levels for the `orgscope` logger tree.

    Notes:
    - Plain stdlib logging; uvicorn installs the handlers.
    - `ORGSCOPE_LOG_LEVEL=DEBUG` shows per-decision scope and filter logs.
    - Override decisions go to `orgscope.audit`, which stays at INFO or lower
      so accepted overrides are always recorded.
    """

    normalized = level.upper()
    root = logging.getLogger("orgscope")
    root.setLevel(normalized)
    root.propagate = True

    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    if audit.getEffectiveLevel() > logging.INFO:
        audit.setLevel(logging.INFO)
