from __future__ import annotations

import logging
from typing import Any

from service import logging_utils as _backend

_ACTIVITY_LOG = logging.getLogger("water_supplier.activity")
_ERROR_LOG = logging.getLogger("water_supplier.error")


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the JSONL activity log.
    Falls back to stdlib logging if the log file can't be written.
    """
    payload = dict(record)
    try:
        _backend.write_activity_log(payload)
    except (OSError, TypeError, ValueError):
        _ACTIVITY_LOG.info(_backend.redact(payload))
        return
    _ACTIVITY_LOG.debug("%s", payload.get("op"))


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the JSONL error log, and always mirror it to
    stdlib logging at WARNING so operators see it on the console.
    """
    payload = dict(record)
    _ERROR_LOG.warning(_backend.redact(payload))
    try:
        _backend.write_error_log(payload)
    except (OSError, TypeError, ValueError):
        _ERROR_LOG.error("error log write failed for %s", payload.get("op"), exc_info=True)
