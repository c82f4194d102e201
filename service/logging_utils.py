# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per call so tests can repoint LOG_DIR) --

_DEFAULT_LOG_DIR = "logs"
_DEFAULT_ACTIVITY_PREFIX = "activity"
_DEFAULT_ERROR_PREFIX = "error"

# Keys/substrings scrubbed from records (case-insensitive, substring match).
# form_build_id is a live session token for the lookup endpoint.
_DEFAULT_REDACT_KEYS = {
    "password",
    "token",
    "secret",
    "authorization",
    "cookie",
    "form_build_id",
}

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record as a JSON line.

    May raise on unrecoverable I/O/serialization errors; never mutates `record`.
    """
    _write_jsonl(_log_path_for_today(_activity_prefix()), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one structured error record, parallel to the activity log."""
    _write_jsonl(_log_path_for_today(_error_prefix()), record)


def get_activity_log_path() -> str:
    """Return the current day's activity log path (<prefix>-YYYY-MM-DD.jsonl)."""
    return _log_path_for_today(_activity_prefix())


def get_error_log_path() -> str:
    return _log_path_for_today(_error_prefix())


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """
    Produce a redacted deep copy of `record`, scrubbing values whose KEYS
    contain any of the substrings in `keys` (case-insensitive).
    """
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _log_dir() -> str:
    return os.getenv("LOG_DIR") or _DEFAULT_LOG_DIR


def _activity_prefix() -> str:
    return os.getenv("ACTIVITY_LOG_PREFIX") or _DEFAULT_ACTIVITY_PREFIX


def _error_prefix() -> str:
    return os.getenv("ERROR_LOG_PREFIX") or _DEFAULT_ERROR_PREFIX


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _log_path_for_today(prefix: str) -> str:
    today = _dt.date.today().isoformat()
    return os.path.join(_log_dir(), f"{prefix}-{today}.jsonl")


def _ensure_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)


def _rotate_file_if_needed(path: str) -> None:
    """
    Size-based rotation only; day rotation is inherent in the filename.
    Disabled when ACTIVITY_LOG_MAX_BYTES <= 0.
    """
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{ts}")


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and _key_matches(k, patterns):
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    return value


def _with_metadata(record: dict[str, Any]) -> dict[str, Any]:
    out = dict(record)
    out.setdefault("ts", _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds"))
    out["_meta"] = {"host": _HOSTNAME, "pid": _PID}
    return out


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Core writer:
      - deep redacted copy + host/pid metadata
      - optional size rotation
      - single O_APPEND write (one line per record)
      - one retry on transient OSError
    """
    _ensure_dir(path)
    _rotate_file_if_needed(path)

    payload = _with_metadata(_redact_deep(record, _DEFAULT_REDACT_KEYS))
    # Serialize first so encoding errors surface before any file ops.
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    flags = os.O_CREAT | os.O_APPEND | os.O_WRONLY

    def _append_once() -> None:
        fd = os.open(path, flags, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    try:
        _append_once()
    except OSError:
        _ensure_dir(path)
        _append_once()
