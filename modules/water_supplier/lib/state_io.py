from __future__ import annotations

import contextlib
import json
import os
from typing import Any

_MISSING = object()


class PersistenceError(Exception):
    """A state file is present but unreadable/corrupt, or cannot be written."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


def read_json(path: str, default: Any = _MISSING) -> Any:
    """
    Load a whole JSON file. A missing file returns `default`; anything else
    that goes wrong is a PersistenceError.
    """
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        if default is _MISSING:
            raise PersistenceError(path, "file not found") from None
        return default
    except json.JSONDecodeError as e:
        raise PersistenceError(path, f"invalid JSON ({e})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise PersistenceError(path, f"unreadable ({e!r})") from e


def write_json(path: str, data: Any) -> None:
    """
    Pretty-print `data` to a sibling temp file, then os.replace() it over
    `path` so readers only ever see a complete document.
    """
    tmp = f"{path}.tmp"
    try:
        d = os.path.dirname(os.path.abspath(path))
        os.makedirs(d, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp, path)
    except (OSError, TypeError, ValueError) as e:
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise PersistenceError(path, f"write failed ({e!r})") from e


def remove(path: str) -> bool:
    """Delete a state file; returns False if it was already gone."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise PersistenceError(path, f"delete failed ({e!r})") from e
    return True
