from __future__ import annotations

from .models import ProgressState
from .state_io import PersistenceError, read_json, remove, write_json


class ProgressLedger:
    """
    Durable resume marker: {"last_file", "last_postcode", "completed"}.

    Single writer (the scheduler thread); every save() overwrites the whole file.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> ProgressState:
        """Missing file -> default state. Corrupt file -> PersistenceError."""
        data = read_json(self.path, default=None)
        if data is None:
            return ProgressState()
        if not isinstance(data, dict):
            raise PersistenceError(self.path, f"expected a JSON object, got {type(data).__name__}")
        return ProgressState.from_dict(data)

    def save(self, state: ProgressState) -> None:
        write_json(self.path, state.to_dict())

    def reset(self) -> bool:
        return remove(self.path)
