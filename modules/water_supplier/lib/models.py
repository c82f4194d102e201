from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

NOT_FOUND = "Not Found"


@dataclass(frozen=True)
class PostcodeRecord:
    """
    Lookup outcome for one postcode.

    Any of supplier/phone/link may carry the NOT_FOUND sentinel; that is a
    terminal value, distinct from "never attempted" (no record at all).
    """

    postcode: str
    supplier: str = NOT_FOUND
    phone: str = NOT_FOUND
    link: str = NOT_FOUND

    @property
    def found(self) -> bool:
        return self.supplier != NOT_FOUND

    @classmethod
    def not_found(cls, postcode: str) -> PostcodeRecord:
        return cls(postcode=postcode)

    def to_dict(self) -> dict[str, str]:
        return {
            "postcode": self.postcode,
            "supplier": self.supplier,
            "phone": self.phone,
            "link": self.link,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PostcodeRecord:
        postcode = str(data.get("postcode") or "").strip()
        if not postcode:
            raise ValueError(f"record without postcode: {dict(data)!r}")
        return cls(
            postcode=postcode,
            supplier=str(data.get("supplier") or NOT_FOUND),
            phone=str(data.get("phone") or NOT_FOUND),
            link=str(data.get("link") or NOT_FOUND),
        )


@dataclass
class ProgressState:
    """
    Resume marker persisted after each committed record.

    `last_postcode` is a position inside `last_file` only; it is not a
    global index.
    """

    last_file: str = ""
    last_postcode: str = ""
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_file": self.last_file,
            "last_postcode": self.last_postcode,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressState:
        return cls(
            last_file=str(data.get("last_file") or ""),
            last_postcode=str(data.get("last_postcode") or ""),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class RunSummary:
    """Counters for one scheduler run (logged as the 'summary' activity record)."""

    files_total: int = 0
    files_processed: int = 0
    files_unreadable: list[str] = field(default_factory=list)
    skipped_known: int = 0
    attempted: int = 0
    committed: int = 0
    not_found: list[str] = field(default_factory=list)
    checkpoint_failures: int = 0
    completed: bool = False
    already_completed: bool = False
    stopped_early: bool = False

    def as_record(self) -> dict[str, Any]:
        return {
            "files_total": self.files_total,
            "files_processed": self.files_processed,
            "files_unreadable": list(self.files_unreadable),
            "skipped_known": self.skipped_known,
            "attempted": self.attempted,
            "committed": self.committed,
            "not_found": len(self.not_found),
            "checkpoint_failures": self.checkpoint_failures,
            "completed": self.completed,
            "already_completed": self.already_completed,
            "stopped_early": self.stopped_early,
        }
