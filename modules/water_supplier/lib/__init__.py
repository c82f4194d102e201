# modules/water_supplier/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings
from .ledger import ProgressLedger
from .lookup import HTTPStatusError, LookupClient, LookupFailed, ParseError, TransportError, parse_supplier_html
from .models import NOT_FOUND, PostcodeRecord, ProgressState, RunSummary
from .retry import lookup_with_retries
from .scheduler import BatchScheduler
from .state_io import PersistenceError
from .store import ResultStore

__all__ = [
    "NOT_FOUND",
    "BatchScheduler",
    "ConfigError",
    "HTTPStatusError",
    "LookupClient",
    "LookupFailed",
    "ParseError",
    "PersistenceError",
    "PostcodeRecord",
    "ProgressLedger",
    "ProgressState",
    "ResultStore",
    "RunSummary",
    "Settings",
    "TransportError",
    "lookup_with_retries",
    "parse_supplier_html",
]
