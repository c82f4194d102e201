from __future__ import annotations

import threading
from typing import Any

from .lib.config import Settings
from .lib.logging_bridge import activity as log_activity
from .lib.lookup import LookupClient
from .lib.models import RunSummary
from .lib.retry import LookupFn
from .lib.scheduler import BatchScheduler


def run(
    *,
    lookup: LookupFn | None = None,
    stop_event: threading.Event | None = None,
    **kwargs: Any,
) -> RunSummary:
    """
    Entry point for the 'water_supplier' module.

    Accepts kwargs (from the CLI), including:
      input_dir: str = "ALLCODECSV"
      progress_path: str = "progress.json"
      results_path: str = "water_suppliers_results.json"
      max_retries: int = 3
      max_concurrency: int = 3
      retry_delay_seconds: float = 2.0
      flush_every: int = 10
      endpoint_url / form_build_id / timeout_seconds
      restart: bool = False   # forget progress (results are kept)

    `lookup` replaces the HTTP client (tests); `stop_event` lets the caller
    stop cleanly at the next batch boundary.

    Raises ConfigError for bad settings and PersistenceError when existing
    state files can't be read.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "water_supplier.main",
        "op": "start",
        "input_dir": settings.input_dir,
        "progress_path": settings.progress_path,
        "results_path": settings.results_path,
        "endpoint_url": settings.endpoint_url,
        "restart": settings.restart,
        "injected_lookup": lookup is not None,
    })

    client: LookupClient | None = None
    if lookup is None:
        client = LookupClient(settings)
        lookup = client.lookup

    try:
        scheduler = BatchScheduler(settings, lookup, stop_event=stop_event)
        return scheduler.run()
    finally:
        if client is not None:
            client.close()
