"""
Resumable batch scheduler for postcode -> supplier lookups.

Flow per run:
  - load ledger + result store (corrupt state is fatal: PersistenceError)
  - resolve the resume point (file by name, then the postcode after last_postcode)
  - per file: drop postcodes already in the store, cut the rest into batches of
    `max_concurrency`, run each batch on the pool and wait for all of it
  - commit found records in file order, checkpoint the ledger after each commit
  - flush the store every `flush_every` commits and at the end of every file
  - mark the ledger completed after the last file

Only this thread touches the store and the ledger; workers only run lookups.
"""

from __future__ import annotations

import csv
import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed

from . import logging_bridge
from .config import Settings
from .inputs import list_input_files, read_postcodes
from .ledger import ProgressLedger
from .models import PostcodeRecord, ProgressState, RunSummary
from .retry import LookupFn, lookup_with_retries
from .state_io import PersistenceError
from .store import ResultStore
from .utils import elapsed_us

log = logging.getLogger(__name__)

_COMPONENT = "water_supplier.scheduler"


# =============================================================================
# RESUME HELPERS
# =============================================================================
def resume_file_index(file_names: list[str], last_file: str) -> int:
    """Index of the file named `last_file`; 0 when unset or no longer present."""
    if last_file:
        for i, name in enumerate(file_names):
            if name == last_file:
                return i
    return 0


def resume_postcode_index(postcodes: list[str], last_postcode: str) -> int:
    """Index just after `last_postcode`; 0 when unset or not in this file."""
    if last_postcode:
        for i, pc in enumerate(postcodes):
            if pc == last_postcode:
                return i + 1
    return 0


def make_batches(items: list, width: int) -> list[list]:
    """Fixed-width slices; the last one may be narrower."""
    w = max(1, int(width))
    return [items[i : i + w] for i in range(0, len(items), w)]


# =============================================================================
# SCHEDULER
# =============================================================================
class BatchScheduler:
    """
    Drives lookups over the input corpus with at most `max_concurrency`
    in flight, persisting progress so an interrupted run picks up where it
    stopped.

    Args:
        settings: paths and tunables for this run.
        lookup: one-shot lookup callable (LookupClient.lookup in production).
        sleep: inter-retry sleep, injectable for tests.
        stop_event: when set, the run stops at the next batch boundary.
    """

    def __init__(
        self,
        settings: Settings,
        lookup: LookupFn,
        *,
        sleep: Callable[[float], None] = time.sleep,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self._lookup = lookup
        self._sleep = sleep
        self._stop = stop_event or threading.Event()

        self.ledger = ProgressLedger(settings.progress_path)
        self.store = ResultStore(settings.results_path)
        self.state = ProgressState()
        self.summary = RunSummary()

    # -------------------------------------------------------------------------
    # PUBLIC
    # -------------------------------------------------------------------------
    def run(self) -> RunSummary:
        start_ns = time.perf_counter_ns()
        s = self.settings
        summary = self.summary = RunSummary()

        if s.restart:
            self.ledger.reset()
        self.state = self.ledger.load()
        self.store.load()

        files = list_input_files(s.input_dir)
        names = [os.path.basename(p) for p in files]
        summary.files_total = len(files)

        logging_bridge.activity({
            "component": _COMPONENT,
            "op": "start",
            "input_dir": s.input_dir,
            "files": len(files),
            "known_postcodes": len(self.store),
            "progress": self.state.to_dict(),
            "max_concurrency": s.max_concurrency,
            "max_retries": s.max_retries,
        })

        if self.state.completed:
            summary.already_completed = True
            summary.completed = True
            logging_bridge.activity({
                "component": _COMPONENT,
                "op": "already_completed",
                "progress_path": s.progress_path,
            })
            self._log_summary(start_ns)
            return summary

        start_file = resume_file_index(names, self.state.last_file)

        try:
            self._run_files(files, names, start_file)
        except BaseException:
            # The ledger may already point past records committed since the
            # last flush; write them out before the error propagates.
            self._flush(reason="abort")
            raise

        self._log_summary(start_ns)
        return summary

    # -------------------------------------------------------------------------
    # FILE LOOP
    # -------------------------------------------------------------------------
    def _run_files(self, files: list[str], names: list[str], start_file: int) -> None:
        summary = self.summary
        with ThreadPoolExecutor(max_workers=self.settings.max_concurrency, thread_name_prefix="lookup") as pool:
            for i in range(start_file, len(files)):
                if self._stop.is_set():
                    summary.stopped_early = True
                    break

                stopped = self._run_file(pool, files[i], names[i])
                if stopped:
                    summary.stopped_early = True
                    break

                if i < len(files) - 1:
                    # Point the ledger at the next file; it starts from its first postcode.
                    self.state.last_file = names[i + 1]
                    self.state.last_postcode = ""
                    self._checkpoint()
            else:
                self.state.completed = True
                self._checkpoint()
                summary.completed = True

    # -------------------------------------------------------------------------
    # PER FILE
    # -------------------------------------------------------------------------
    def _run_file(self, pool: ThreadPoolExecutor, path: str, name: str) -> bool:
        """Process one file. Returns True if a stop was requested mid-file."""
        summary = self.summary
        try:
            postcodes = read_postcodes(path)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            summary.files_unreadable.append(name)
            logging_bridge.error({
                "component": _COMPONENT,
                "op": "file_unreadable",
                "file": name,
                "error": repr(e),
            })
            return False

        resume_idx = 0
        if name == self.state.last_file:
            resume_idx = resume_postcode_index(postcodes, self.state.last_postcode)
            if 0 < resume_idx < len(postcodes):
                log.info("Resuming from postcode %s (after %s)", postcodes[resume_idx], self.state.last_postcode)
                logging_bridge.activity({
                    "component": _COMPONENT,
                    "op": "resume",
                    "file": name,
                    "after": self.state.last_postcode,
                    "index": resume_idx,
                })

        pending: list[tuple[int, str]] = []
        queued: set[str] = set()
        for idx in range(resume_idx, len(postcodes)):
            pc = postcodes[idx]
            if pc in self.store:
                summary.skipped_known += 1
                log.debug("Skipping already processed postcode: %s", pc)
                continue
            if pc in queued:
                continue
            queued.add(pc)
            pending.append((idx, pc))

        log.info("Processing file: %s (%d to look up)", name, len(pending))
        logging_bridge.activity({
            "component": _COMPONENT,
            "op": "file_start",
            "file": name,
            "postcodes": len(postcodes),
            "resume_index": resume_idx,
            "pending": len(pending),
        })

        # Highest in-file index the ledger has recorded; never move below it.
        high_water = resume_idx - 1
        stopped = False

        for batch in make_batches(pending, self.settings.max_concurrency):
            if self._stop.is_set():
                stopped = True
                break
            t0 = time.perf_counter_ns()
            results = self._dispatch(pool, batch)
            summary.attempted += len(batch)

            committed = 0
            for idx, pc in batch:
                record = results[idx]
                if not record.found:
                    summary.not_found.append(pc)
                    continue
                if not self.store.add(record):
                    continue
                committed += 1
                summary.committed += 1
                if idx > high_water:
                    high_water = idx
                    self.state.last_file = name
                    self.state.last_postcode = pc
                    self._checkpoint()
                if summary.committed % self.settings.flush_every == 0:
                    self._flush(reason="periodic")

            logging_bridge.activity({
                "component": _COMPONENT,
                "op": "batch_done",
                "file": name,
                "size": len(batch),
                "committed": committed,
                "duration_us": elapsed_us(t0),
            })

        self._flush(reason="end_of_file" if not stopped else "stopped")
        if not stopped:
            summary.files_processed += 1
            logging_bridge.activity({
                "component": _COMPONENT,
                "op": "file_done",
                "file": name,
                "total_results": len(self.store),
            })
        return stopped

    # -------------------------------------------------------------------------
    # ONE BATCH (barrier)
    # -------------------------------------------------------------------------
    def _dispatch(self, pool: ThreadPoolExecutor, batch: list[tuple[int, str]]) -> dict[int, PostcodeRecord]:
        """
        Run every lookup in `batch` concurrently and return only when all of
        them are done. Results are keyed by in-file index; completion order
        is not meaningful.
        """
        futures = {pool.submit(self._resolve, pc): (idx, pc) for idx, pc in batch}
        results: dict[int, PostcodeRecord] = {}
        for fut in as_completed(futures):
            idx, pc = futures[fut]
            try:
                results[idx] = fut.result()
            except Exception as e:
                # lookup_with_retries absorbs LookupFailed; anything else is a bug
                # in the lookup callable. Treat the postcode as unresolved.
                logging_bridge.error({
                    "component": _COMPONENT,
                    "op": "lookup_crashed",
                    "postcode": pc,
                    "error": repr(e),
                })
                results[idx] = PostcodeRecord.not_found(pc)
        return results

    def _resolve(self, postcode: str) -> PostcodeRecord:
        return lookup_with_retries(
            self._lookup,
            postcode,
            self.settings.max_retries,
            delay_seconds=self.settings.retry_delay_seconds,
            sleep=self._sleep,
        )

    # -------------------------------------------------------------------------
    # PERSISTENCE (failures are logged, never fatal mid-run)
    # -------------------------------------------------------------------------
    def _checkpoint(self) -> None:
        try:
            self.ledger.save(self.state)
        except PersistenceError as e:
            self.summary.checkpoint_failures += 1
            logging_bridge.error({
                "component": _COMPONENT,
                "op": "checkpoint_failed",
                "target": "progress",
                "path": self.ledger.path,
                "error": repr(e),
            })

    def _flush(self, *, reason: str) -> None:
        try:
            self.store.flush()
        except PersistenceError as e:
            self.summary.checkpoint_failures += 1
            logging_bridge.error({
                "component": _COMPONENT,
                "op": "checkpoint_failed",
                "target": "results",
                "path": self.store.path,
                "error": repr(e),
            })
            return
        log.info("Results saved to %s (%d records)", self.store.path, len(self.store))
        logging_bridge.activity({
            "component": _COMPONENT,
            "op": "flush",
            "reason": reason,
            "records": len(self.store),
        })

    def _log_summary(self, start_ns: int) -> None:
        logging_bridge.activity({
            "component": _COMPONENT,
            "op": "summary",
            **self.summary.as_record(),
            "total_results": len(self.store),
            "total_us": elapsed_us(start_ns),
        })
