# service/cli.py
"""
Command-line entrypoints for the water supplier lookup job.

Subcommands
-----------
run [--kwargs k=v ...] [--restart]
    - Runs the resumable batch job via modules.water_supplier.run(...)
    - SIGINT/SIGTERM stop the job at the next batch boundary (progress kept)
    - Prints a concise summary line

status [--kwargs k=v ...]
    - Shows the progress ledger and the number of stored results

reset [--kwargs k=v ...] [--results]
    - Deletes the progress ledger (and optionally the results file)

export-csv OUTPUT [--kwargs k=v ...]
    - Writes the stored results as CSV

All subcommands accept the same --kwargs as the module (input_dir=...,
progress_path=..., results_path=..., max_concurrency=..., ...); anything not
given falls back to WATER_SUPPLIER_* env vars, then defaults.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules import water_supplier
from modules.water_supplier.lib import ConfigError, PersistenceError, ProgressLedger, ResultStore, Settings
from modules.water_supplier.lib import state_io
from service import logging_utils as L

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except ValueError:
            out[k] = v
    return out


def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("KEY", "VALUE")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings.from_env_and_kwargs(args.overrides)


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    kwargs = dict(args.overrides)
    if args.restart:
        kwargs["restart"] = True
    LOG.debug("Run water_supplier with kwargs=%s", kwargs)

    stop_event = threading.Event()

    def _request_stop(signum=None, frame=None):
        LOG.info("Signal %s received; stopping after the current batch...", signum)
        stop_event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _request_stop)
        except ValueError:
            # Not in the main thread (e.g. embedded); run without signal handling.
            pass

    try:
        summary = water_supplier.run(stop_event=stop_event, **kwargs)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "kwargs": kwargs,
            "summary": summary.as_record(),
            "duration_ms": duration_ms,
        })

        if summary.already_completed:
            print("DONE: Already completed; nothing to do (use --restart to walk the input again).")
        elif summary.stopped_early:
            print(f"STOPPED: {summary.committed} committed; progress saved, rerun to resume.")
        else:
            print(
                f"SUCCESS: {summary.committed} committed, {len(summary.not_found)} not found, "
                f"{summary.skipped_known} skipped as known."
            )
        return 130 if summary.stopped_early else 0

    except KeyboardInterrupt:
        return 130
    except (ConfigError, PersistenceError) as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def cmd_status(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
        state = ProgressLedger(settings.progress_path).load()
        store = ResultStore(settings.results_path).load()
    except (ConfigError, PersistenceError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    _print_table([
        ("progress_path", settings.progress_path),
        ("last_file", state.last_file or "-"),
        ("last_postcode", state.last_postcode or "-"),
        ("completed", str(state.completed).lower()),
        ("results_path", settings.results_path),
        ("results", str(len(store))),
    ])
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
        removed = ProgressLedger(settings.progress_path).reset()
        print(f"{'Removed' if removed else 'No'} progress file: {settings.progress_path}")
        if args.results:
            removed = state_io.remove(settings.results_path)
            print(f"{'Removed' if removed else 'No'} results file: {settings.results_path}")
    except (ConfigError, PersistenceError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    L.write_activity_log({"ts": _now_iso(), "event": "cli_reset", "results": bool(args.results)})
    return 0


def cmd_export_csv(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
        store = ResultStore(settings.results_path).load()
        n = store.export_csv(args.output)
    except (ConfigError, PersistenceError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(f"Wrote {n} row(s) to {args.output}")
    return 0


# ------------------------------- Argparse ------------------------------------
def _add_kwargs(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Settings overrides, e.g. input_dir=ALLCODECSV max_concurrency=3 (JSON values supported).",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Water supplier lookup: resumable batch job tools",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # run
    sp = sub.add_parser("run", help="Look up suppliers for every postcode in the input CSVs (resumable).")
    _add_kwargs(sp)
    sp.add_argument(
        "--restart",
        action="store_true",
        help="Forget saved progress before running (stored results are kept and still skipped).",
    )
    sp.set_defaults(func=cmd_run)

    # status
    sp = sub.add_parser("status", help="Show the progress ledger and result count.")
    _add_kwargs(sp)
    sp.set_defaults(func=cmd_status)

    # reset
    sp = sub.add_parser("reset", help="Delete the progress file.")
    _add_kwargs(sp)
    sp.add_argument("--results", action="store_true", help="Also delete the results file.")
    sp.set_defaults(func=cmd_reset)

    # export-csv
    sp = sub.add_parser("export-csv", help="Write stored results as CSV.")
    sp.add_argument("output", help="Destination CSV path.")
    _add_kwargs(sp)
    sp.set_defaults(func=cmd_export_csv)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    try:
        args.overrides = _parse_kv_pairs(args.kwargs or [])
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
