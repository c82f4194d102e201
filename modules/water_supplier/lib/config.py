from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from .utils import getenv_str, truthy

DEFAULT_ENDPOINT_URL = (
    "https://www.water.org.uk/customers/find-your-supplier?ajax_form=1&_wrapper_format=drupal_ajax"
)
# Session-bound Drupal form token; expires server-side, so it is overridable.
DEFAULT_FORM_BUILD_ID = "form-L5pD8ZkLBHXVZ8bFpzrd3oIEPn94DYlRz298X2_IG1s"

_ENV_PREFIX = "WATER_SUPPLIER_"


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Model
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for one water supplier run.

    Every path and tunable lives here (nothing module-global), so tests can
    build isolated instances pointing at tmp_path.
    """

    input_dir: str = "ALLCODECSV"
    progress_path: str = "progress.json"
    results_path: str = "water_suppliers_results.json"

    max_retries: int = 3
    max_concurrency: int = 3
    retry_delay_seconds: float = 2.0
    flush_every: int = 10

    endpoint_url: str = DEFAULT_ENDPOINT_URL
    form_build_id: str = DEFAULT_FORM_BUILD_ID
    timeout_seconds: float = 15.0
    user_agent: str = "Mozilla/5.0"

    # Clear the progress ledger before running (results are kept).
    restart: bool = False

    def with_overrides(self, **changes: Any) -> Settings:
        s = replace(self, **changes)
        _validate_settings(s)
        return s

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None = None) -> Settings:
        """
        Build Settings from kwargs, falling back to WATER_SUPPLIER_* env vars,
        then to the dataclass defaults.

        Recognized keys (kwarg name / env suffix):
            input_dir / INPUT_DIR
            progress_path / PROGRESS_PATH
            results_path / RESULTS_PATH
            max_retries / MAX_RETRIES
            max_concurrency / MAX_CONCURRENCY
            retry_delay_seconds / RETRY_DELAY
            flush_every / FLUSH_EVERY
            endpoint_url / ENDPOINT
            form_build_id / FORM_BUILD_ID
            timeout_seconds / TIMEOUT
            restart (kwargs only)
        """
        kw = dict(kwargs or {})
        d = cls()

        def pick(key: str, env_suffix: str, default: Any) -> Any:
            val = kw.get(key)
            if val is None or (isinstance(val, str) and not val.strip()):
                val = getenv_str(_ENV_PREFIX + env_suffix)
            return default if val is None else val

        try:
            settings = cls(
                input_dir=str(pick("input_dir", "INPUT_DIR", d.input_dir)).strip(),
                progress_path=str(pick("progress_path", "PROGRESS_PATH", d.progress_path)).strip(),
                results_path=str(pick("results_path", "RESULTS_PATH", d.results_path)).strip(),
                max_retries=int(pick("max_retries", "MAX_RETRIES", d.max_retries)),
                max_concurrency=int(pick("max_concurrency", "MAX_CONCURRENCY", d.max_concurrency)),
                retry_delay_seconds=float(pick("retry_delay_seconds", "RETRY_DELAY", d.retry_delay_seconds)),
                flush_every=int(pick("flush_every", "FLUSH_EVERY", d.flush_every)),
                endpoint_url=str(pick("endpoint_url", "ENDPOINT", d.endpoint_url)).strip(),
                form_build_id=str(pick("form_build_id", "FORM_BUILD_ID", d.form_build_id)).strip(),
                timeout_seconds=float(pick("timeout_seconds", "TIMEOUT", d.timeout_seconds)),
                user_agent=str(kw.get("user_agent") or d.user_agent),
                restart=truthy(kw.get("restart")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid water_supplier setting: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _validate_settings(s: Settings) -> None:
    if s.max_retries < 1:
        raise ConfigError("'max_retries' must be >= 1.")
    if s.max_concurrency < 1:
        raise ConfigError("'max_concurrency' must be >= 1.")
    if s.flush_every < 1:
        raise ConfigError("'flush_every' must be >= 1.")
    if s.retry_delay_seconds < 0:
        raise ConfigError("'retry_delay_seconds' cannot be negative.")
    if s.timeout_seconds < 0:
        raise ConfigError("'timeout_seconds' cannot be negative.")
    for name in ("input_dir", "progress_path", "results_path", "endpoint_url"):
        if not getattr(s, name):
            raise ConfigError(f"'{name}' cannot be empty.")
    if os.path.abspath(s.progress_path) == os.path.abspath(s.results_path):
        raise ConfigError("'progress_path' and 'results_path' must be different files.")
