# water_supplier/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """Shared HTTP session for lookups: pooled, thread-safe for concurrent POSTs."""

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "Mozilla/5.0",
        pool_size: int = 3,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        # Retries are owned by the retry wrapper: one lookup() == one request.
        retry = Retry(total=0, raise_on_status=False)
        size = max(1, int(pool_size))
        adapter = HTTPAdapter(max_retries=retry, pool_connections=size, pool_maxsize=size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def post_form(
        self,
        url: str,
        *,
        data: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        POST url-encoded form fields and return the response.
        Non-2xx statuses raise requests.HTTPError.
        """
        resp = self.session.post(
            url,
            data=dict(data),
            headers=dict(headers or {}),
            timeout=timeout or self.timeout,
            **kwargs,
        )
        resp.raise_for_status()
        return resp

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
