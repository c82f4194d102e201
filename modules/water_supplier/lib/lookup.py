"""
Lookup client for the Water UK "find your supplier" endpoint.

One call = one POST. The endpoint answers with a Drupal AJAX command list
(a JSON array of envelope objects); the supplier card is an HTML fragment in
the `data` field of the entry at ENVELOPE_INDEX.

    [{"command": "settings", ...},
     {"command": "insert", ...},
     {"command": "insert", "data": "<div class=\"supplier\">...</div>"}]

The HTML step is a pure function (`parse_supplier_html`) so it can be tested
against literal fixtures without any network.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from bs4 import BeautifulSoup

from .config import Settings
from .http_client import HttpClient
from .models import NOT_FOUND, PostcodeRecord

log = logging.getLogger(__name__)

ENVELOPE_INDEX = 2

FORM_ID = "wateruk_find_my_supplier"


# -----------------------------
# Exceptions
# -----------------------------
class LookupFailed(Exception):
    """Base exception for a single failed lookup attempt."""

    def __init__(self, postcode: str, message: str):
        super().__init__(f"[{postcode}] {message}")
        self.postcode = postcode


class TransportError(LookupFailed):
    """Connection failure, DNS error or timeout."""


class HTTPStatusError(LookupFailed):
    """Endpoint answered with a non-2xx status."""

    def __init__(self, postcode: str, status_code: int, message: str = ""):
        super().__init__(postcode, message or f"HTTP {status_code}")
        self.status_code = status_code


class ParseError(LookupFailed):
    """Body is not the expected JSON envelope list."""


# -----------------------------
# Pure parsing
# -----------------------------
def parse_supplier_html(html: str) -> dict[str, str]:
    """
    Pull name/phone/link out of the supplier card fragment.

    Each field falls back to NOT_FOUND on its own; a partial card is still a
    valid result.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    name = NOT_FOUND
    h2 = soup.select_one("h2.supplier__name")
    if h2 is not None:
        name = h2.get_text(strip=True) or NOT_FOUND

    phone = NOT_FOUND
    p = soup.select_one("p.supplier__phone")
    b = p.find("b") if p is not None else None
    if b is not None:
        phone = b.get_text(strip=True) or NOT_FOUND

    link = NOT_FOUND
    a = soup.select_one('a[class^="supplier__link"][href]')
    if a is not None:
        link = (a.get("href") or "").strip() or NOT_FOUND

    return {"name": name, "phone": phone, "link": link}


def extract_fragment(payload: Any, postcode: str = "") -> str:
    """
    Return the HTML fragment from the AJAX envelope list, or raise ParseError.
    """
    if not isinstance(payload, list):
        raise ParseError(postcode, f"expected a JSON array, got {type(payload).__name__}")
    if len(payload) <= ENVELOPE_INDEX:
        raise ParseError(postcode, f"envelope has {len(payload)} entries; need index {ENVELOPE_INDEX}")
    entry = payload[ENVELOPE_INDEX]
    if not isinstance(entry, Mapping):
        raise ParseError(postcode, f"envelope[{ENVELOPE_INDEX}] is not an object")
    data = entry.get("data")
    if not isinstance(data, str):
        raise ParseError(postcode, f"envelope[{ENVELOPE_INDEX}] has no string 'data'")
    return data


# -----------------------------
# Client
# -----------------------------
class LookupClient:
    """
    Stateless apart from the pooled HTTP session; safe to share across the
    scheduler's worker threads.
    """

    def __init__(self, settings: Settings, client: HttpClient | None = None) -> None:
        self._settings = settings
        self._client = client or HttpClient(
            timeout=settings.timeout_seconds,
            user_agent=settings.user_agent,
            pool_size=settings.max_concurrency,
        )

    def form_data(self, postcode: str) -> dict[str, str]:
        return {
            "postcode": postcode,
            "form_build_id": self._settings.form_build_id,
            "form_id": FORM_ID,
            "_triggering_element_name": "op",
            "_triggering_element_value": "Submit",
            "_drupal_ajax": "1",
        }

    def lookup(self, postcode: str) -> PostcodeRecord:
        log.debug("[Postcode %s] Sending request...", postcode)
        try:
            resp = self._client.post_form(
                self._settings.endpoint_url,
                data=self.form_data(postcode),
                headers={"Content-Type": "application/x-www-form-urlencoded; charset=UTF-8"},
            )
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            raise HTTPStatusError(postcode, status, f"HTTP {status} from endpoint") from e
        except requests.RequestException as e:
            # ConnectionError, Timeout, TooManyRedirects, ...
            raise TransportError(postcode, repr(e)) from e

        try:
            payload = resp.json()
        except ValueError as e:
            preview = (resp.text or "")[:200].replace("\n", " ")
            raise ParseError(postcode, f"body is not JSON; starts: {preview!r}") from e

        fields = parse_supplier_html(extract_fragment(payload, postcode))
        log.debug("[Postcode %s] Extracted: %s", postcode, fields["name"])
        return PostcodeRecord(
            postcode=postcode,
            supplier=fields["name"],
            phone=fields["phone"],
            link=fields["link"],
        )

    def close(self) -> None:
        self._client.close()
