from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .lookup import LookupFailed
from .models import PostcodeRecord

log = logging.getLogger(__name__)

LookupFn = Callable[[str], PostcodeRecord]


def lookup_with_retries(
    lookup: LookupFn,
    postcode: str,
    max_attempts: int,
    *,
    delay_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> PostcodeRecord:
    """
    Call `lookup` up to `max_attempts` times and return a best-effort record.

    Returns on the first attempt whose supplier name was scraped (phone/link
    may still be "Not Found"). A failed lookup (LookupFailed) counts as an
    all-"Not Found" attempt. A miss is followed by `delay_seconds` before the next attempt.
    This never raises for per-postcode failures.
    """
    record = PostcodeRecord.not_found(postcode)
    attempts = max(1, int(max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            record = lookup(postcode)
        except LookupFailed as e:
            log.info("[Postcode %s] Attempt %d failed: %s", postcode, attempt, e)
            record = PostcodeRecord.not_found(postcode)
        else:
            if record.found:
                log.info("[Postcode %s] Successful result on attempt %d: %s", postcode, attempt, record.supplier)
                return record
            log.info("[Postcode %s] Attempt %d: Extracted supplier: %s", postcode, attempt, record.supplier)

        if attempt < attempts and delay_seconds > 0:
            sleep(delay_seconds)

    log.info("[Postcode %s] All %d attempts failed. Last result: %s", postcode, attempts, record.supplier)
    return record
