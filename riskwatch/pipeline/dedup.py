"""
Update Deduplication: at-most-once scoring per physical update.

The ledger remembers which (subject_id, update_marker) pairs have been
claimed. It is bounded two ways:
1. Window: an entry expires after the maximum plausible redelivery window
2. Size: least-recently-used entries are evicted past `max_entries`

An update without a marker cannot be deduplicated and is always processed.
"""

import time
from typing import Callable, Hashable, Optional

import structlog
from cachetools import TTLCache

from riskwatch.schemas.subject import SubjectUpdate

logger = structlog.get_logger(__name__)


def ledger_key(update: SubjectUpdate) -> Optional[tuple[str, Hashable]]:
    if update.update_marker is None:
        return None
    return update.subject_id, update.update_marker


class UpdateLedger:
    """
    Bounded record of processed updates.

    `claim()` is a synchronous check-and-set, so it is atomic with respect
    to other coroutines on the same event loop.
    """

    def __init__(
        self,
        max_entries: int = 100_000,
        window_minutes: float = 60,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._claims: TTLCache = TTLCache(
            maxsize=max_entries,
            ttl=window_minutes * 60,
            timer=timer,
        )

    def claim(self, update: SubjectUpdate) -> bool:
        """Record the update. Returns False when it was already claimed."""
        key = ledger_key(update)
        if key is None:
            return True
        if key in self._claims:
            logger.debug(
                "update_suppressed_duplicate",
                subject_id=update.subject_id,
                marker=update.update_marker,
            )
            return False
        self._claims[key] = True
        return True

    def release(self, update: SubjectUpdate) -> None:
        """Forget a claim so a redelivery of the update is processed again."""
        key = ledger_key(update)
        if key is not None:
            self._claims.pop(key, None)

    def seen(self, update: SubjectUpdate) -> bool:
        key = ledger_key(update)
        return key is not None and key in self._claims

    def purge_expired(self) -> int:
        return len(self._claims.expire())

    def reset(self) -> None:
        self._claims.clear()

    def __len__(self) -> int:
        return len(self._claims)
