"""Time-boxed cache over the project ledger."""
import logging
import time
from typing import Callable, List, Optional

from processor.models import CachedCatalogSnapshot, CatalogLedgerRow

logger = logging.getLogger(__name__)


class CatalogCache:
    """
    Holds one ledger snapshot until it expires or is invalidated.

    Not safe for concurrent use; callers serialize reads and invalidations.
    """

    DEFAULT_EXPIRY_SECONDS = 3600

    def __init__(self, expiry_seconds: int = DEFAULT_EXPIRY_SECONDS, clock: Callable[[], float] = time.time):
        self.expiry_seconds = expiry_seconds
        self.clock = clock
        self._snapshot: Optional[CachedCatalogSnapshot] = None

    @property
    def snapshot(self) -> Optional[CachedCatalogSnapshot]:
        return self._snapshot

    def get(self, loader: Callable[[], List[CatalogLedgerRow]]) -> List[CatalogLedgerRow]:
        """
        Return cached rows, loading them on a miss or after expiry.

        Args:
            loader: Reads the authoritative ledger

        Returns:
            Copy of the cached ledger rows
        """
        now = self.clock()
        if self._snapshot and now - self._snapshot.captured_at < self.expiry_seconds:
            logger.debug("Catalog fetched from cache")
            return list(self._snapshot.rows)

        rows = list(loader())
        self._snapshot = CachedCatalogSnapshot(rows=rows, captured_at=now)
        logger.info(f"Catalog fetched from ledger and cached ({len(rows)} rows)")
        return list(rows)

    def invalidate(self) -> None:
        self._snapshot = None
        logger.info("Catalog cache cleared")
