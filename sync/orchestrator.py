"""Composes sources, mappers and the warehouse sink into sync runs."""
import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from processor.catalog_resolver import CatalogResolver
from processor.errors import StaleTokenError, SyncError
from processor.event_mapper import EventRecordMapper
from processor.models import (
    CatalogSyncReport,
    CatalogTask,
    CatalogTree,
    EventSyncReport,
    FetchResult,
    FullSync,
    IncrementalSync,
    sync_request_from_token,
)
from storage.catalog_cache import CatalogCache

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Runs the event mirror and the catalog snapshot.

    Runs are independent and only ever append to the warehouse. Fatal errors
    propagate and leave the change token and cache as they were, unless a
    stale token was already cleared for the full-sync fallback. Row-level
    errors are reported without aborting the run.
    """

    def __init__(
        self,
        token_store,
        calendar_source,
        sink,
        ledger_loader: Callable,
        catalog_cache: Optional[CatalogCache] = None,
        mapper: Optional[EventRecordMapper] = None,
        resolver: Optional[CatalogResolver] = None,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Args:
            token_store: ChangeTokenStore
            calendar_source: Object with ``fetch(request)``
            sink: WarehouseSink
            ledger_loader: Callable returning the authoritative ledger rows
            catalog_cache: Cache shared with selection flows
            mapper: Event record mapper
            resolver: Catalog resolver
            clock: Returns the current UTC datetime
        """
        self.token_store = token_store
        self.calendar_source = calendar_source
        self.sink = sink
        self.ledger_loader = ledger_loader
        self.catalog_cache = catalog_cache or CatalogCache()
        self.mapper = mapper or EventRecordMapper()
        self.resolver = resolver or CatalogResolver()
        self.clock = clock

    def run_event_sync(self) -> EventSyncReport:
        """
        Mirror calendar mutations since the stored token into the warehouse.

        Returns:
            EventSyncReport

        Raises:
            SourceFetchError: If the change feed cannot be read
            WarehouseInsertError: If the warehouse rejects the whole batch
        """
        request = sync_request_from_token(self.token_store.get())
        fell_back = False

        try:
            result = self.calendar_source.fetch(request)
        except StaleTokenError:
            if not isinstance(request, IncrementalSync):
                raise
            logger.warning("Stored change token is stale, falling back to a full sync")
            self.token_store.clear()
            request = FullSync()
            fell_back = True
            try:
                result = self.calendar_source.fetch(request)
            except SyncError as e:
                e.token_cleared = True
                raise

        mode = 'incremental' if isinstance(request, IncrementalSync) else 'full'

        if not result.mutations:
            persisted = self._persist_token(result)
            logger.info("No new events to sync", extra={'mode': mode})
            return EventSyncReport(
                mode=mode,
                fetched=0,
                appended=0,
                rejected=0,
                errors=[],
                token_persisted=persisted,
                fell_back_to_full=fell_back
            )

        load_timestamp = self.clock().isoformat()
        records = self.mapper.map_all(result.mutations, load_timestamp)
        try:
            insert_result = self.sink.append_events(records)
        except SyncError as e:
            e.token_cleared = fell_back
            raise
        persisted = self._persist_token(result)

        logger.info(
            f"Synced {insert_result.inserted} of {len(records)} events to the warehouse",
            extra={
                'mode': mode,
                'rejected': len(insert_result.errors),
                'tombstones': sum(1 for record in records if record.deleted)
            }
        )
        return EventSyncReport(
            mode=mode,
            fetched=len(records),
            appended=insert_result.inserted,
            rejected=len(insert_result.errors),
            errors=insert_result.errors,
            token_persisted=persisted,
            fell_back_to_full=fell_back
        )

    def reset_event_sync(self) -> None:
        """Forget the change token so the next run is a full sync."""
        self.token_store.clear()

    def run_catalog_sync(self) -> CatalogSyncReport:
        """
        Append a snapshot of the authoritative ledger to the warehouse.

        The cache is bypassed on the way in and invalidated on the way out so
        selection flows never see a pre-sync copy.

        Returns:
            CatalogSyncReport
        """
        self.catalog_cache.invalidate()
        rows = self.catalog_cache.get(self.ledger_loader)

        warehouse_rows = self.resolver.to_warehouse_rows(rows, self.clock(), strict=False)
        insert_result = self.sink.append_catalog_rows(warehouse_rows)

        self.catalog_cache.invalidate()

        logger.info(
            f"Synced {insert_result.inserted} of {len(rows)} catalog rows to the warehouse",
            extra={'rejected': len(insert_result.errors)}
        )
        return CatalogSyncReport(
            ledger_rows=len(rows),
            appended=insert_result.inserted,
            rejected=len(insert_result.errors),
            errors=insert_result.errors
        )

    def catalog_tree(self) -> CatalogTree:
        return self.resolver.build_tree(self._ledger())

    def active_tree(self, as_of: Optional[date] = None) -> CatalogTree:
        return self.resolver.active_tree(self._ledger(), as_of or self._today())

    def active_clients(self, as_of: Optional[date] = None) -> List[str]:
        return self.resolver.active_clients(self._ledger(), as_of or self._today())

    def active_projects(self, as_of: Optional[date] = None) -> List[str]:
        return self.resolver.active_projects(self._ledger(), as_of or self._today())

    def active_tasks(self, as_of: Optional[date] = None) -> List[CatalogTask]:
        return self.resolver.active_tasks(self._ledger(), as_of or self._today())

    def _ledger(self):
        return self.catalog_cache.get(self.ledger_loader)

    def _today(self) -> date:
        return self.clock().date()

    def _persist_token(self, result: FetchResult) -> bool:
        if not result.next_token:
            return False
        self.token_store.set(result.next_token)
        return True
