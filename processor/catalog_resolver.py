"""Hierarchical views over the project ledger."""
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from processor.errors import ValidationError
from processor.models import CatalogLedgerRow, CatalogTask, CatalogTree

logger = logging.getLogger(__name__)


class CatalogResolver:
    """
    Builds client -> project -> task views from ledger rows.

    All methods are pure: they read the rows they are given and return new
    structures on every call.
    """

    MANDATORY_FIELDS = ('record_date_time', 'id', 'client', 'project', 'task', 'from', 'to')
    TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

    def build_tree(self, rows: List[CatalogLedgerRow]) -> CatalogTree:
        """
        Group rows by client then project, keeping ledger order.

        Args:
            rows: Ledger rows

        Returns:
            Nested dict of client -> project -> list of CatalogTask
        """
        tree: CatalogTree = {}
        for row in rows:
            tree.setdefault(row.client, {}).setdefault(row.project, []).append(self._task(row))
        return tree

    def active_tree(self, rows: List[CatalogLedgerRow], as_of: date) -> CatalogTree:
        """Build the tree from rows whose validity window contains ``as_of``."""
        return self.build_tree(self._active_rows(rows, as_of))

    def active_clients(self, rows: List[CatalogLedgerRow], as_of: date) -> List[str]:
        """Distinct active clients in order of first occurrence."""
        return _distinct(row.client for row in self._active_rows(rows, as_of))

    def active_projects(self, rows: List[CatalogLedgerRow], as_of: date) -> List[str]:
        """Distinct active projects in order of first occurrence."""
        return _distinct(row.project for row in self._active_rows(rows, as_of))

    def active_tasks(self, rows: List[CatalogLedgerRow], as_of: date) -> List[CatalogTask]:
        """Active tasks with their codes."""
        return [self._task(row) for row in self._active_rows(rows, as_of) if row.task]

    def all_clients(self, rows: List[CatalogLedgerRow]) -> List[str]:
        return _distinct(row.client for row in rows)

    def all_projects(self, rows: List[CatalogLedgerRow]) -> List[str]:
        return _distinct(row.project for row in rows)

    def tasks(self, rows: List[CatalogLedgerRow]) -> List[CatalogTask]:
        return [self._task(row) for row in rows]

    def is_active(self, row: CatalogLedgerRow, as_of: date) -> bool:
        """
        Check whether a row's validity window contains ``as_of``.

        A missing start or end bound collapses to ``as_of`` itself.
        """
        start = row.start or as_of
        end = row.end or as_of
        return start <= as_of <= end

    def to_warehouse_rows(
        self,
        rows: List[CatalogLedgerRow],
        now: datetime,
        strict: bool = True
    ) -> List[Dict[str, Any]]:
        """
        Flatten ledger rows into catalog snapshot rows.

        Args:
            rows: Ledger rows
            now: Snapshot time stamped on every row
            strict: Raise on the first row missing a mandatory field. When
                False, such rows are returned as-is for the sink to reject.

        Returns:
            List of warehouse row dictionaries

        Raises:
            ValidationError: If strict and a mandatory field is missing
        """
        timestamp = now.isoformat()
        warehouse_rows = []

        for index, row in enumerate(rows):
            warehouse_row = {
                'record_date_time': timestamp,
                'id': row.code,
                'client': row.client,
                'project': row.project,
                'task': row.task,
                'default': row.is_default,
                'from': self._format_bound(row.start),
                'to': self._format_bound(row.end),
                'rate': _to_number(row.rate),
                'description': row.description,
                'comments': row.comments,
                'budgeted_hours': _to_number(row.budgeted_hours),
                'company_size': row.company_size,
                'categories': split_categories(row.categories),
                'modified_time': timestamp
            }

            if strict:
                for field_name in self.MANDATORY_FIELDS:
                    if warehouse_row[field_name] is None:
                        raise ValidationError(
                            f'Row {index + 1}: Missing mandatory field "{field_name}".',
                            row_index=index,
                            field=field_name
                        )

            warehouse_rows.append(warehouse_row)

        logger.info(f"Prepared {len(warehouse_rows)} catalog rows for the warehouse")
        return warehouse_rows

    def _active_rows(self, rows: List[CatalogLedgerRow], as_of: date) -> List[CatalogLedgerRow]:
        return [row for row in rows if self.is_active(row, as_of)]

    def _task(self, row: CatalogLedgerRow) -> CatalogTask:
        return CatalogTask(
            code=row.code,
            task=row.task,
            is_default=row.is_default,
            rate=row.rate,
            description=row.description,
            comments=row.comments,
            start=row.start,
            end=row.end
        )

    def _format_bound(self, value: Optional[date]) -> Optional[str]:
        if value is None:
            return None
        return datetime(value.year, value.month, value.day).strftime(self.TIMESTAMP_FORMAT)


def split_categories(raw: Optional[str]) -> List[str]:
    """Split a comma-separated categories cell into trimmed names."""
    if not raw:
        return []
    return [name.strip() for name in raw.split(',') if name.strip()]


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _distinct(values) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen
