"""Append-only warehouse sink for event and catalog rows."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from processor.errors import WarehouseInsertError
from processor.models import InsertResult, RowError, WarehouseEventRecord
from source.google_api import GoogleApiClient, GoogleApiError
from storage.schemas import CATALOG_TABLE_SCHEMA, EVENTS_TABLE_SCHEMA, required_fields

logger = logging.getLogger(__name__)


@dataclass
class ProviderRowError:
    """Row-level failure reported by the warehouse provider."""
    index: int
    reason: str
    message: str


@dataclass
class ProviderInsertResponse:
    """Provider answer to a batch insert."""
    inserted_count: int
    per_row_errors: List[ProviderRowError] = field(default_factory=list)


class BigQueryProvider:
    """Streams rows into BigQuery with ``tabledata.insertAll``."""

    BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"

    def __init__(self, client: GoogleApiClient, project_id: str, dataset_id: str):
        self.client = client
        self.project_id = project_id
        self.dataset_id = dataset_id

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> ProviderInsertResponse:
        """
        Insert rows in one request.

        Invalid rows are skipped by the provider rather than failing the whole
        request. No insertId is sent, so rows are never deduplicated.

        Raises:
            WarehouseInsertError: If the request itself fails
        """
        url = (
            f"{self.BASE_URL}/projects/{self.project_id}/datasets/{self.dataset_id}"
            f"/tables/{table}/insertAll"
        )
        body = {
            'kind': 'bigquery#tableDataInsertAllRequest',
            'skipInvalidRows': True,
            'ignoreUnknownValues': False,
            'rows': [{'json': row} for row in rows]
        }

        try:
            response = self.client.post_json(url, body)
        except GoogleApiError as e:
            logger.error(f"Error inserting rows into {self.dataset_id}.{table}: {e}")
            raise WarehouseInsertError(str(e), status_code=e.status_code) from e

        row_errors = []
        for insert_error in response.get('insertErrors', []):
            details = insert_error.get('errors') or [{}]
            row_errors.append(ProviderRowError(
                index=int(insert_error.get('index', 0)),
                reason=details[0].get('reason', 'unknown'),
                message='; '.join(d.get('message', '') for d in details if d.get('message'))
            ))

        failed = {error.index for error in row_errors}
        return ProviderInsertResponse(
            inserted_count=len(rows) - len(failed),
            per_row_errors=row_errors
        )


class WarehouseSink:
    """
    Validates and appends batches to warehouse tables.

    Insert-only: rows are never updated, deleted or deduplicated. Consumers
    reduce by (id, timestamp) downstream when they need the latest state.
    """

    def __init__(self, provider, events_table: str = 'time', catalog_table: str = 'projects'):
        """
        Args:
            provider: Object with ``insert_batch(table, rows)``
            events_table: Table receiving event records
            catalog_table: Table receiving catalog snapshots
        """
        self.provider = provider
        self.events_table = events_table
        self.catalog_table = catalog_table

    def append_events(self, records: List[WarehouseEventRecord]) -> InsertResult:
        rows = [record.to_row() for record in records]
        return self._append(self.events_table, rows, required_fields(EVENTS_TABLE_SCHEMA))

    def append_catalog_rows(self, rows: List[Dict[str, Any]]) -> InsertResult:
        return self._append(self.catalog_table, rows, required_fields(CATALOG_TABLE_SCHEMA))

    def _append(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        mandatory: Sequence[str]
    ) -> InsertResult:
        """
        Validate rows locally, then submit the valid ones in one batch.

        Args:
            table: Destination table
            rows: Row dictionaries
            mandatory: Fields that must be present and non-empty

        Returns:
            InsertResult with inserted count and row errors (batch indexes)
        """
        errors: List[RowError] = []
        valid_rows = []
        positions = []

        for index, row in enumerate(rows):
            missing = [name for name in mandatory if row.get(name) in (None, '')]
            if missing:
                message = f'Row {index + 1}: Missing mandatory field "{missing[0]}".'
                logger.warning(message, extra={'table': table})
                errors.append(RowError(index=index, reason='validation', message=message))
                continue
            valid_rows.append(row)
            positions.append(index)

        if not valid_rows:
            logger.info(f"No valid rows to insert into {table}")
            return InsertResult(inserted=0, errors=errors)

        response = self.provider.insert_batch(table, valid_rows)

        for provider_error in response.per_row_errors:
            if 0 <= provider_error.index < len(positions):
                errors.append(RowError(
                    index=positions[provider_error.index],
                    reason=provider_error.reason,
                    message=provider_error.message
                ))
                continue
            logger.warning(
                f"Provider reported row {provider_error.index} outside a batch of {len(positions)}",
                extra={'table': table}
            )
            errors.append(RowError(
                index=provider_error.index,
                reason='unknown',
                message=f"Row {provider_error.index} not in submitted batch: {provider_error.message}"
            ))

        errors.sort(key=lambda error: error.index)

        if errors:
            logger.error(
                f"Inserted {response.inserted_count} rows into {table} with {len(errors)} row errors",
                extra={'table': table, 'row_errors': [error.to_dict() for error in errors]}
            )
        else:
            logger.info(f"Successfully inserted {response.inserted_count} rows into {table}")

        return InsertResult(inserted=response.inserted_count, errors=errors)
