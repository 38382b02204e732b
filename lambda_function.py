"""AWS Lambda handler for the calendar and catalog warehouse sync."""
import json
import logging
import os
import time
from datetime import date
from typing import Any, Dict

from processor.errors import (
    ConfigurationError,
    PartialInsertError,
    SourceFetchError,
    SyncError,
    WarehouseInsertError,
)
from processor.models import InsertResult
from source.calendar_source import CalendarChangeSource
from source.google_api import AccessTokenProvider, GoogleApiClient
from source.ledger_source import LedgerSource
from storage.catalog_cache import CatalogCache
from storage.config_manager import ConfigManager
from storage.property_store import DynamoDBPropertyStore
from storage.token_store import ChangeTokenStore
from storage.warehouse_sink import BigQueryProvider, WarehouseSink
from sync.orchestrator import SyncOrchestrator

# Survives between invocations of a warm container.
_catalog_cache = CatalogCache(
    expiry_seconds=int(os.environ.get('CATALOG_CACHE_EXPIRY', CatalogCache.DEFAULT_EXPIRY_SECONDS))
)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    EXTRA_FIELDS = ('action', 'mode', 'table', 'rejected', 'tombstones', 'missing', 'error_type')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key in self.EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def build_property_store() -> DynamoDBPropertyStore:
    return DynamoDBPropertyStore(
        table_name=os.environ.get('PROPERTIES_TABLE_NAME', 'calendar-sync-properties'),
        scope=os.environ.get('PROPERTIES_SCOPE', 'default')
    )


def build_orchestrator() -> SyncOrchestrator:
    """
    Wire the sync components from environment and stored configuration.

    Google calls authenticate with the service account key from
    GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_SERVICE_ACCOUNT_FILE.

    Raises:
        ConfigurationError: If required identifiers are missing
    """
    properties = build_property_store()
    config = ConfigManager(
        properties,
        default_spreadsheet_id=os.environ.get('DEFAULT_SPREADSHEET_ID'),
        default_calendar_id=os.environ.get('DEFAULT_CALENDAR_ID')
    ).require_configuration()

    client = GoogleApiClient(
        token_provider=AccessTokenProvider(),
        timeout=int(os.environ.get('TIMEOUT_SECONDS', '30'))
    )
    ledger = LedgerSource(
        client,
        spreadsheet_id=config.spreadsheet_id,
        sheet_name=os.environ.get('LEDGER_SHEET_NAME', 'Projects')
    )
    sink = WarehouseSink(
        BigQueryProvider(client, project_id=config.project_id, dataset_id=config.dataset_id),
        events_table=os.environ.get('EVENTS_TABLE', 'time'),
        catalog_table=os.environ.get('CATALOG_TABLE', 'projects')
    )

    return SyncOrchestrator(
        token_store=ChangeTokenStore(properties),
        calendar_source=CalendarChangeSource(client, calendar_id=config.calendar_id),
        sink=sink,
        ledger_loader=ledger.read_all_rows,
        catalog_cache=_catalog_cache
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def _error_response(message: str, error: Exception, start_time: float, **extra) -> Dict[str, Any]:
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    }
    body.update(extra)
    return _response(500, body)


def _token_note(action: str, error: SyncError) -> Dict[str, str]:
    """Describe what a failed run did to the change token."""
    if action != 'event_sync':
        return {}
    if error.token_cleared:
        return {'note': 'Stale change token cleared, the next run performs a full sync'}
    return {'note': 'Change token left unchanged'}


def reset_event_sync() -> Dict[str, Any]:
    """Clear the change token without loading the rest of the configuration."""
    ChangeTokenStore(build_property_store()).clear()
    return {'message': 'Sync token reset. The next sync will perform a full sync.'}


def _run_action(orchestrator: SyncOrchestrator, action: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """Run one action and return its response body."""
    as_of = date.fromisoformat(event['as_of']) if event.get('as_of') else None

    if action == 'event_sync':
        report = orchestrator.run_event_sync()
        if event.get('fail_on_row_errors'):
            InsertResult(inserted=report.appended, errors=report.errors).raise_for_errors()
        return {
            'message': 'Event sync completed' if report.status != 'completed_with_errors'
            else 'Event sync completed with errors',
            'status': report.status,
            'statistics': {
                'mode': report.mode,
                'mutations_fetched': report.fetched,
                'rows_appended': report.appended,
                'rows_rejected': report.rejected,
                'token_persisted': report.token_persisted,
                'fell_back_to_full': report.fell_back_to_full
            },
            'errors': [error.to_dict() for error in report.errors]
        }

    if action == 'catalog_sync':
        report = orchestrator.run_catalog_sync()
        if event.get('fail_on_row_errors'):
            InsertResult(inserted=report.appended, errors=report.errors).raise_for_errors()
        return {
            'message': 'Catalog sync completed' if report.status == 'success'
            else 'Catalog sync completed with errors',
            'status': report.status,
            'statistics': {
                'ledger_rows': report.ledger_rows,
                'rows_appended': report.appended,
                'rows_rejected': report.rejected
            },
            'errors': [error.to_dict() for error in report.errors]
        }

    if action == 'active_tree':
        tree = orchestrator.active_tree(as_of)
        return {
            'tree': {
                client: {
                    project: [task.to_dict() for task in tasks]
                    for project, tasks in projects.items()
                }
                for client, projects in tree.items()
            }
        }

    if action == 'active_clients':
        return {'clients': orchestrator.active_clients(as_of)}

    if action == 'active_projects':
        return {'projects': orchestrator.active_projects(as_of)}

    raise ValueError(f"Unknown action: {action}")


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: EventBridge schedule or admin payload, ``{"action": ...}``
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    event = event or {}
    action = event.get('action', 'event_sync')
    start_time = time.time()
    logger.info("Lambda execution started", extra={'action': action})

    try:
        if action == 'reset_event_sync':
            body = reset_event_sync()
        else:
            body = _run_action(build_orchestrator(), action, event)
    except ConfigurationError as e:
        logger.error(f"Configuration incomplete: {e}", extra={'missing': e.missing})
        return _error_response('Configuration incomplete', e, start_time, missing=e.missing)
    except SourceFetchError as e:
        logger.error(
            f"Failed to fetch calendar events: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(
            'Failed to fetch calendar events', e, start_time,
            **_token_note(action, e)
        )
    except WarehouseInsertError as e:
        logger.error(
            f"Failed to append rows to the warehouse: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(
            'Failed to append rows to the warehouse', e, start_time,
            **_token_note(action, e)
        )
    except PartialInsertError as e:
        logger.error(f"Sync completed with row errors: {e}")
        return _error_response(
            'Sync completed with row errors', e, start_time,
            rows_appended=e.inserted,
            errors=[error.to_dict() for error in e.errors]
        )
    except Exception as e:
        logger.error(
            f"Lambda execution failed: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)

    duration = round(time.time() - start_time, 2)
    body['duration_seconds'] = duration
    logger.info("Lambda execution completed successfully", extra={'action': action})
    return _response(200, body)
