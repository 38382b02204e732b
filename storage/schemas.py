"""Warehouse table schemas."""
from typing import Dict, List, Tuple

# Event mirror. One row per observed mutation; start/end are nullable because
# cancelled events in an incremental feed carry no time bounds.
EVENTS_TABLE_SCHEMA: List[Dict[str, str]] = [
    {'name': 'record_load_time', 'type': 'TIMESTAMP', 'mode': 'REQUIRED'},
    {'name': 'id', 'type': 'STRING', 'mode': 'REQUIRED'},
    {'name': 'summary', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'description', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'start', 'type': 'TIMESTAMP', 'mode': 'NULLABLE'},
    {'name': 'end', 'type': 'TIMESTAMP', 'mode': 'NULLABLE'},
    {'name': 'code', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'client', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'project', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'task', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'rate', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'comments', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'company_size', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'categories', 'type': 'STRING', 'mode': 'REPEATED'},
    {'name': 'original_title', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'deleted', 'type': 'BOOL', 'mode': 'NULLABLE'},
    {'name': 'ical_uid', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'creator_email', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'created_time', 'type': 'TIMESTAMP', 'mode': 'NULLABLE'},
    {'name': 'modified_time', 'type': 'TIMESTAMP', 'mode': 'NULLABLE'},
]

# Catalog snapshot. Each sync appends the full ledger with a fresh timestamp.
CATALOG_TABLE_SCHEMA: List[Dict[str, str]] = [
    {'name': 'record_date_time', 'type': 'TIMESTAMP', 'mode': 'REQUIRED'},
    {'name': 'id', 'type': 'STRING', 'mode': 'REQUIRED'},
    {'name': 'client', 'type': 'STRING', 'mode': 'REQUIRED'},
    {'name': 'project', 'type': 'STRING', 'mode': 'REQUIRED'},
    {'name': 'task', 'type': 'STRING', 'mode': 'REQUIRED'},
    {'name': 'default', 'type': 'BOOLEAN', 'mode': 'NULLABLE'},
    {'name': 'from', 'type': 'TIMESTAMP', 'mode': 'REQUIRED'},
    {'name': 'to', 'type': 'TIMESTAMP', 'mode': 'REQUIRED'},
    {'name': 'rate', 'type': 'NUMERIC', 'mode': 'NULLABLE'},
    {'name': 'description', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'comments', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'budgeted_hours', 'type': 'NUMERIC', 'mode': 'NULLABLE'},
    {'name': 'company_size', 'type': 'STRING', 'mode': 'NULLABLE'},
    {'name': 'categories', 'type': 'STRING', 'mode': 'REPEATED'},
    {'name': 'modified_time', 'type': 'TIMESTAMP', 'mode': 'NULLABLE'},
]


def required_fields(schema: List[Dict[str, str]]) -> Tuple[str, ...]:
    """Names of REQUIRED columns in a schema."""
    return tuple(column['name'] for column in schema if column.get('mode') == 'REQUIRED')
