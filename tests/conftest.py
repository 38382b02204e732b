"""Shared fixtures for the sync tests."""
from datetime import date, datetime, timezone

import pytest

from processor.models import CatalogLedgerRow, FetchResult, RawEventMutation
from storage.property_store import InMemoryPropertyStore

from fakes import FakeWarehouseProvider


@pytest.fixture
def aws_env(monkeypatch):
    """Fake AWS credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def properties():
    return InMemoryPropertyStore()


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def mutation():
    """A confirmed event carrying a full metadata bag."""
    return RawEventMutation(
        id='evt-1',
        status='confirmed',
        summary='Design review',
        description='Weekly review',
        start='2024-06-01T10:00:00Z',
        end='2024-06-01T11:00:00Z',
        ical_uid='evt-1@google.com',
        creator_email='owner@example.com',
        created='2024-05-30T08:00:00.000Z',
        updated='2024-05-31T08:00:00.000Z',
        shared_properties={
            'Code': 'ACME-001',
            'Client': 'Acme',
            'Project': 'Website',
            'Task': 'Design',
            'Rate': '120',
            'Comments': 'Billable',
            'CompanySize': '50-200',
            'Categories': '["design", "meeting"]',
            'OriginalTitle': 'Review'
        }
    )


@pytest.fixture
def cancelled_mutation():
    """A cancelled event as it appears in an incremental feed."""
    return RawEventMutation(id='evt-2', status='cancelled')


@pytest.fixture
def ledger_rows():
    return [
        CatalogLedgerRow(
            code='ACME-001', client='Acme', project='Website', task='Design',
            is_default=True, start=date(2024, 1, 1), end=date(2024, 12, 31),
            rate=120, description='Design work', comments=None,
            budgeted_hours='40', company_size='50-200', categories='design, web'
        ),
        CatalogLedgerRow(
            code='ACME-002', client='Acme', project='Website', task='Build',
            start=date(2024, 1, 1), end=date(2024, 12, 31), rate='95.5'
        ),
        CatalogLedgerRow(
            code='ACME-003', client='Acme', project='Support', task='Hotline',
            start=date(2023, 1, 1), end=date(2023, 12, 31)
        ),
        CatalogLedgerRow(
            code='GLOBEX-001', client='Globex', project='Audit', task='Fieldwork',
            start=date(2024, 5, 1), end=date(2024, 7, 31), categories='audit'
        ),
    ]


@pytest.fixture
def make_fetch_result():
    def _make(mutations=None, next_token=None):
        return FetchResult(mutations=list(mutations or []), next_token=next_token)
    return _make


@pytest.fixture
def warehouse_provider():
    return FakeWarehouseProvider()
