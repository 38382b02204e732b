"""Unit tests for CatalogResolver."""
from datetime import date, datetime, timezone

import pytest

from processor.catalog_resolver import CatalogResolver, split_categories
from processor.errors import ValidationError
from processor.models import CatalogLedgerRow


@pytest.fixture
def resolver():
    return CatalogResolver()


class TestCatalogTrees:
    """Test cases for tree building and date filtering."""

    def test_build_tree_groups_by_client_and_project(self, resolver, ledger_rows):
        tree = resolver.build_tree(ledger_rows)

        assert list(tree) == ['Acme', 'Globex']
        assert list(tree['Acme']) == ['Website', 'Support']
        assert [t.task for t in tree['Acme']['Website']] == ['Design', 'Build']
        assert tree['Acme']['Website'][0].code == 'ACME-001'
        assert tree['Globex']['Audit'][0].task == 'Fieldwork'

    def test_build_tree_returns_fresh_structure(self, resolver, ledger_rows):
        first = resolver.build_tree(ledger_rows)
        first['Acme']['Website'].clear()

        assert len(resolver.build_tree(ledger_rows)['Acme']['Website']) == 2

    def test_active_window_inclusion(self, resolver):
        """Test that a row is active inside its window and not after it."""
        rows = [CatalogLedgerRow(
            code='A-1', client='A', project='P', task='T',
            start=date(2024, 1, 1), end=date(2024, 12, 31)
        )]

        inside = resolver.active_tree(rows, date(2024, 6, 1))
        after = resolver.active_tree(rows, date(2025, 1, 1))

        assert [t.task for t in inside['A']['P']] == ['T']
        assert after == {}

    def test_window_bounds_are_inclusive(self, resolver):
        row = CatalogLedgerRow(client='A', project='P', task='T', start=date(2024, 1, 1), end=date(2024, 1, 31))

        assert resolver.is_active(row, date(2024, 1, 1))
        assert resolver.is_active(row, date(2024, 1, 31))
        assert not resolver.is_active(row, date(2023, 12, 31))

    def test_missing_bound_collapses_to_as_of(self, resolver):
        """Test that an open-ended side only covers the as-of date itself."""
        open_end = CatalogLedgerRow(client='A', project='P', task='T', start=date(2024, 1, 1))
        open_start = CatalogLedgerRow(client='A', project='P', task='T', end=date(2024, 12, 31))
        no_bounds = CatalogLedgerRow(client='A', project='P', task='T')

        # Missing end defaults to as_of, so start <= as_of holds.
        assert resolver.is_active(open_end, date(2024, 6, 1))
        assert not resolver.is_active(open_end, date(2023, 6, 1))
        assert resolver.is_active(open_start, date(2024, 6, 1))
        assert not resolver.is_active(open_start, date(2025, 6, 1))
        assert resolver.is_active(no_bounds, date(2030, 1, 1))

    def test_active_clients_and_projects(self, resolver, ledger_rows):
        assert resolver.active_clients(ledger_rows, date(2024, 6, 1)) == ['Acme', 'Globex']
        assert resolver.active_clients(ledger_rows, date(2024, 9, 1)) == ['Acme']
        assert resolver.active_projects(ledger_rows, date(2024, 6, 1)) == ['Website', 'Audit']
        assert resolver.active_projects(ledger_rows, date(2023, 6, 1)) == ['Support']

    def test_active_tasks(self, resolver, ledger_rows):
        tasks = resolver.active_tasks(ledger_rows, date(2024, 9, 1))
        assert [t.code for t in tasks] == ['ACME-001', 'ACME-002']

    def test_all_clients_projects_and_tasks(self, resolver, ledger_rows):
        assert resolver.all_clients(ledger_rows) == ['Acme', 'Globex']
        assert resolver.all_projects(ledger_rows) == ['Website', 'Support', 'Audit']
        assert len(resolver.tasks(ledger_rows)) == 4


class TestToWarehouseRows:
    """Test cases for catalog snapshot rows."""

    NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)

    def test_row_shape(self, resolver, ledger_rows):
        rows = resolver.to_warehouse_rows(ledger_rows, self.NOW)

        first = rows[0]
        assert first['record_date_time'] == '2024-06-01T09:30:00+00:00'
        assert first['modified_time'] == first['record_date_time']
        assert first['id'] == 'ACME-001'
        assert first['client'] == 'Acme'
        assert first['default'] is True
        assert first['from'] == '2024-01-01 00:00:00'
        assert first['to'] == '2024-12-31 00:00:00'
        assert first['rate'] == 120.0
        assert first['budgeted_hours'] == 40.0
        assert first['categories'] == ['design', 'web']
        assert first['comments'] is None

    def test_numeric_coercion(self, resolver):
        base = dict(code='X', client='C', project='P', task='T', start=date(2024, 1, 1), end=date(2024, 1, 2))
        rows = resolver.to_warehouse_rows([
            CatalogLedgerRow(rate='95.5', budgeted_hours='n/a', **base),
            CatalogLedgerRow(rate=0, budgeted_hours=None, **base),
        ], self.NOW)

        assert rows[0]['rate'] == 95.5
        assert rows[0]['budgeted_hours'] is None
        assert rows[1]['rate'] == 0.0
        assert rows[1]['default'] is None

    def test_missing_mandatory_field_names_row(self, resolver, ledger_rows):
        """Test that strict mode reports the 1-based row number and field."""
        broken = ledger_rows[:2] + [CatalogLedgerRow(code='B', project='P', task='T',
                                                     start=date(2024, 1, 1), end=date(2024, 2, 1))]

        with pytest.raises(ValidationError) as exc_info:
            resolver.to_warehouse_rows(broken, self.NOW)

        assert 'Row 3' in str(exc_info.value)
        assert '"client"' in str(exc_info.value)
        assert exc_info.value.row_index == 2
        assert exc_info.value.field == 'client'

    def test_non_strict_keeps_invalid_rows(self, resolver):
        rows = resolver.to_warehouse_rows([CatalogLedgerRow(code='B')], self.NOW, strict=False)
        assert rows[0]['client'] is None

    def test_identical_ledger_gives_identical_content(self, resolver, ledger_rows):
        """Test that two snapshots differ only in timestamps."""
        later = datetime(2024, 6, 2, tzinfo=timezone.utc)
        first = resolver.to_warehouse_rows(ledger_rows, self.NOW)
        second = resolver.to_warehouse_rows(ledger_rows, later)

        strip = lambda row: {k: v for k, v in row.items() if k not in ('record_date_time', 'modified_time')}
        assert [strip(r) for r in first] == [strip(r) for r in second]
        assert first[0]['record_date_time'] != second[0]['record_date_time']


def test_split_categories():
    assert split_categories(' a, b ,,c ') == ['a', 'b', 'c']
    assert split_categories(None) == []
    assert split_categories('') == []
