"""Data models for calendar and catalog synchronization."""
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from processor.errors import PartialInsertError

logger = logging.getLogger(__name__)

# Sheet column order for the project ledger.
LEDGER_COLUMNS = (
    'code', 'client', 'project', 'task', 'is_default', 'start', 'end',
    'rate', 'description', 'comments', 'budgeted_hours', 'company_size',
    'categories',
)

# Spreadsheet serial dates count days from this epoch.
SHEETS_EPOCH = date(1899, 12, 30)

DATE_FORMATS = [
    '%Y-%m-%d',      # ISO 8601
    '%m/%d/%Y',      # US format
    '%m-%d-%Y',      # US format with dashes
    '%B %d, %Y',     # Full month name
    '%b %d, %Y',     # Abbreviated month name
    '%d.%m.%Y',      # European format with dots
    '%Y/%m/%d',      # Alternative ISO format
]


@dataclass(frozen=True)
class FullSync:
    """Request for the complete current event set."""


@dataclass(frozen=True)
class IncrementalSync:
    """Request for mutations recorded after ``token``."""
    token: str


SyncRequest = Union[FullSync, IncrementalSync]


def sync_request_from_token(token: Optional[str]) -> SyncRequest:
    """Build the fetch request implied by a stored change token."""
    if token:
        return IncrementalSync(token=token)
    return FullSync()


@dataclass
class RawEventMutation:
    """One calendar event as observed in the change feed."""
    id: str
    status: str = 'confirmed'
    summary: Optional[str] = None
    description: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    ical_uid: Optional[str] = None
    creator_email: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    shared_properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> 'RawEventMutation':
        """
        Build a mutation from a Calendar API event resource.

        Args:
            item: Event resource as returned by ``events.list``

        Returns:
            RawEventMutation
        """
        extended = item.get('extendedProperties') or {}
        creator = item.get('creator') or {}
        return cls(
            id=item['id'],
            status=item.get('status', 'confirmed'),
            summary=item.get('summary'),
            description=item.get('description'),
            start=_event_time(item.get('start')),
            end=_event_time(item.get('end')),
            ical_uid=item.get('iCalUID'),
            creator_email=creator.get('email'),
            created=item.get('created'),
            updated=item.get('updated'),
            shared_properties=dict(extended.get('shared') or {}),
        )


def _event_time(value: Optional[Dict[str, str]]) -> Optional[str]:
    # Timed events carry dateTime, all-day events carry date.
    if not value:
        return None
    return value.get('dateTime') or value.get('date')


@dataclass(frozen=True)
class EventMetadata:
    """Fixed-shape view of an event's shared metadata bag."""
    code: str = ''
    client: str = ''
    project: str = ''
    task: str = ''
    rate: str = ''
    comments: str = ''
    company_size: str = ''
    categories: List[str] = field(default_factory=list)
    original_title: str = ''


@dataclass(frozen=True)
class WarehouseEventRecord:
    """Append-only warehouse row for one observed event mutation."""
    record_load_time: str
    id: str
    summary: str
    description: str
    start: Optional[str]
    end: Optional[str]
    code: str
    client: str
    project: str
    task: str
    rate: str
    comments: str
    company_size: str
    categories: List[str]
    original_title: str
    deleted: bool
    ical_uid: str
    creator_email: str
    created_time: Optional[str]
    modified_time: Optional[str]

    def to_row(self) -> Dict[str, Any]:
        """Convert to a warehouse row dictionary."""
        row = asdict(self)
        row['categories'] = list(self.categories)
        return row


@dataclass(frozen=True)
class CatalogLedgerRow:
    """One line of the project ledger."""
    code: Optional[str] = None
    client: Optional[str] = None
    project: Optional[str] = None
    task: Optional[str] = None
    is_default: Optional[bool] = None
    start: Optional[date] = None
    end: Optional[date] = None
    rate: Any = None
    description: Optional[str] = None
    comments: Optional[str] = None
    budgeted_hours: Any = None
    company_size: Optional[str] = None
    categories: Optional[str] = None

    @classmethod
    def from_cells(cls, cells: List[Any]) -> 'CatalogLedgerRow':
        """
        Build a ledger row from sheet cells in fixed column order.

        Short rows are padded; blank cells become None.

        Args:
            cells: Cell values for one sheet row (header excluded)

        Returns:
            CatalogLedgerRow
        """
        padded = list(cells[:len(LEDGER_COLUMNS)])
        padded += [None] * (len(LEDGER_COLUMNS) - len(padded))
        values = dict(zip(LEDGER_COLUMNS, padded))

        return cls(
            code=_text(values['code']),
            client=_text(values['client']),
            project=_text(values['project']),
            task=_text(values['task']),
            is_default=_flag(values['is_default']),
            start=parse_ledger_date(values['start']),
            end=parse_ledger_date(values['end']),
            rate=_blank_to_none(values['rate']),
            description=_text(values['description']),
            comments=_text(values['comments']),
            budgeted_hours=_blank_to_none(values['budgeted_hours']),
            company_size=_text(values['company_size']),
            categories=_text(values['categories']),
        )


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _text(value: Any) -> Optional[str]:
    value = _blank_to_none(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == 'true':
            return True
        if lowered == 'false':
            return False
    return None


def parse_ledger_date(value: Any) -> Optional[date]:
    """
    Parse a ledger date cell.

    Accepts date/datetime objects, spreadsheet serial numbers, ISO 8601
    dates and datetimes, and a handful of common written formats.

    Args:
        value: Raw cell value

    Returns:
        date or None if the cell is blank or unparseable
    """
    value = _blank_to_none(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return SHEETS_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.warning(f"Unparseable ledger date: {text!r}")
    return None


@dataclass(frozen=True)
class CatalogTask:
    """Task entry inside a catalog tree."""
    code: Optional[str]
    task: Optional[str]
    is_default: Optional[bool]
    rate: Any
    description: Optional[str]
    comments: Optional[str]
    start: Optional[date]
    end: Optional[date]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data['start'] = self.start.isoformat() if self.start else None
        data['end'] = self.end.isoformat() if self.end else None
        return data


CatalogTree = Dict[str, Dict[str, List[CatalogTask]]]


@dataclass(frozen=True)
class CachedCatalogSnapshot:
    """Ledger rows captured at a point in time."""
    rows: List[CatalogLedgerRow]
    captured_at: float


@dataclass
class FetchResult:
    """Mutations returned by one change-feed fetch."""
    mutations: List[RawEventMutation]
    next_token: Optional[str]


@dataclass(frozen=True)
class RowError:
    """Row-level failure within a warehouse batch."""
    index: int
    reason: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InsertResult:
    """Outcome of appending one batch to the warehouse."""
    inserted: int
    errors: List[RowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise PartialInsertError if any row was rejected."""
        if self.errors:
            raise PartialInsertError(
                f"{len(self.errors)} rows rejected, {self.inserted} inserted",
                inserted=self.inserted,
                errors=list(self.errors)
            )


@dataclass
class EventSyncReport:
    """Result of an event sync run."""
    mode: str
    fetched: int
    appended: int
    rejected: int
    errors: List[RowError]
    token_persisted: bool
    fell_back_to_full: bool = False

    @property
    def status(self) -> str:
        if self.fetched == 0:
            return 'no_changes'
        if self.errors:
            return 'completed_with_errors'
        return 'success'


@dataclass
class CatalogSyncReport:
    """Result of a catalog snapshot run."""
    ledger_rows: int
    appended: int
    rejected: int
    errors: List[RowError]

    @property
    def status(self) -> str:
        if self.errors:
            return 'completed_with_errors'
        return 'success'
