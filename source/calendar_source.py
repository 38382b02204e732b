"""Change feed reader for a Google Calendar."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from processor.errors import SourceFetchError, StaleTokenError
from processor.models import (
    FetchResult,
    FullSync,
    IncrementalSync,
    RawEventMutation,
    SyncRequest,
    sync_request_from_token,
)
from source.google_api import GoogleApiClient, GoogleApiError

logger = logging.getLogger(__name__)


class CalendarChangeSource:
    """Reads event mutations from the Calendar API using sync tokens."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    PAGE_SIZE = 250
    # The provider answers 410 Gone when a sync token is no longer valid.
    STALE_TOKEN_STATUS = 410

    def __init__(self, client: GoogleApiClient, calendar_id: str, page_size: int = PAGE_SIZE):
        """
        Args:
            client: Authenticated Google API client
            calendar_id: Calendar to read
            page_size: Events per page (max 2500)
        """
        self.client = client
        self.calendar_id = calendar_id
        self.page_size = page_size

    @property
    def events_url(self) -> str:
        return f"{self.BASE_URL}/calendars/{quote(self.calendar_id, safe='')}/events"

    def fetch(self, request: Optional[SyncRequest]) -> FetchResult:
        """
        Fetch event mutations for a full or incremental sync.

        Pages through the feed until exhaustion. Cancelled events are kept so
        deletions reach the warehouse.

        Args:
            request: FullSync, IncrementalSync, or a raw token / None

        Returns:
            FetchResult with all mutations and the next change token

        Raises:
            StaleTokenError: If the provider rejected the change token
            SourceFetchError: If the feed could not be read
        """
        if not isinstance(request, (FullSync, IncrementalSync)):
            request = sync_request_from_token(request)

        mode = 'incremental' if isinstance(request, IncrementalSync) else 'full'
        logger.info(f"Fetching calendar events ({mode} sync)")

        mutations: List[RawEventMutation] = []
        page_token: Optional[str] = None
        next_token: Optional[str] = None
        pages = 0

        while True:
            payload = self._fetch_page(request, page_token)
            pages += 1

            for item in payload.get('items', []):
                mutations.append(RawEventMutation.from_api(item))

            page_token = payload.get('nextPageToken')
            if not page_token:
                next_token = payload.get('nextSyncToken')
                break

        logger.info(
            f"Fetched {len(mutations)} event mutations in {pages} pages",
            extra={'mode': mode, 'has_next_token': next_token is not None}
        )
        return FetchResult(mutations=mutations, next_token=next_token)

    def _fetch_page(self, request: SyncRequest, page_token: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'maxResults': self.page_size,
            'showDeleted': 'true',
            'singleEvents': 'true'
        }
        if isinstance(request, IncrementalSync):
            params['syncToken'] = request.token
        if page_token:
            params['pageToken'] = page_token

        try:
            return self.client.get_json(self.events_url, params=params)
        except GoogleApiError as e:
            if e.status_code == self.STALE_TOKEN_STATUS and isinstance(request, IncrementalSync):
                logger.warning("Change token rejected by the calendar provider")
                raise StaleTokenError(str(e), status_code=e.status_code) from e
            logger.error(f"Failed to fetch calendar events: {e}")
            raise SourceFetchError(str(e), status_code=e.status_code) from e
