"""Mapper from calendar event mutations to warehouse rows."""
import json
import logging
from typing import Dict, List

from processor.models import EventMetadata, RawEventMutation, WarehouseEventRecord

logger = logging.getLogger(__name__)


class EventRecordMapper:
    """Normalizes raw event mutations into flat warehouse records."""

    CANCELLED_STATUS = 'cancelled'

    # Shared metadata keys as written by the event card.
    METADATA_KEYS = {
        'code': 'Code',
        'client': 'Client',
        'project': 'Project',
        'task': 'Task',
        'rate': 'Rate',
        'comments': 'Comments',
        'company_size': 'CompanySize',
        'original_title': 'OriginalTitle',
    }
    CATEGORIES_KEY = 'Categories'

    def map(self, mutation: RawEventMutation, load_timestamp: str) -> WarehouseEventRecord:
        """
        Map one mutation to a warehouse record.

        Args:
            mutation: Raw event mutation from the change feed
            load_timestamp: ISO 8601 timestamp shared by the whole run

        Returns:
            WarehouseEventRecord
        """
        metadata = self.decode_metadata(mutation.shared_properties)

        return WarehouseEventRecord(
            record_load_time=load_timestamp,
            id=mutation.id,
            summary=mutation.summary or '',
            description=mutation.description or '',
            start=mutation.start,
            end=mutation.end,
            code=metadata.code,
            client=metadata.client,
            project=metadata.project,
            task=metadata.task,
            rate=metadata.rate,
            comments=metadata.comments,
            company_size=metadata.company_size,
            categories=metadata.categories,
            original_title=metadata.original_title,
            deleted=mutation.status == self.CANCELLED_STATUS,
            ical_uid=mutation.ical_uid or '',
            creator_email=mutation.creator_email or '',
            created_time=mutation.created,
            modified_time=mutation.updated
        )

    def map_all(self, mutations: List[RawEventMutation], load_timestamp: str) -> List[WarehouseEventRecord]:
        """Map a batch of mutations with one shared load timestamp."""
        return [self.map(mutation, load_timestamp) for mutation in mutations]

    def decode_metadata(self, bag: Dict[str, str]) -> EventMetadata:
        """
        Decode the shared metadata bag into a fixed-shape struct.

        Unknown keys are ignored and missing keys default to empty values.

        Args:
            bag: Shared extended properties of the event

        Returns:
            EventMetadata
        """
        bag = bag or {}
        fields = {
            name: str(bag.get(key) or '')
            for name, key in self.METADATA_KEYS.items()
        }
        return EventMetadata(
            categories=self.parse_categories(bag.get(self.CATEGORIES_KEY)),
            **fields
        )

    def parse_categories(self, raw: str) -> List[str]:
        """
        Parse the categories JSON array string.

        Args:
            raw: JSON encoded list of category names

        Returns:
            List of categories, empty if missing or malformed
        """
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to parse categories JSON {raw!r}: {e}")
            return []

        if not isinstance(parsed, list):
            logger.warning(f"Categories JSON is not a list: {raw!r}")
            return []

        return [str(item) for item in parsed]
