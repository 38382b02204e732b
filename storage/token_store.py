"""Persistence for the calendar change token."""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ChangeTokenStore:
    """Keeps the single opaque resumption token for the event feed."""

    TOKEN_KEY = 'SYNC_TOKEN'

    def __init__(self, properties):
        """
        Args:
            properties: Property store with get/set/delete
        """
        self.properties = properties

    def get(self) -> Optional[str]:
        return self.properties.get(self.TOKEN_KEY) or None

    def set(self, token: str) -> None:
        self.properties.set(self.TOKEN_KEY, token)
        logger.info("Change token updated")

    def clear(self) -> None:
        self.properties.delete(self.TOKEN_KEY)
        logger.info("Change token cleared. The next sync will perform a full sync.")
