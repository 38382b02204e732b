"""Key-value property stores for per-installation state."""
import logging
from typing import Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class InMemoryPropertyStore:
    """Property store backed by a dict. Used locally and in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class DynamoDBPropertyStore:
    """Property store backed by a DynamoDB table."""

    KEY_ATTRIBUTE = 'property_key'
    VALUE_ATTRIBUTE = 'value'

    def __init__(self, table_name: str, scope: str = 'default'):
        """
        Initialize DynamoDB table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key ``property_key``)
            scope: Installation scope prefixed to every key
        """
        self.table_name = table_name
        self.scope = scope
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBPropertyStore for table: {table_name}")

    def _key(self, key: str) -> Dict[str, str]:
        return {self.KEY_ATTRIBUTE: f"{self.scope}#{key}"}

    def get(self, key: str) -> Optional[str]:
        """
        Read a property.

        Args:
            key: Property name

        Returns:
            Stored value or None if absent
        """
        try:
            response = self.table.get_item(Key=self._key(key))
        except ClientError as e:
            logger.error(f"Error reading property {key}: {e}")
            raise

        item = response.get('Item')
        if not item:
            return None
        return item.get(self.VALUE_ATTRIBUTE)

    def set(self, key: str, value: str) -> None:
        item = self._key(key)
        item[self.VALUE_ATTRIBUTE] = value
        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing property {key}: {e}")
            raise

    def delete(self, key: str) -> None:
        try:
            self.table.delete_item(Key=self._key(key))
        except ClientError as e:
            logger.error(f"Error deleting property {key}: {e}")
            raise
