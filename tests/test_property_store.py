"""Unit tests for property stores, the change token store and configuration."""
import boto3
import pytest
from moto import mock_aws

from processor.errors import ConfigurationError
from storage.config_manager import AppConfig, ConfigManager
from storage.property_store import DynamoDBPropertyStore, InMemoryPropertyStore
from storage.token_store import ChangeTokenStore


@pytest.fixture
def properties_table(aws_env):
    """Create a mock DynamoDB properties table."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName='test-properties',
            KeySchema=[{'AttributeName': 'property_key', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'property_key', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


class TestDynamoDBPropertyStore:
    """Test cases for DynamoDBPropertyStore class."""

    def test_set_get_delete(self, properties_table):
        store = DynamoDBPropertyStore('test-properties', scope='install-1')

        assert store.get('SYNC_TOKEN') is None
        store.set('SYNC_TOKEN', 'abc')
        assert store.get('SYNC_TOKEN') == 'abc'
        store.delete('SYNC_TOKEN')
        assert store.get('SYNC_TOKEN') is None

    def test_keys_are_scoped(self, properties_table):
        first = DynamoDBPropertyStore('test-properties', scope='install-1')
        second = DynamoDBPropertyStore('test-properties', scope='install-2')

        first.set('SYNC_TOKEN', 'one')

        assert second.get('SYNC_TOKEN') is None
        item = properties_table.get_item(Key={'property_key': 'install-1#SYNC_TOKEN'})['Item']
        assert item['value'] == 'one'

    def test_token_survives_new_store_instance(self, properties_table):
        """Test that the change token persists across process restarts."""
        ChangeTokenStore(DynamoDBPropertyStore('test-properties')).set('sync-9')

        assert ChangeTokenStore(DynamoDBPropertyStore('test-properties')).get() == 'sync-9'


class TestChangeTokenStore:
    """Test cases for ChangeTokenStore class."""

    def test_lifecycle(self, properties):
        store = ChangeTokenStore(properties)

        assert store.get() is None
        store.set('sync-1')
        store.set('sync-2')
        assert store.get() == 'sync-2'
        store.clear()
        assert store.get() is None

    def test_clear_when_absent(self, properties):
        ChangeTokenStore(properties).clear()
        assert properties.get('SYNC_TOKEN') is None


class TestConfigManager:
    """Test cases for ConfigManager class."""

    CONFIG = AppConfig(
        project_id='demo-project',
        dataset_id='ara_time',
        spreadsheet_id='sheet-123',
        calendar_id='cal-1'
    )

    def test_save_and_get(self, properties):
        manager = ConfigManager(properties)

        assert not manager.is_initialized()
        manager.save_configuration(self.CONFIG)

        assert manager.is_initialized()
        assert manager.get_configuration() == self.CONFIG
        assert manager.require_configuration() == self.CONFIG

    def test_save_rejects_incomplete(self, properties):
        manager = ConfigManager(properties)

        with pytest.raises(ConfigurationError) as exc_info:
            manager.save_configuration(AppConfig('p', None, 's', 'c'))

        assert exc_info.value.missing == ['dataset_id']
        assert not manager.is_initialized()

    def test_defaults_fill_spreadsheet_and_calendar(self, properties):
        properties.set('PROJECT_ID', 'demo-project')
        properties.set('DATASET_ID', 'ara_time')
        manager = ConfigManager(properties, default_spreadsheet_id='sheet-default', default_calendar_id='cal-default')

        config = manager.require_configuration()

        assert config.spreadsheet_id == 'sheet-default'
        assert config.calendar_id == 'cal-default'

    def test_require_names_missing_identifiers(self, properties):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(properties).require_configuration()

        assert set(exc_info.value.missing) == {'project_id', 'dataset_id', 'spreadsheet_id', 'calendar_id'}

    def test_reset_only_touches_managed_keys(self):
        properties = InMemoryPropertyStore({'SYNC_TOKEN': 'keep'})
        manager = ConfigManager(properties)
        manager.save_configuration(self.CONFIG)

        manager.reset_configuration()

        assert properties.get('PROJECT_ID') is None
        assert properties.get('IS_INITIALIZED') is None
        assert properties.get('SYNC_TOKEN') == 'keep'
