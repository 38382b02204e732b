"""Installation configuration kept in the property store."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from processor.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    """Identifiers needed by the sync runs."""
    project_id: Optional[str]
    dataset_id: Optional[str]
    spreadsheet_id: Optional[str]
    calendar_id: Optional[str]

    def missing(self) -> List[str]:
        return [name for name, value in self.__dict__.items() if not value]


class ConfigManager:
    """Saves, reads and resets the installation configuration."""

    CONFIG_FLAG = 'IS_INITIALIZED'
    KEYS = {
        'project_id': 'PROJECT_ID',
        'dataset_id': 'DATASET_ID',
        'spreadsheet_id': 'SPREADSHEET_ID',
        'calendar_id': 'CALENDAR_ID',
    }

    def __init__(
        self,
        properties,
        default_spreadsheet_id: Optional[str] = None,
        default_calendar_id: Optional[str] = None
    ):
        self.properties = properties
        self.default_spreadsheet_id = default_spreadsheet_id
        self.default_calendar_id = default_calendar_id

    def is_initialized(self) -> bool:
        initialized = self.properties.get(self.CONFIG_FLAG) == 'true'
        logger.info(f"App is {'initialized' if initialized else 'not initialized'}")
        return initialized

    def set_initialized(self, flag: bool) -> None:
        self.properties.set(self.CONFIG_FLAG, 'true' if flag else 'false')

    def save_configuration(self, config: AppConfig) -> None:
        """
        Persist all four identifiers and mark the app initialized.

        Raises:
            ConfigurationError: If any identifier is missing
        """
        missing = config.missing()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                missing=missing
            )

        for attribute, key in self.KEYS.items():
            self.properties.set(key, getattr(config, attribute))

        self.set_initialized(True)
        logger.info("Configuration saved successfully")

    def get_configuration(self) -> AppConfig:
        """Read the configuration, falling back to installation defaults."""
        config = AppConfig(
            project_id=self.properties.get(self.KEYS['project_id']),
            dataset_id=self.properties.get(self.KEYS['dataset_id']),
            spreadsheet_id=self.properties.get(self.KEYS['spreadsheet_id']) or self.default_spreadsheet_id,
            calendar_id=self.properties.get(self.KEYS['calendar_id']) or self.default_calendar_id
        )
        if config.missing():
            logger.warning("Configuration is incomplete", extra={'missing': config.missing()})
        return config

    def require_configuration(self) -> AppConfig:
        """
        Read the configuration and fail if it is incomplete.

        Raises:
            ConfigurationError: Naming the missing identifiers
        """
        config = self.get_configuration()
        missing = config.missing()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                missing=missing
            )
        return config

    def reset_configuration(self) -> None:
        """Delete only the keys managed here."""
        for key in list(self.KEYS.values()) + [self.CONFIG_FLAG]:
            self.properties.delete(key)
        logger.info("Configuration reset successfully")
