"""
UI Preferences

Device-local preferences kept in the local store regardless of identity:
- "settings": display flags
- "theme": "light" or "dark" (default "dark")
- "profilePicture": data URL of the avatar, or null
"""

from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from finnko.services.storage.interface import LocalStoreInterface


logger = structlog.get_logger(__name__)

SETTINGS_KEY = "settings"
THEME_KEY = "theme"
PROFILE_PICTURE_KEY = "profilePicture"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class DisplaySettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    show_percentage_change: bool = Field(default=False, alias="showPercentageChange")


class PreferencesStore:

    def __init__(self, local: LocalStoreInterface):
        self._local = local

    @property
    def settings(self) -> DisplaySettings:
        raw = self._local.get(SETTINGS_KEY)
        if raw is None:
            return DisplaySettings()
        try:
            return DisplaySettings.model_validate(raw)
        except ValidationError as e:
            logger.warning("settings_invalid", error=str(e))
            return DisplaySettings()

    def save_settings(self, settings: DisplaySettings) -> None:
        self._local.set(SETTINGS_KEY, settings.model_dump(by_alias=True))

    def toggle_percentage_change(self) -> DisplaySettings:
        current = self.settings
        updated = current.model_copy(update={"show_percentage_change": not current.show_percentage_change})
        self.save_settings(updated)
        return updated

    @property
    def theme(self) -> Theme:
        try:
            return Theme(self._local.get(THEME_KEY, Theme.DARK.value))
        except ValueError:
            return Theme.DARK

    def set_theme(self, theme: Theme) -> None:
        self._local.set(THEME_KEY, Theme(theme).value)

    @property
    def profile_picture(self) -> Optional[str]:
        value = self._local.get(PROFILE_PICTURE_KEY)
        return value if isinstance(value, str) else None

    def set_profile_picture(self, picture: Optional[str]) -> None:
        self._local.set(PROFILE_PICTURE_KEY, picture)

    def snapshot(self) -> dict:
        """Preferences as exported in a backup."""
        return {
            SETTINGS_KEY: self.settings.model_dump(by_alias=True),
            THEME_KEY: self.theme.value,
        }
