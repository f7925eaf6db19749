"""Services package."""

from finnko.services.data_management import (
    DataExporter,
    DataPurgeService,
    ImportNotSupportedError,
    PurgeNotConfirmedError,
    PurgeSummary,
)
from finnko.services.identity import (
    AuthenticationError,
    IdentityResolver,
    StaticIdentityResolver,
    SupabaseIdentityResolver,
)
from finnko.services.preferences import (
    DisplaySettings,
    PreferencesStore,
    Theme,
)

__all__ = [
    # Identity
    "AuthenticationError",
    "IdentityResolver",
    "StaticIdentityResolver",
    "SupabaseIdentityResolver",
    # Data management
    "DataExporter",
    "DataPurgeService",
    "ImportNotSupportedError",
    "PurgeNotConfirmedError",
    "PurgeSummary",
    # Preferences
    "DisplaySettings",
    "PreferencesStore",
    "Theme",
]
