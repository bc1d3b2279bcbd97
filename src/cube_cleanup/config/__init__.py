from cube_cleanup.config.settings import (
    BackupSettings,
    CleanupSettings,
    ObservabilitySettings,
    Settings,
    TriplestoreSettings,
    get_settings,
    load_settings,
)

__all__ = [
    "Settings",
    "TriplestoreSettings",
    "BackupSettings",
    "CleanupSettings",
    "ObservabilitySettings",
    "get_settings",
    "load_settings",
]
