"""Global configuration constants for the bookmark navigator."""

from __future__ import annotations

# Storage keys. Every key maps to one serialised record in the storage port.
STORAGE_KEY: str = "bookmark_nav_data_cache"
WEBDAV_CONFIG_KEY: str = "bookmark_nav_webdav_config"
AI_CONFIG_KEY: str = "bookmark_nav_ai_config"
SEARCH_CONFIG_KEY: str = "bookmark_nav_search_config"
SITE_SETTINGS_KEY: str = "bookmark_nav_site_settings"

# Reserved category ids. "common" is the fallback bucket and always exists;
# "all" is a virtual filter and is never stored.
FALLBACK_CATEGORY_ID: str = "common"
ALL_CATEGORY_ID: str = "all"
RESERVED_CATEGORY_IDS: frozenset[str] = frozenset({FALLBACK_CATEGORY_ID, ALL_CATEGORY_ID})

FALLBACK_CATEGORY_NAME: str = "Common"
DEFAULT_CATEGORY_ICON: str = "Folder"

# Environment variables honoured by the CLI.
DATA_DIR_ENV: str = "BOOKMARK_NAV_DATA_DIR"
AI_MODEL_ENV: str = "BOOKMARK_NAV_AI_MODEL"
DEFAULT_DATA_DIR: str = "~/.bookmark_nav"

# Remote collaborators.
DEFAULT_TIMEOUT: float = 8.0
WEBDAV_BACKUP_FILENAME: str = "bookmark_nav_backup.json"
BACKUP_FORMAT_VERSION: int = 1
