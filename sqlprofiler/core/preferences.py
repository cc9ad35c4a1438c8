"""Persisted feed preferences."""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

AUTO_SCROLL = "auto_scroll"
DEDUPLICATE = "deduplicate"


def encode_bool(value: bool) -> str:
    return "true" if value else "false"


def decode_bool(value: Optional[str], default: bool) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    return default


class Preferences:
    """Key/value preferences stored as strings in a JSON file.

    Values are read once at startup and written back on every change.
    """

    def __init__(self, settings_file: Optional[Path] = None):
        """Initialize preferences.

        Args:
            settings_file: Path to the preferences file. If None, uses
                ``~/.sqlprofiler/preferences.json``.
        """
        if settings_file is None:
            self.settings_file = Path.home() / '.sqlprofiler' / 'preferences.json'
        else:
            self.settings_file = Path(settings_file)

        self.defaults = {
            AUTO_SCROLL: encode_bool(True),
            DEDUPLICATE: encode_bool(False),
        }
        self.values = self.load()

    def load(self) -> Dict[str, str]:
        """Load preferences, falling back to defaults on any problem."""
        values = self.defaults.copy()
        if not self.settings_file.exists():
            logger.info("No preferences file, using defaults")
            return values

        try:
            with open(self.settings_file, 'r') as f:
                loaded = json.load(f)
            values.update({k: str(v) for k, v in loaded.items()})
            logger.info(f"Loaded preferences from {self.settings_file}")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Error loading preferences: {e}")
        return values

    def save(self) -> bool:
        """Write preferences to disk.

        Returns:
            True if successful, False otherwise.
        """
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w') as f:
                json.dump(self.values, f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Error saving preferences: {e}")
            return False

    def get_bool(self, key: str) -> bool:
        return decode_bool(self.values.get(key), decode_bool(self.defaults.get(key), False))

    def set_bool(self, key: str, value: bool) -> None:
        self.values[key] = encode_bool(value)
        self.save()

    @property
    def auto_scroll(self) -> bool:
        return self.get_bool(AUTO_SCROLL)

    @auto_scroll.setter
    def auto_scroll(self, value: bool) -> None:
        self.set_bool(AUTO_SCROLL, value)

    @property
    def deduplicate(self) -> bool:
        return self.get_bool(DEDUPLICATE)

    @deduplicate.setter
    def deduplicate(self, value: bool) -> None:
        self.set_bool(DEDUPLICATE, value)
