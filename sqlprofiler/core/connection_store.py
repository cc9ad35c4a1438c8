"""Saved connection parameters."""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from sqlprofiler.core.models import ConnectionConfig

logger = logging.getLogger(__name__)

SETTINGS_FILE = "connection.json"


@dataclass
class SavedConnection:
    """Connection parameters as written to disk. Never holds a password."""
    server_name: str = "localhost"
    authentication: str = "sql"
    username: str = "sa"
    database: str = ""
    encrypt: str = "mandatory"
    trust_cert: bool = True
    remember_password: bool = True

    def to_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            server_name=self.server_name,
            authentication=self.authentication,
            username=self.username,
            database=self.database,
            encrypt=self.encrypt,
            trust_cert=self.trust_cert,
        )


class ConnectionStore:
    """Reads and writes the last successful connection."""

    def __init__(self, config_dir: Path):
        self.settings_file = Path(config_dir) / SETTINGS_FILE

    def save(self, config: ConnectionConfig, remember_password: bool) -> None:
        """Persist the connection parameters.

        Raises:
            OSError: if the file cannot be written.
        """
        saved = SavedConnection(
            server_name=config.server_name,
            authentication=config.authentication,
            username=config.username,
            database=config.database,
            encrypt=config.encrypt,
            trust_cert=config.trust_cert,
            remember_password=remember_password,
        )
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.settings_file, 'w') as f:
            json.dump(asdict(saved), f, indent=2)
        logger.info(f"Saved connection to {self.settings_file}")

    def load(self) -> Optional[SavedConnection]:
        """Load the saved connection, or None if there is none usable."""
        if not self.settings_file.exists():
            logger.info("No saved connection")
            return None

        try:
            with open(self.settings_file, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            defaults = asdict(SavedConnection())
            defaults.update({k: v for k, v in data.items() if k in defaults})
            return SavedConnection(**defaults)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Invalid saved connection {self.settings_file}: {e}")
            return None
