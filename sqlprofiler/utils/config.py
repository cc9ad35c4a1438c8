"""Configuration management for the SQL profiler."""

import os
import re
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration."""
    theme: str = "textual-dark"
    replay_interval: float = 0.5
    check_updates_on_startup: bool = True
    version: Optional[str] = None


@dataclass
class UpdaterConfig:
    """Where releases are published."""
    endpoints: List[str] = field(default_factory=list)
    timeout: float = 10.0


@dataclass
class KeyBindings:
    """Keyboard shortcuts configuration."""
    quit: str = "ctrl+q"
    connection: str = "f2"
    capture: str = "f5"
    clear: str = "ctrl+l"
    filter: str = "ctrl+f"
    deduplicate: str = "ctrl+d"
    auto_scroll: str = "ctrl+s"
    check_updates: str = "ctrl+u"


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else self._get_default_config_dir()
        self.app_config = AppConfig()
        self.updater_config = UpdaterConfig()
        self.keybindings = KeyBindings()

        # Load environment variables
        load_dotenv()

        self.config_dir.mkdir(parents=True, exist_ok=True)

    def _get_default_config_dir(self) -> Path:
        """Get the default configuration directory."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME')
        if xdg_config:
            return Path(xdg_config) / 'sqlprofiler'

        return Path.home() / '.config' / 'sqlprofiler'

    @property
    def data_dir(self) -> Path:
        """Directory for logs, preferences and downloads."""
        return Path.home() / '.sqlprofiler'

    def load_config(self, config_file: Optional[str] = None) -> None:
        """Load configuration from file. Missing or broken files keep the defaults."""
        if config_file:
            config_path = Path(config_file)
        else:
            locations = [
                self.config_dir / 'config.yaml',
                Path('config') / 'sqlprofiler.yaml',
                Path('sqlprofiler.yaml'),
            ]

            config_path = None
            for loc in locations:
                if loc.exists():
                    config_path = loc
                    break

        if config_path is not None:
            try:
                with open(config_path, 'r') as f:
                    config = self._substitute_env_vars(yaml.safe_load(f) or {})

                if 'app' in config:
                    self._update_dataclass(self.app_config, config['app'])
                if 'updater' in config:
                    self._update_dataclass(self.updater_config, config['updater'])
                if 'keybindings' in config:
                    self._update_dataclass(self.keybindings, config['keybindings'])

                logger.info(f"Configuration loaded from {config_path}")
            except (OSError, yaml.YAMLError, AttributeError) as e:
                logger.error(f"Failed to load configuration: {e}")
        else:
            logger.warning("No configuration file found, using defaults")

        endpoints = os.environ.get('SQLPROFILER_UPDATE_ENDPOINTS')
        if endpoints:
            self.updater_config.endpoints = [e.strip() for e in endpoints.split(',') if e.strip()]

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute ${VAR} references with environment values."""
        if isinstance(data, dict):
            return {k: self._substitute_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):
            pattern = r'\$\{([^}]+)\}'

            def replacer(match):
                var_name = match.group(1)
                return os.environ.get(var_name, match.group(0))

            return re.sub(pattern, replacer, data)
        else:
            return data

    def _update_dataclass(self, obj: Any, data: Dict[str, Any]) -> None:
        """Update dataclass fields from dictionary."""
        for key, value in data.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
            else:
                logger.warning(f"Unknown configuration key: {key}")

    def save_config(self, config_file: Optional[str] = None) -> None:
        """Save current configuration to file."""
        if config_file:
            config_path = Path(config_file)
        else:
            config_path = self.config_dir / 'config.yaml'

        config = {
            'app': asdict(self.app_config),
            'updater': asdict(self.updater_config),
            'keybindings': asdict(self.keybindings),
        }

        try:
            with open(config_path, 'w') as f:
                yaml.dump(config, f, default_flow_style=False, sort_keys=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
