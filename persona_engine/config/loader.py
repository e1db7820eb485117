"""Engine config file loading."""

import yaml
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError

from .models import EngineConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "engine.yaml"


def _field_path(error: Dict[str, Any]) -> str:
    """Dotted location of a pydantic error, e.g. 'export → json_indent'."""
    return " → ".join(str(part) for part in error['loc'])


class ConfigLoadError(Exception):
    """The engine config file could not be read."""


class ConfigValidationError(ConfigLoadError):
    """The engine config file was read but holds invalid settings."""

    def __init__(self, errors: List[Dict[str, Any]], file_path: Path):
        self.errors = errors
        self.file_path = file_path
        details = "\n".join(f"  • {_field_path(err)}: {err['msg']}" for err in errors)
        super().__init__(f"Invalid settings in {file_path}:\n{details}")


class ConfigLoader:
    """Reads config/engine.yaml into an EngineConfig."""

    def __init__(self, config_dir: Path = Path(".")):
        self.config_dir = Path(config_dir)

    def load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """
        Parse a YAML mapping.

        An empty file is an empty mapping.

        Raises:
            ConfigLoadError: If the file is missing, unreadable, not YAML,
                or not a mapping at the top level
        """
        try:
            text = Path(file_path).read_text(encoding='utf-8')
        except FileNotFoundError:
            raise ConfigLoadError(f"Config file not found: {file_path}")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigLoadError(f"Cannot read {file_path}: {e}")

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"{file_path} is not valid YAML: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"{file_path} must contain a mapping of config sections")
        return data

    def load_engine_config(self, file_path: Optional[Path] = None) -> EngineConfig:
        """
        Load the engine config.

        Without an explicit path, config/engine.yaml under config_dir is
        used. A file that does not exist means all defaults.
        """
        path = Path(file_path) if file_path is not None else self.config_dir / DEFAULT_CONFIG_PATH

        if not path.exists():
            logger.info(f"No engine config at {path}, using defaults")
            return EngineConfig()

        data = self.load_yaml(path)
        try:
            config = EngineConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(e.errors(), path)

        logger.info(f"Loaded engine config from {path}")
        return config

    def validate_config(self, data: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """Check settings without loading them; returns (is_valid, messages)."""
        try:
            EngineConfig.model_validate(data)
        except ValidationError as e:
            return False, [f"{_field_path(err)}: {err['msg']}" for err in e.errors()]
        return True, []
