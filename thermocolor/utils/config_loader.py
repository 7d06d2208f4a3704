"""Configuration loading utilities."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..errors import ConfigurationError


class IncludeLoader(yaml.SafeLoader):
    """Safe YAML loader understanding ``!include relative/path.yaml``."""


def _construct_include(loader: IncludeLoader, node: yaml.Node) -> Any:
    base_dir = Path(loader.name).parent if loader.name and not loader.name.startswith("<") else Path(".")
    include_path = base_dir / loader.construct_scalar(node)
    if not include_path.exists():
        raise ConfigurationError(f"Included file not found: {include_path}")
    with open(include_path, "r") as f:
        return yaml.load(f, Loader=IncludeLoader)


IncludeLoader.add_constructor("!include", _construct_include)


class ConfigLoader:
    """Load and manage YAML configurations."""

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Directory relative config paths are looked up in
                when they do not exist relative to the working directory.
        """
        self.config_dir = Path(config_dir) if config_dir else Path("configs")
        self._cache: Dict[str, Dict] = {}

    def resolve(self, config_path: Union[str, Path]) -> Path:
        """Resolve a config path against the working directory, then config_dir."""
        config_path = Path(config_path)
        if config_path.is_absolute() or config_path.exists():
            return config_path
        return self.config_dir / config_path

    def load(
        self,
        config_path: Union[str, Path],
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        ``!include other.yaml`` tags (or the quoted ``"!include other.yaml"``
        string form) are replaced by the content of the referenced file,
        resolved relative to the including file.

        Args:
            config_path: Path to config file.
            use_cache: Whether to use cached config.

        Returns:
            Configuration dictionary (empty for an empty file).

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: If the file is not valid YAML or not a mapping.
        """
        config_path = self.resolve(config_path)
        cache_key = str(config_path)

        if use_cache and cache_key in self._cache:
            return self._cache[cache_key].copy()

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                config = yaml.load(f, Loader=IncludeLoader) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

        config = self._process_includes(config, config_path.parent)

        if use_cache:
            self._cache[cache_key] = config

        return config.copy()

    def load_section(
        self,
        config_path: Union[str, Path],
        section: str,
        required: bool = False,
    ) -> Dict[str, Any]:
        """
        Load one top-level section of a config file.

        Raises:
            ConfigurationError: If the section is required but missing, or not a mapping.
        """
        config = self.load(config_path)
        if section not in config:
            if required:
                raise ConfigurationError(f"Section '{section}' missing from {config_path}")
            return {}
        value = config[section] or {}
        if not isinstance(value, dict):
            raise ConfigurationError(f"Section '{section}' in {config_path} must be a mapping")
        return value

    def _process_includes(
        self,
        config: Dict,
        base_dir: Path,
    ) -> Dict:
        """
        Expand string-form ``"!include path"`` values.

        Args:
            config: Configuration dictionary.
            base_dir: Base directory for relative includes.

        Returns:
            Processed configuration.
        """
        result = {}

        for key, value in config.items():
            if isinstance(value, str) and value.startswith("!include "):
                include_path = base_dir / value[len("!include "):].strip()
                result[key] = self.load(include_path, use_cache=False)
            elif isinstance(value, dict):
                result[key] = self._process_includes(value, base_dir)
            else:
                result[key] = value

        return result

    def merge(
        self,
        base: Dict[str, Any],
        override: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Deep merge two configurations.

        ``None`` values in ``override`` leave the base value untouched, so
        unset command line options do not mask file settings.

        Args:
            base: Base configuration.
            override: Override configuration.

        Returns:
            Merged configuration.
        """
        result = base.copy()

        for key, value in override.items():
            if value is None:
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.merge(result[key], value)
            else:
                result[key] = value

        return result


def get_nested(
    config: Dict[str, Any],
    key: str,
    default: Any = None,
) -> Any:
    """
    Get nested config value using dot notation.

    Args:
        config: Configuration dictionary.
        key: Dot-separated key (e.g., 'colorize.min_temperature').
        default: Default value if key not found.

    Returns:
        Config value or default.
    """
    keys = key.split(".")
    value = config

    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default

    return value
