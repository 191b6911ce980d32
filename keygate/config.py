"""
Config system - Layered typed configuration with validation.

Merge precedence (later overrides earlier):
1. ``KeygateConfig`` defaults
2. Config files (JSON or YAML), in the order given
3. ``.env`` file (only ``KG_`` keys)
4. Environment variables (``KG_`` prefix)
5. Manual overrides
"""

import json
import logging
import os
import types
from dataclasses import MISSING, asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin, get_type_hints

import yaml
from dotenv import dotenv_values

from .faults import ConfigFault

logger = logging.getLogger("keygate.config")

ENV_PREFIX = "KG_"
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
DATABASE_SCHEMES = ("sqlite:", "memory:")
REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


def mask_url(url: Optional[str]) -> Optional[str]:
    """Hide the credentials part of a connection URL."""
    if not url or "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


@dataclass
class KeygateConfig:
    """Runtime settings for the key service."""
    database_url: str = "sqlite:///keygate.db"
    redis_url: Optional[str] = None
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0
    cache_ttl: int = 900
    lock_ttl: float = 10.0
    rate_limit_max: int = 100
    rate_limit_window: float = 60.0
    sweep_interval: float = 60.0
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 4
    secret_bytes: int = 48
    log_level: str = "info"

    def to_dict(self, redact_urls: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if redact_urls:
            data["redis_url"] = mask_url(data["redis_url"])
        return data


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list] = None,
        env_prefix: str = ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source.

        Args:
            paths: Config files (``.json``, ``.yaml`` or ``.yml``)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file (missing file is skipped)
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping, ``os.environ`` by default

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for path in paths or []:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigFault(f"config file not found: {path}")
        suffix = path.suffix.lower()
        if suffix == ".json":
            self._load_json_file(path)
        elif suffix in (".yaml", ".yml"):
            self._load_yaml_file(path)
        else:
            raise ConfigFault(f"unsupported config file type: {path.name}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigFault(f"{path.name}: {e}") from e
        self._merge_section(data, path)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigFault(f"{path.name}: {e}") from e
        if data:
            self._merge_section(data, path)

    def _merge_section(self, data: Any, path: Path):
        """Files may keep settings at the top level or under ``keygate:``."""
        if not isinstance(data, dict):
            raise ConfigFault(f"{path.name}: top level must be a mapping")
        section = data.get("keygate", data)
        if not isinstance(section, dict):
            raise ConfigFault(f"{path.name}: 'keygate' section must be a mapping")
        self._merge_dict(self.config_data, section)
        logger.debug(f"Loaded config file {path}")

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            logger.debug(f"No env file at {path}")
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_key(key, value)

    def _load_from_env(self, environ):
        """Load config from environment variables."""
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_key(key, value)

    def _set_key(self, key: str, value: str):
        """KG_CACHE_TTL=60 -> {"cache_ttl": 60}"""
        self.config_data[key[len(self.env_prefix):].lower()] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
        if lowered in ("none", "null", ""):
            return None

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def build(self) -> KeygateConfig:
        """Instantiate and validate ``KeygateConfig``."""
        known = {f.name for f in fields(KeygateConfig)}
        for key in self.config_data:
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}'")
        config = self._instantiate_dataclass(KeygateConfig, self.config_data)
        validate_config(config)
        return config

    def _instantiate_dataclass(self, config_class, data: dict):
        """Instantiate dataclass config with validation."""
        hints = get_type_hints(config_class)
        kwargs = {}

        for field_info in fields(config_class):
            field_name = field_info.name
            if field_name in data:
                value = self._coerce(data[field_name], hints[field_name])
                if not self._check_type(value, hints[field_name]):
                    raise ConfigFault(
                        f"'{field_name}' expected {getattr(hints[field_name], '__name__', hints[field_name])}, "
                        f"got {type(value).__name__}",
                        field=field_name,
                    )
                kwargs[field_name] = value
            elif field_info.default is MISSING:
                raise ConfigFault(f"required field '{field_name}' not provided", field=field_name)

        return config_class(**kwargs)

    @staticmethod
    def _coerce(value: Any, expected_type: Any) -> Any:
        # Whole numbers are fine where floats are expected
        if expected_type is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """Basic type checking."""
        origin = get_origin(expected_type)
        if origin is Union or origin is types.UnionType:
            if value is None:
                return type(None) in get_args(expected_type)
            return any(
                self._check_type(value, arg)
                for arg in get_args(expected_type)
                if arg is not type(None)
            )
        if expected_type in (int, float) and isinstance(value, bool):
            return False
        return isinstance(value, expected_type)


def validate_config(config: KeygateConfig) -> None:
    """Range and format checks. Raises ConfigFault."""
    if not config.database_url.startswith(DATABASE_SCHEMES):
        raise ConfigFault("database_url must be sqlite:///<path> or memory://", field="database_url")
    if config.redis_url is not None and not config.redis_url.startswith(REDIS_SCHEMES):
        raise ConfigFault("redis_url must be a redis://, rediss:// or unix:// URL", field="redis_url")

    positive = (
        "redis_max_connections",
        "redis_socket_timeout",
        "cache_ttl",
        "lock_ttl",
        "rate_limit_max",
        "rate_limit_window",
        "sweep_interval",
        "argon2_time_cost",
        "argon2_parallelism",
    )
    for name in positive:
        if getattr(config, name) <= 0:
            raise ConfigFault(f"{name} must be positive", field=name)

    if config.argon2_memory_cost < 8 * config.argon2_parallelism:
        raise ConfigFault(
            "argon2_memory_cost must be at least 8 KiB per lane", field="argon2_memory_cost"
        )
    if config.secret_bytes < 32:
        raise ConfigFault("secret_bytes must be at least 32", field="secret_bytes")
    if config.log_level.lower() not in LOG_LEVELS:
        raise ConfigFault(f"log_level must be one of {', '.join(LOG_LEVELS)}", field="log_level")


def load_config(
    paths: Optional[list] = None,
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> KeygateConfig:
    """Shortcut for ``ConfigLoader.load(...).build()``."""
    return ConfigLoader.load(
        paths=paths, env_file=env_file, overrides=overrides, environ=environ
    ).build()
