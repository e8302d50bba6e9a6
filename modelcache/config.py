"""
ModelCache — Configuration.

Layered, typed configuration with merge precedence (later wins):

    defaults → YAML file → .env file → environment variables (MCACHE_*)

Usage::

    from modelcache.config import load_config

    config = load_config()                      # modelcache.yaml + env
    config = load_config("config/cache.yaml")   # explicit file
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .faults import CacheConfigFault
from .serializers import SERIALIZERS

logger = logging.getLogger("modelcache.config")

STORES = ("memory", "array", "redis", "null")

DEFAULT_CONFIG_FILE = "modelcache.yaml"
CONFIG_SECTION = "model_cache"


@dataclass
class ModelCacheConfig:
    """
    Query-result cache configuration.

    ``cache_minutes`` is the global default TTL; entity classes may
    override it with their own ``cache_minutes`` attribute.
    """
    enabled: bool = True
    store: str = "memory"            # "memory" (tagged), "array", "redis", "null"
    cache_minutes: int = 60
    key_prefix: str = "model_cache_"
    global_tag: str = "model_cache"
    serializer: str = "pickle"       # "pickle", "json", "msgpack"
    hash_length: int = 40
    debug_mode: bool = False

    # Memory store
    max_size: int = 10000

    # Redis store
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ``CacheConfigFault`` on invalid values."""
        if self.store not in STORES:
            raise CacheConfigFault(
                f"Unknown cache store '{self.store}'. Options: {list(STORES)}",
                key="store",
            )
        if self.serializer not in SERIALIZERS:
            raise CacheConfigFault(
                f"Unknown serializer '{self.serializer}'. Options: {list(SERIALIZERS)}",
                key="serializer",
            )
        if self.cache_minutes <= 0:
            raise CacheConfigFault("cache_minutes must be positive", key="cache_minutes")
        if not 8 <= self.hash_length <= 64:
            raise CacheConfigFault("hash_length must be between 8 and 64", key="hash_length")
        if self.max_size <= 0:
            raise CacheConfigFault("max_size must be positive", key="max_size")

    @property
    def default_ttl_seconds(self) -> int:
        return self.cache_minutes * 60

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "enabled": self.enabled,
            "store": self.store,
            "cache_minutes": self.cache_minutes,
            "key_prefix": self.key_prefix,
            "global_tag": self.global_tag,
            "serializer": self.serializer,
            "hash_length": self.hash_length,
            "debug_mode": self.debug_mode,
            "max_size": self.max_size,
            "redis_url": self.redis_url,
            "redis_socket_timeout": self.redis_socket_timeout,
        }


def build_config(config_dict: Mapping[str, Any]) -> ModelCacheConfig:
    """
    Build ModelCacheConfig from a mapping, coercing string values.

    Unknown keys are ignored.
    """
    known = {f.name: f for f in fields(ModelCacheConfig)}
    kwargs: Dict[str, Any] = {}
    for key, value in config_dict.items():
        f = known.get(key)
        if f is None:
            logger.debug(f"Ignoring unknown model cache setting '{key}'")
            continue
        kwargs[key] = _coerce(key, value, f.type)
    return ModelCacheConfig(**kwargs)


def load_config(
    path: Optional[Union[str, Path]] = None,
    *,
    env_file: Optional[Union[str, Path]] = ".env",
    env_prefix: str = "MCACHE_",
    overrides: Optional[Mapping[str, Any]] = None,
) -> ModelCacheConfig:
    """
    Load configuration from YAML, ``.env`` and the environment.

    Args:
        path: YAML file. Defaults to ``modelcache.yaml`` when it exists.
        env_file: ``.env`` file read via python-dotenv (None to skip)
        env_prefix: Prefix for environment variables
        overrides: Highest-precedence values

    Returns:
        Validated ModelCacheConfig
    """
    data: Dict[str, Any] = {}

    yaml_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    if path and not yaml_path.exists():
        raise CacheConfigFault(f"Config file not found: {yaml_path}", key="path")
    if yaml_path.exists():
        data.update(_load_yaml_file(yaml_path))

    if env_file and Path(env_file).exists():
        from dotenv import dotenv_values

        data.update(_strip_prefix(dotenv_values(env_file), env_prefix))

    data.update(_strip_prefix(os.environ, env_prefix))

    if overrides:
        data.update(overrides)

    return build_config(data)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    import yaml

    with open(path) as f:
        document = yaml.safe_load(f) or {}
    if not isinstance(document, dict):
        raise CacheConfigFault(f"Config file {path} must contain a mapping", key="path")
    section = document.get(CONFIG_SECTION, document)
    if not isinstance(section, dict):
        raise CacheConfigFault(f"'{CONFIG_SECTION}' in {path} must be a mapping", key="path")
    return dict(section)


def _strip_prefix(source: Mapping[str, Optional[str]], prefix: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in source.items():
        if key.startswith(prefix) and value is not None:
            result[key[len(prefix):].lower()] = value
    return result


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _coerce(key: str, value: Any, annotation: Any) -> Any:
    type_name = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "")
    if not isinstance(value, str):
        return value
    try:
        if type_name == "bool":
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(value)
        if type_name == "int":
            return int(value)
        if type_name == "float":
            return float(value)
    except ValueError:
        raise CacheConfigFault(
            f"Setting '{key}' expects {type_name}, got {value!r}", key=key
        ) from None
    return value
