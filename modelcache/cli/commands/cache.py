"""
ModelCache CLI commands.

Commands:
    flush     Flush one model's cache scope, or every model scope.
    check     Validate configuration and probe the configured store.
    inspect   Show the effective configuration as JSON.

``flush`` reports problems (unknown model, failed flush) as messages and
still exits 0, so scripts calling it never abort on cache trouble.
"""

from __future__ import annotations

import asyncio
import importlib
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click

from ...config import ModelCacheConfig, load_config
from ...core import FlushStrategy
from ...faults import CacheConfigFault, ScopeNotFoundFault
from ...service import ModelCache, create_model_cache
from ..utils.colors import _CHECK, _CROSS, _WARN, error, info, kv, section, success, warning

T = TypeVar("T")


def _load(config_path: Optional[str]) -> ModelCacheConfig:
    try:
        return load_config(config_path)
    except CacheConfigFault as fault:
        raise click.ClickException(fault.message) from fault


def _run(cache: ModelCache, action: Callable[[ModelCache], Awaitable[T]]) -> T:
    """Run one async action against ``cache`` and release the store."""

    async def _main() -> T:
        try:
            return await action(cache)
        finally:
            await cache.shutdown()

    return asyncio.run(_main())


def resolve_model(path: str) -> type:
    """
    Import a model class from ``pkg.module:Class`` or ``pkg.module.Class``.

    Raises:
        ScopeNotFoundFault: module or attribute missing, or not a class
    """
    if ":" in path:
        module_name, _, attr_path = path.partition(":")
    else:
        module_name, _, attr_path = path.rpartition(".")
    if not module_name or not attr_path:
        raise ScopeNotFoundFault(path, "expected 'package.module:Class'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ScopeNotFoundFault(path, f"cannot import module '{module_name}': {e}") from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ScopeNotFoundFault(path, f"'{part}' not found in '{module_name}'") from None

    if not isinstance(target, type):
        raise ScopeNotFoundFault(path, "not a class")
    return target


def cmd_flush(model_path: Optional[str] = None, config_path: Optional[str] = None) -> None:
    """Flush a single model scope (``model_path``) or every model scope."""
    config = _load(config_path)
    cache = create_model_cache(config)
    info(f"Model cache store: {cache.store.name}")

    if not model_path:
        strategy = _run(cache, lambda c: c.flush_all_scopes())
        _report(strategy, "all models", cache.store.name)
        return

    try:
        model = resolve_model(model_path)
    except ScopeNotFoundFault as fault:
        error(f"{_CROSS} {fault.message}")
        return

    info(f"Attempting to clear cache for model: {model_path}")
    if not cache.registry.is_cacheable(model):
        warning(
            f"{_WARN} {model_path} does not implement CacheableQuerySource. "
            f"Flushing its derived scope; cache functionality might be limited."
        )

    scope = cache.scope_for(model)
    info(f"Model storage: {scope.storage_tag}")
    strategy = _run(cache, lambda c: c.flush(model))
    _report(strategy, model_path, cache.store.name)


def _report(strategy: FlushStrategy, target: str, store_name: str) -> None:
    if strategy is FlushStrategy.TAGS:
        success(f"{_CHECK} Cache cleared for {target} using tags")
    elif strategy is FlushStrategy.FULL:
        warning(f"{_WARN} Store '{store_name}' could not flush by tags; entire cache flushed")
        success(f"{_CHECK} Cache cleared for {target}")
    else:
        error(f"{_CROSS} Cache flush failed for {target}; entries expire with their TTL")


def cmd_check(config_path: Optional[str] = None, verbose: bool = False) -> None:
    """Validate configuration and probe the store with a write/read/forget."""
    config = _load(config_path)

    section("Model Cache Configuration Check")
    kv("Enabled", config.enabled)
    kv("Store", config.store)
    kv("Cache minutes", config.cache_minutes)
    kv("Key prefix", repr(config.key_prefix))
    kv("Global tag", config.global_tag)
    kv("Serializer", config.serializer)
    kv("Debug mode", config.debug_mode)
    if config.store == "redis":
        kv("Redis URL", config.redis_url)
    if config.store in ("memory", "array"):
        kv("Max size", config.max_size)

    cache = create_model_cache(config)
    kv("Tag support", "yes" if cache.store.supports_tags else "no (full flush fallback)")
    click.echo()

    async def _probe(c: ModelCache) -> bool:
        key = f"{config.key_prefix}__probe__"
        await c.store.put(key, b"ok", ttl=10)
        found = await c.store.get(key)
        await c.store.forget(key)
        return found == b"ok"

    try:
        ok = _run(cache, _probe)
    except Exception as e:
        error(f"{_CROSS} Store probe failed: {e}")
        return

    if ok or config.store == "null":
        success(f"{_CHECK} Model cache configuration valid")
    else:
        error(f"{_CROSS} Store '{cache.store.name}' did not return the probe value")


def cmd_inspect(config_path: Optional[str] = None, verbose: bool = False) -> None:
    """Display the effective configuration as JSON."""
    config = _load(config_path)
    indent = 2 if verbose else None
    click.echo(json.dumps(config.to_dict(), indent=indent, default=str))
