"""
Tests for model cache configuration loading.
"""

from __future__ import annotations

import os

import pytest

from modelcache import CacheConfigFault, ModelCache, ModelCacheConfig, build_config, load_config
from modelcache.service import create_model_cache
from modelcache.stores import MemoryStore, NullStore, TaggedMemoryStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("MCACHE_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestModelCacheConfig:
    def test_defaults(self):
        cfg = ModelCacheConfig()
        assert cfg.enabled is True
        assert cfg.store == "memory"
        assert cfg.cache_minutes == 60
        assert cfg.key_prefix == "model_cache_"
        assert cfg.global_tag == "model_cache"
        assert cfg.serializer == "pickle"
        assert cfg.hash_length == 40
        assert cfg.debug_mode is False
        assert cfg.default_ttl_seconds == 3600

    def test_to_dict(self):
        d = ModelCacheConfig(store="redis", cache_minutes=5).to_dict()
        assert d["store"] == "redis"
        assert d["cache_minutes"] == 5
        assert "redis_url" in d

    @pytest.mark.parametrize("kwargs", [
        {"store": "memcached"},
        {"serializer": "yaml"},
        {"cache_minutes": 0},
        {"hash_length": 4},
        {"max_size": 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(CacheConfigFault) as exc_info:
            ModelCacheConfig(**kwargs)
        assert exc_info.value.code == "CACHE_CONFIG_INVALID"


class TestBuildConfig:
    def test_coerces_strings(self):
        cfg = build_config({
            "enabled": "false",
            "cache_minutes": "15",
            "debug_mode": "yes",
            "redis_socket_timeout": "2.5",
        })
        assert cfg.enabled is False
        assert cfg.cache_minutes == 15
        assert cfg.debug_mode is True
        assert cfg.redis_socket_timeout == 2.5

    def test_unknown_keys_ignored(self):
        cfg = build_config({"store": "array", "colour": "blue"})
        assert cfg.store == "array"

    def test_bad_number(self):
        with pytest.raises(CacheConfigFault):
            build_config({"cache_minutes": "soon"})

    def test_bad_bool(self):
        with pytest.raises(CacheConfigFault):
            build_config({"enabled": "maybe"})


class TestLoadConfig:
    def test_defaults_without_files(self):
        assert load_config() == ModelCacheConfig()

    def test_default_yaml_file(self, tmp_path):
        (tmp_path / "modelcache.yaml").write_text("model_cache:\n  store: array\n  cache_minutes: 10\n")
        cfg = load_config()
        assert cfg.store == "array"
        assert cfg.cache_minutes == 10

    def test_explicit_yaml_without_section(self, tmp_path):
        path = tmp_path / "cache.yaml"
        path.write_text("store: 'null'\nkey_prefix: app_\n")
        cfg = load_config(path)
        assert cfg.store == "null"
        assert cfg.key_prefix == "app_"

    def test_missing_explicit_file(self):
        with pytest.raises(CacheConfigFault, match="not found"):
            load_config("missing.yaml")

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "cache.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(CacheConfigFault):
            load_config(path)

    def test_dotenv_overrides_yaml(self, tmp_path):
        (tmp_path / "modelcache.yaml").write_text("cache_minutes: 10\n")
        (tmp_path / ".env").write_text("MCACHE_CACHE_MINUTES=20\nOTHER=1\n")
        assert load_config().cache_minutes == 20

    def test_environment_overrides_dotenv(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("MCACHE_CACHE_MINUTES=20\n")
        monkeypatch.setenv("MCACHE_CACHE_MINUTES", "30")
        monkeypatch.setenv("MCACHE_STORE", "array")
        cfg = load_config()
        assert cfg.cache_minutes == 30
        assert cfg.store == "array"

    def test_skip_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("MCACHE_CACHE_MINUTES=20\n")
        assert load_config(env_file=None).cache_minutes == 60

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("MCACHE_CACHE_MINUTES", "30")
        assert load_config(overrides={"cache_minutes": 90}).cache_minutes == 90


class TestCreateModelCache:
    @pytest.mark.parametrize("store, cls", [
        ("memory", TaggedMemoryStore),
        ("array", MemoryStore),
        ("null", NullStore),
    ])
    def test_store_from_config(self, store, cls):
        cache = create_model_cache(ModelCacheConfig(store=store))
        assert isinstance(cache.store, cls)
        assert isinstance(cache, ModelCache)

    def test_defaults(self):
        cache = create_model_cache()
        assert cache.config == ModelCacheConfig()
        assert repr(cache) == "<ModelCache store=memory enabled=True>"

    def test_global_tag_from_config(self):
        cache = create_model_cache(ModelCacheConfig(global_tag="app"))
        assert cache.registry.global_tag == "app"
