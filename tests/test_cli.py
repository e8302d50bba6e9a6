"""
Tests for the ``mcache`` command-line interface.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from modelcache.cli.__main__ import cli
from modelcache.cli.commands.cache import resolve_model
from modelcache.faults import ScopeNotFoundFault

from tests.cache_models import Post, PostWithoutCache

MODELS = Post.__module__


@pytest.fixture
def runner(monkeypatch):
    for key in list(os.environ):
        if key.startswith("MCACHE_"):
            monkeypatch.delenv(key)
    return CliRunner()


def invoke(runner: CliRunner, *args: str, config: str = ""):
    """Run the CLI in an empty directory, optionally with a config file."""
    with runner.isolated_filesystem():
        argv = list(args)
        if config:
            Path("cache.yaml").write_text(config)
            argv = ["--config", "cache.yaml", *argv]
        return runner.invoke(cli, argv, obj={})


class TestResolveModel:
    def test_colon_path(self):
        assert resolve_model(f"{MODELS}:Post") is Post

    def test_dotted_path(self):
        assert resolve_model(f"{MODELS}.Post") is Post

    def test_missing_module(self):
        with pytest.raises(ScopeNotFoundFault):
            resolve_model("no_such_package.models:Post")

    def test_missing_attribute(self):
        with pytest.raises(ScopeNotFoundFault):
            resolve_model(f"{MODELS}:Missing")

    def test_not_a_class(self):
        with pytest.raises(ScopeNotFoundFault, match="not a class"):
            resolve_model(f"{MODELS}:NOT_A_MODEL")

    def test_bare_name(self):
        with pytest.raises(ScopeNotFoundFault):
            resolve_model("Post")


class TestFlush:
    def test_flush_model_with_tags(self, runner):
        result = invoke(runner, "flush", f"{MODELS}:Post")
        assert result.exit_code == 0, result.output
        assert "Model cache store: memory" in result.output
        assert "Model storage: table:posts" in result.output
        assert f"Cache cleared for {MODELS}:Post using tags" in result.output

    def test_flush_everything(self, runner):
        result = invoke(runner, "flush")
        assert result.exit_code == 0, result.output
        assert "Cache cleared for all models using tags" in result.output

    def test_store_without_tags(self, runner):
        result = invoke(runner, "flush", f"{MODELS}.Post", config="model_cache:\n  store: array\n")
        assert result.exit_code == 0, result.output
        assert "Model cache store: array" in result.output
        assert "entire cache flushed" in result.output

    def test_unknown_model_exits_zero(self, runner):
        result = invoke(runner, "flush", "no_such_package.models:Post")
        assert result.exit_code == 0
        assert "does not exist" in result.output

    def test_non_class_exits_zero(self, runner):
        result = invoke(runner, "flush", f"{MODELS}:NOT_A_MODEL")
        assert result.exit_code == 0
        assert "not a class" in result.output

    def test_non_cacheable_class_warns_and_flushes(self, runner):
        result = invoke(runner, "flush", f"{MODELS}:{PostWithoutCache.__name__}")
        assert result.exit_code == 0, result.output
        assert "does not implement CacheableQuerySource" in result.output
        assert "Cache cleared" in result.output

    def test_invalid_config_fails(self, runner):
        result = invoke(runner, "flush", config="store: memcached\n")
        assert result.exit_code == 1
        assert "Unknown cache store" in result.output

    def test_missing_config_file_fails(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--config", "absent.yaml", "flush"], obj={})
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestCheck:
    def test_check_memory(self, runner):
        result = invoke(runner, "check")
        assert result.exit_code == 0, result.output
        assert "Store:" in result.output
        assert "Tag support:" in result.output
        assert "Model cache configuration valid" in result.output

    def test_check_null_store(self, runner):
        result = invoke(runner, "check", config="store: 'null'\n")
        assert result.exit_code == 0, result.output
        assert "Model cache configuration valid" in result.output


class TestInspect:
    def test_inspect_json(self, runner):
        result = invoke(runner, "inspect")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["store"] == "memory"
        assert data["cache_minutes"] == 60

    def test_inspect_reads_config_file(self, runner):
        result = invoke(
            runner, "-v", "inspect",
            config="model_cache:\n  store: array\n  cache_minutes: 15\n  key_prefix: app_\n",
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["store"] == "array"
        assert data["cache_minutes"] == 15
        assert data["key_prefix"] == "app_"

    def test_inspect_env_override(self, runner, monkeypatch):
        monkeypatch.setenv("MCACHE_CACHE_MINUTES", "30")
        result = invoke(runner, "inspect")
        assert json.loads(result.output)["cache_minutes"] == 30


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "mcache" in result.output
