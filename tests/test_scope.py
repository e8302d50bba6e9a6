"""
Tests for entity metadata, tag scopes and key prefixes.
"""

from __future__ import annotations

from modelcache.core import (
    CacheableQuerySource,
    EntityMetadata,
    QuerySpec,
    pluralize,
    snake_case,
)
from modelcache.scope import ScopeRegistry, read_entity_metadata, storage_tag

from tests.cache_models import (
    Category,
    Post,
    PostAlias,
    PostWithCustomCache,
    PostWithoutCache,
    Tag,
)


class TestNaming:
    def test_snake_case(self):
        assert snake_case("Post") == "post"
        assert snake_case("PostWithCustomCache") == "post_with_custom_cache"

    def test_pluralize(self):
        assert pluralize("post") == "posts"
        assert pluralize("category") == "categories"
        assert pluralize("day") == "days"
        assert pluralize("box") == "boxes"


class TestMetadata:
    def test_cacheable_protocol(self):
        assert isinstance(Post, CacheableQuerySource)
        assert not isinstance(PostWithoutCache, CacheableQuerySource)

    def test_reads_class_attributes(self):
        meta = read_entity_metadata(PostWithCustomCache)
        assert meta.type_name == f"{PostWithCustomCache.__module__}.PostWithCustomCache"
        assert meta.storage == "posts"
        assert meta.cache_minutes == 120
        assert meta.cache_prefix == "custom_post_"
        assert meta.cacheable is True

    def test_default_storage_name(self):
        assert read_entity_metadata(Tag).storage == "tags"
        assert read_entity_metadata(Category).storage == "categories"

    def test_plain_class_is_not_cacheable(self):
        meta = read_entity_metadata(PostWithoutCache)
        assert meta.cacheable is False
        assert meta.storage == "post_without_caches"


class TestScopeRegistry:
    def test_scope_tags(self):
        registry = ScopeRegistry()
        scope = registry.scope_for(Post)
        assert scope.tags == (
            "model_cache",
            f"model:{Post.__module__}.Post",
            "table:posts",
        )

    def test_custom_global_tag(self):
        registry = ScopeRegistry(global_tag="app_cache")
        assert registry.scope_for(Post).global_tag == "app_cache"

    def test_scope_is_memoized(self):
        registry = ScopeRegistry()
        assert registry.scope_for(Post) is registry.scope_for(Post)

    def test_provider_called_once_per_class(self):
        calls = []

        def provider(model):
            calls.append(model)
            return read_entity_metadata(model)

        registry = ScopeRegistry(provider=provider)
        registry.scope_for(Post)
        registry.scope_for(Post)
        registry.prefix_for(Post)
        assert calls == [Post]

    def test_aliases_share_storage_tag_only(self):
        registry = ScopeRegistry()
        post, alias = registry.scope_for(Post), registry.scope_for(PostAlias)
        assert post.storage_tag == alias.storage_tag == storage_tag("posts")
        assert post.type_tag != alias.type_tag

    def test_scope_for_spec_matches_scope_for(self):
        registry = ScopeRegistry()
        meta = registry.metadata_for(Post)
        spec = QuerySpec(entity_type=meta.type_name, storage=meta.storage)
        assert registry.scope_for_spec(spec) == registry.scope_for(Post)

    def test_default_prefix(self):
        registry = ScopeRegistry(key_prefix="model_cache_")
        assert registry.prefix_for(Post) == "model_cache_post:"
        assert registry.prefix_for(PostAlias) == "model_cache_post_alias:"

    def test_custom_prefix(self):
        registry = ScopeRegistry()
        assert registry.prefix_for(PostWithCustomCache) == "custom_post_"

    def test_spec_lookups_use_registered_metadata(self):
        registry = ScopeRegistry()
        meta = registry.metadata_for(PostWithCustomCache)
        spec = QuerySpec(entity_type=meta.type_name, storage=meta.storage)
        assert registry.prefix_for_spec(spec) == "custom_post_"
        assert registry.minutes_for_spec(spec) == 120

    def test_unregistered_spec_falls_back(self):
        registry = ScopeRegistry()
        spec = QuerySpec(entity_type="elsewhere.Widget", storage="widgets")
        assert registry.prefix_for_spec(spec) == "model_cache_widget:"
        assert registry.minutes_for_spec(spec) is None

    def test_custom_metadata_provider(self):
        registry = ScopeRegistry(
            provider=lambda model: EntityMetadata(type_name="custom.Thing", storage="things"),
        )
        assert registry.scope_for(Post).tags == ("model_cache", "model:custom.Thing", "table:things")

    def test_is_cacheable(self):
        registry = ScopeRegistry()
        assert registry.is_cacheable(Post)
        assert not registry.is_cacheable(PostWithoutCache)
