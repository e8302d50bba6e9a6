"""
Tests for the model cache fault hierarchy and the debug logging gate.
"""

from __future__ import annotations

import logging

import pytest

from modelcache.debug import CacheDebugger
from modelcache.faults import (
    CacheBackendFault,
    CacheCapabilityFault,
    CacheConfigFault,
    CacheSerializationFault,
    Fault,
    FaultDomain,
    ModelCacheFault,
    RecordNotFoundFault,
    RelationNotFoundFault,
    ScopeNotFoundFault,
    Severity,
)


class TestFaults:
    @pytest.mark.parametrize("fault, code, retryable", [
        (CacheBackendFault("redis", "get", "timeout"), "CACHE_BACKEND_ERROR", True),
        (CacheCapabilityFault("array"), "CACHE_CAPABILITY_UNSUPPORTED", False),
        (CacheSerializationFault("k", "deserialize", "bad data"), "CACHE_SERIALIZATION_FAILED", False),
        (CacheConfigFault("bad"), "CACHE_CONFIG_INVALID", False),
        (RelationNotFoundFault("Post", "authors"), "CACHE_RELATION_NOT_FOUND", False),
        (ScopeNotFoundFault("app:Missing", "no module"), "CACHE_SCOPE_NOT_FOUND", False),
        (RecordNotFoundFault("Post", 7), "RECORD_NOT_FOUND", False),
    ])
    def test_codes(self, fault, code, retryable):
        assert isinstance(fault, ModelCacheFault)
        assert isinstance(fault, Fault)
        assert fault.code == code
        assert fault.retryable is retryable
        assert fault.domain == FaultDomain.MODEL_CACHE

    def test_backend_fault_message_and_metadata(self):
        fault = CacheBackendFault("redis", "put", "connection reset")
        assert str(fault) == "[CACHE_BACKEND_ERROR] Cache store 'redis' error during put: connection reset"
        assert fault.metadata == {"backend": "redis", "operation": "put", "reason": "connection reset"}
        assert fault.severity is Severity.ERROR

    def test_to_dict(self):
        data = CacheConfigFault("bad store", key="store").to_dict()
        assert data["code"] == "CACHE_CONFIG_INVALID"
        assert data["domain"] == "model_cache"
        assert data["severity"] == "fatal"
        assert data["metadata"] == {"reason": "bad store", "key": "store"}

    def test_relation_fault_is_config_fault(self):
        fault = RelationNotFoundFault("Post", "authors")
        assert isinstance(fault, CacheConfigFault)
        assert fault.message == "Relation 'authors' does not exist on Post"

    def test_scope_not_found_message(self):
        fault = ScopeNotFoundFault("app.models:Ghost", "not a class")
        assert fault.message == "Model class app.models:Ghost does not exist! (not a class)"

    def test_faults_are_exceptions(self):
        with pytest.raises(ModelCacheFault):
            raise CacheBackendFault("memory", "flush", "boom")

    def test_domain_equality(self):
        assert FaultDomain.MODEL_CACHE == "model_cache"
        assert hash(FaultDomain("model_cache")) == hash(FaultDomain.MODEL_CACHE)


class TestCacheDebugger:
    def test_silent_when_disabled(self, caplog):
        debugger = CacheDebugger(enabled=False)
        with caplog.at_level(logging.DEBUG, logger="modelcache.debug"):
            debugger.info("flushed %s", "Post")
            debugger.error("failed %s", "Post")
        assert caplog.records == []

    def test_emits_when_enabled(self, caplog):
        debugger = CacheDebugger(enabled=True)
        with caplog.at_level(logging.DEBUG, logger="modelcache.debug"):
            debugger.debug("hit %s", "k1")
            debugger.info("flushed %s", "Post")
            debugger.error("failed %s", "Post")
        assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.INFO, logging.ERROR]
        assert caplog.records[1].getMessage() == "flushed Post"

    def test_custom_logger(self, caplog):
        custom = logging.getLogger("app.cache")
        debugger = CacheDebugger(enabled=True, logger=custom)
        with caplog.at_level(logging.INFO, logger="app.cache"):
            debugger.info("flushed")
        assert caplog.records[0].name == "app.cache"
        assert debugger.enabled is True
