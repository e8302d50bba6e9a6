"""
ModelCache — Fault domain.

Structured, typed fault objects for the query-result cache. A fault is
an exception carrying a stable machine-readable code, a severity, a
domain and retry semantics, so callers and logs can treat it as data.

Policy:
- Store-facing faults (``CacheBackendFault``, ``CacheCapabilityFault``,
  ``CacheSerializationFault``) are caught at the ResultCache /
  InvalidationRouter boundary and turned into degraded results.
- ``CacheConfigFault`` (and ``RelationNotFoundFault``) propagate: they
  signal misuse, not an environmental failure.
- ``ScopeNotFoundFault`` is only reported by the CLI.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """Fault severity levels."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domain (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.MODEL_CACHE = FaultDomain("model_cache", "Query-result cache faults")


class Fault(Exception):
    """
    Base fault class — structured, typed fault object.

    Attributes:
        code: Stable machine-readable identifier (e.g. "CACHE_BACKEND_ERROR")
        message: Human-readable summary
        severity: Fault severity
        domain: Fault domain
        retryable: Whether the failed operation can be retried
        metadata: Additional context data
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        domain: FaultDomain,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.domain = domain
        self.severity = severity
        self.retryable = retryable
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, "
            f"domain={self.domain.value}, severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize fault for logging."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }


class ModelCacheFault(Fault):
    """Base class for all model cache faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.WARN,
        retryable: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL_CACHE,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class CacheBackendFault(ModelCacheFault):
    """Cache store read/write/flush failed at the transport or storage level."""

    def __init__(self, backend: str, operation: str, reason: str):
        super().__init__(
            code="CACHE_BACKEND_ERROR",
            message=f"Cache store '{backend}' error during {operation}: {reason}",
            severity=Severity.ERROR,
            retryable=True,
            metadata={"backend": backend, "operation": operation, "reason": reason},
        )


class CacheCapabilityFault(ModelCacheFault):
    """Tag flush requested on a store that cannot honour it."""

    def __init__(self, backend: str, capability: str = "tags"):
        super().__init__(
            code="CACHE_CAPABILITY_UNSUPPORTED",
            message=f"Cache store '{backend}' does not support {capability}",
            severity=Severity.INFO,
            retryable=False,
            metadata={"backend": backend, "capability": capability},
        )


class CacheSerializationFault(ModelCacheFault):
    """Cached payload could not be serialized or deserialized."""

    def __init__(self, key: str, operation: str, reason: str):
        super().__init__(
            code="CACHE_SERIALIZATION_FAILED",
            message=f"Cache {operation} failed for key '{key}': {reason}",
            severity=Severity.WARN,
            retryable=False,
            metadata={"key": key, "operation": operation, "reason": reason},
        )


class CacheConfigFault(ModelCacheFault):
    """Programming or configuration error. Always propagated."""

    def __init__(self, reason: str, *, code: str = "CACHE_CONFIG_INVALID", **metadata: Any):
        super().__init__(
            code=code,
            message=reason,
            severity=Severity.FATAL,
            retryable=False,
            metadata={"reason": reason, **metadata},
        )


class RelationNotFoundFault(CacheConfigFault):
    """Named relation does not exist on the owning entity."""

    def __init__(self, model: str, relation: str):
        super().__init__(
            f"Relation '{relation}' does not exist on {model}",
            code="CACHE_RELATION_NOT_FOUND",
            model=model,
            relation=relation,
        )


class ScopeNotFoundFault(ModelCacheFault):
    """Referenced entity type does not exist or is not a class."""

    def __init__(self, target: str, reason: str):
        super().__init__(
            code="CACHE_SCOPE_NOT_FOUND",
            message=f"Model class {target} does not exist! ({reason})",
            severity=Severity.WARN,
            retryable=False,
            metadata={"target": target, "reason": reason},
        )


class RecordNotFoundFault(ModelCacheFault):
    """``find_or_fail`` matched no record."""

    def __init__(self, model: str, key: Any):
        super().__init__(
            code="RECORD_NOT_FOUND",
            message=f"No {model} record found for key {key!r}",
            severity=Severity.ERROR,
            retryable=False,
            metadata={"model": model, "key": key},
        )
