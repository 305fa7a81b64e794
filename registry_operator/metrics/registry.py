"""Operator metrics registry.

A fixed catalogue of counters and gauges describing operator state, held in
one process-wide Prometheus registry. Callers only touch the narrow setter
functions at the bottom of this module; series are never removed.

Usage:
    from registry_operator.metrics import registry as metrics

    metrics.storage_reconfigured()
    metrics.image_pruner_install_status(installed=True, enabled=False)
"""

from __future__ import annotations

import threading

from prometheus_client import CollectorRegistry, Counter, Gauge

OPERATOR_NAMESPACE = "image_registry_operator"
REGISTRY_NAMESPACE = "image_registry"

PRUNER_NOT_INSTALLED = 0
PRUNER_DISABLED = 1
PRUNER_ENABLED = 2

LOCATION_OPENSHIFT = "openshift"
LOCATION_OTHER = "other"

KNOWN_STORAGE_TYPES = frozenset(
    {"S3", "Swift", "GCS", "Azure", "PVC", "EmptyDir", "IBMCOS", "OSS"}
)


class OperatorMetrics:
    """Operator metric catalogue bound to one :class:`CollectorRegistry`.

    Every setter is safe for concurrent callers: prometheus_client guards
    each child series with its own lock.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry(auto_describe=True)
        self._storage_lock = threading.Lock()
        self._reported_storage: set[str] = set()

        self.storage_reconfigured_total = Counter(
            "storage_reconfigured",
            "Number of times the operator reconfigured the registry storage",
            namespace=OPERATOR_NAMESPACE,
            registry=self.registry,
        )
        self.image_pruner_install_status = Gauge(
            "image_pruner_install_status",
            "Image pruner CronJob state: 0 not installed, 1 suspended, 2 enabled",
            namespace=OPERATOR_NAMESPACE,
            registry=self.registry,
        )
        self.image_stream_tags = Gauge(
            "image_stream_tags_total",
            "Number of image stream tags by source and location",
            labelnames=["source", "location"],
            namespace=REGISTRY_NAMESPACE,
            registry=self.registry,
        )
        self.storage_type = Gauge(
            "storage_type",
            "Storage backend in use by the image registry",
            labelnames=["storage"],
            namespace=OPERATOR_NAMESPACE,
            registry=self.registry,
        )
        self.azure_key_cache = Counter(
            "azure_key_cache_requests",
            "Azure primary key cache lookups by result",
            labelnames=["result"],
            namespace=OPERATOR_NAMESPACE,
            registry=self.registry,
        )

        # Pre-create fixed label sets so every series is exported from start.
        for result in ("hit", "miss"):
            self.azure_key_cache.labels(result=result)

    def storage_reconfigured(self) -> None:
        self.storage_reconfigured_total.inc()

    def set_image_pruner_install_status(self, installed: bool, enabled: bool) -> None:
        if not installed:
            self.image_pruner_install_status.set(PRUNER_NOT_INSTALLED)
        elif not enabled:
            self.image_pruner_install_status.set(PRUNER_DISABLED)
        else:
            self.image_pruner_install_status.set(PRUNER_ENABLED)

    def report_image_stream_tags(self, location: str, imported: float, pushed: float) -> None:
        if location not in (LOCATION_OPENSHIFT, LOCATION_OTHER):
            raise ValueError(f"unknown image stream location {location!r}")
        self.image_stream_tags.labels(source="imported", location=location).set(imported)
        self.image_stream_tags.labels(source="pushed", location=location).set(pushed)

    def report_storage_type(self, name: str) -> None:
        """Mark ``name`` as the active backend and zero every other one seen."""
        if name not in KNOWN_STORAGE_TYPES:
            raise ValueError(
                f"unknown storage type {name!r}; expected one of {sorted(KNOWN_STORAGE_TYPES)}"
            )
        with self._storage_lock:
            for previous in self._reported_storage - {name}:
                self.storage_type.labels(storage=previous).set(0)
            self._reported_storage.add(name)
            self.storage_type.labels(storage=name).set(1)

    def azure_key_cache_result(self, hit: bool) -> None:
        self.azure_key_cache.labels(result="hit" if hit else "miss").inc()


_metrics = OperatorMetrics()


def get_metrics() -> OperatorMetrics:
    """Return the process-wide metrics catalogue."""
    return _metrics


def get_registry() -> CollectorRegistry:
    """Return the process-wide registry served on ``/metrics``."""
    return _metrics.registry


def storage_reconfigured() -> None:
    """Count one reconfiguration of the registry's underlying storage."""
    _metrics.storage_reconfigured()


def image_pruner_install_status(installed: bool, enabled: bool) -> None:
    """Report the state of the automatic image pruner CronJob."""
    _metrics.set_image_pruner_install_status(installed, enabled)


def report_openshift_image_stream_tags(imported: float, pushed: float) -> None:
    """Report image stream tag totals seen in openshift namespaces."""
    _metrics.report_image_stream_tags(LOCATION_OPENSHIFT, imported, pushed)


def report_other_image_stream_tags(imported: float, pushed: float) -> None:
    """Report image stream tag totals seen outside openshift namespaces."""
    _metrics.report_image_stream_tags(LOCATION_OTHER, imported, pushed)


def report_storage_type(name: str) -> None:
    """Report the storage backend in use."""
    _metrics.report_storage_type(name)


def azure_key_cache_hit() -> None:
    _metrics.azure_key_cache_result(hit=True)


def azure_key_cache_miss() -> None:
    _metrics.azure_key_cache_result(hit=False)
