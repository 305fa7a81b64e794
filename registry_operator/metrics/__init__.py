"""Operator metrics: the registry catalogue and its HTTPS exposition server."""

from registry_operator.metrics.registry import (
    OperatorMetrics,
    azure_key_cache_hit,
    azure_key_cache_miss,
    get_metrics,
    get_registry,
    image_pruner_install_status,
    report_openshift_image_stream_tags,
    report_other_image_stream_tags,
    report_storage_type,
    storage_reconfigured,
)
from registry_operator.metrics.server import MetricsServer, ServerLifecycleState

__all__ = [
    "MetricsServer",
    "OperatorMetrics",
    "ServerLifecycleState",
    "azure_key_cache_hit",
    "azure_key_cache_miss",
    "get_metrics",
    "get_registry",
    "image_pruner_install_status",
    "report_openshift_image_stream_tags",
    "report_other_image_stream_tags",
    "report_storage_type",
    "storage_reconfigured",
]
