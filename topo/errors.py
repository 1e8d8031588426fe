"""Error types raised by the reconciler.

The loop treats everything except setup failures as transient: errors are
logged and the affected step is retried on the next cycle.
"""

from __future__ import annotations

from typing import Any


class TopologyError(Exception):
    """Base error for topology and catalog consistency problems."""


class DuplicateResourceError(TopologyError):
    """Raised when inserting a resource ID that is already in the catalog."""

    def __init__(self, resource_id: Any) -> None:
        super().__init__(f"Resource {resource_id} already exists in the catalog")
        self.resource_id = resource_id


class InventoryError(Exception):
    """Raised when the cluster inventory cannot be listed."""


class BindingError(InventoryError):
    """Raised when a workload cannot be bound to a node."""

    def __init__(self, workload_id: str, node_address: str, reason: str) -> None:
        super().__init__(f"Failed to bind {workload_id} to {node_address}: {reason}")
        self.workload_id = workload_id
        self.node_address = node_address


class SchedulerError(Exception):
    """Raised when the scheduler cannot be reached or rejects a resource."""


class ConfigError(ValueError):
    """Raised for missing or invalid configuration."""
