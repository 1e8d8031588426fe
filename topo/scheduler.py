"""Scheduler facades that accept newly discovered topology nodes."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import requests

from topo.errors import SchedulerError
from topo.ids import resource_id_from_string
from topo.state import ResourceCatalog, ResourceTopologyNode

logger = logging.getLogger(__name__)


@dataclass
class SchedulerContext:
    """State shared between the reconciler and the scheduler, built once at startup."""
    resource_map: ResourceCatalog
    topology_root: ResourceTopologyNode
    job_map: Dict[str, Any] = field(default_factory=dict)
    task_map: Dict[str, Any] = field(default_factory=dict)
    knowledge_base: Dict[str, Any] = field(default_factory=dict)


class SchedulerFacade(ABC):
    def __init__(self, context: SchedulerContext) -> None:
        self.context = context

    @abstractmethod
    def register_resource(
        self,
        topology_node: ResourceTopologyNode,
        local: bool = False,
        simulated: bool = False,
    ) -> None:
        """Register a new topology node. Raises SchedulerError on failure."""
        raise NotImplementedError

    def describe(self) -> str:
        return (
            f"{type(self).__name__}(root={self.context.topology_root.resource_desc.uuid}, "
            f"resources={len(self.context.resource_map)})"
        )


class LocalSchedulerFacade(SchedulerFacade):
    """In-process registry of the resources handed to the scheduler."""

    def __init__(self, context: SchedulerContext) -> None:
        super().__init__(context)
        self._registered: Set[str] = set()
        self.registrations: List[ResourceTopologyNode] = []

    def register_resource(
        self,
        topology_node: ResourceTopologyNode,
        local: bool = False,
        simulated: bool = False,
    ) -> None:
        uuid = topology_node.resource_desc.uuid
        if uuid in self._registered:
            raise SchedulerError(f"Resource {uuid} is already registered")
        parent_id = topology_node.parent_id
        if parent_id is None or not self.context.resource_map.contains(resource_id_from_string(parent_id)):
            raise SchedulerError(f"Resource {uuid} has unknown parent {parent_id}")

        self._registered.add(uuid)
        self.registrations.append(topology_node)
        self.context.knowledge_base.setdefault("resources", {})[uuid] = {
            "local": local,
            "simulated": simulated,
        }
        logger.debug(f"Registered resource {uuid} (local={local}, simulated={simulated})")

    def is_registered(self, uuid: str) -> bool:
        return uuid in self._registered


class HttpSchedulerFacade(SchedulerFacade):
    """Facade for a scheduler service reachable over HTTP."""

    def __init__(
        self,
        context: SchedulerContext,
        base_url: str,
        timeout_s: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(context)
        self.base_url = base_url.rstrip('/')
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def connect(self) -> None:
        """
        Check that the scheduler service is up.

        Raises:
            SchedulerError: If the health check fails
        """
        url = f"{self.base_url}/healthz"
        try:
            resp = self.session.get(url, timeout=self.timeout_s)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SchedulerError(f"Scheduler at {self.base_url} is not reachable: {e}") from e
        logger.info(f"Connected to scheduler at {self.base_url}")

    def register_resource(
        self,
        topology_node: ResourceTopologyNode,
        local: bool = False,
        simulated: bool = False,
    ) -> None:
        payload = {
            "topology_node": topology_node.to_dict(),
            "local": local,
            "simulated": simulated,
        }
        uuid = topology_node.resource_desc.uuid
        try:
            resp = self.session.post(f"{self.base_url}/resources", json=payload, timeout=self.timeout_s)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SchedulerError(f"Failed to register resource {uuid}: {e}") from e

    def describe(self) -> str:
        return f"{super().describe()} at {self.base_url}"
