from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional
import threading

from topo.errors import DuplicateResourceError
from topo.ids import ResourceID


class ResourceType(Enum):
    COORDINATOR = "coordinator"
    MACHINE = "machine"


class ResourceState(Enum):
    UNKNOWN = "unknown"
    IDLE = "idle"
    BUSY = "busy"
    LOST = "lost"


@dataclass
class ResourceVector:
    """Capacity reported by the inventory for a resource."""
    cpu_millis: int = 0
    ram_kb: int = 0


@dataclass
class ResourceDescriptor:
    uuid: str
    type: ResourceType
    state: Optional[ResourceState] = None  # machines only
    parent_id: Optional[str] = None
    friendly_name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    capacity: ResourceVector = field(default_factory=ResourceVector)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "type": self.type.value,
            "state": self.state.value if self.state else None,
            "parent_id": self.parent_id,
            "friendly_name": self.friendly_name,
            "labels": dict(self.labels),
            "capacity": {
                "cpu_millis": self.capacity.cpu_millis,
                "ram_kb": self.capacity.ram_kb,
            },
        }


@dataclass
class ResourceTopologyNode:
    resource_desc: ResourceDescriptor
    children: List["ResourceTopologyNode"] = field(default_factory=list)

    @property
    def parent_id(self) -> Optional[str]:
        return self.resource_desc.parent_id

    def add_child(self, child: "ResourceTopologyNode") -> None:
        if child.parent_id != self.resource_desc.uuid:
            raise ValueError(
                f"Child {child.resource_desc.uuid} has parent {child.parent_id}, "
                f"not {self.resource_desc.uuid}"
            )
        self.children.append(child)

    def walk(self) -> Iterator["ResourceTopologyNode"]:
        """Depth-first, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_desc": self.resource_desc.to_dict(),
            "parent_id": self.parent_id,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class ResourceStatus:
    """Catalog entry: descriptor, owning topology node, and endpoint."""
    descriptor: ResourceDescriptor
    topology_node: ResourceTopologyNode
    endpoint_host: str = ""
    endpoint_port: int = 0

    @property
    def endpoint(self) -> str:
        return f"{self.endpoint_host}:{self.endpoint_port}"

    def to_dict(self) -> Dict[str, Any]:
        data = self.descriptor.to_dict()
        data["endpoint"] = {"host": self.endpoint_host, "port": self.endpoint_port}
        data["children"] = [c.resource_desc.uuid for c in self.topology_node.children]
        return data


class ResourceCatalog:
    """
    Append-only map from ResourceID to ResourceStatus.

    Entries are never overwritten or removed. Mutation is expected from a
    single thread; the lock only keeps concurrent readers consistent, so
    tree links and serialized views both go through it.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._resources: Dict[ResourceID, ResourceStatus] = {}

    def insert(self, resource_id: ResourceID, status: ResourceStatus) -> None:
        with self._lock:
            if resource_id in self._resources:
                raise DuplicateResourceError(resource_id)
            self._resources[resource_id] = status

    def contains(self, resource_id: ResourceID) -> bool:
        with self._lock:
            return resource_id in self._resources

    def get(self, resource_id: ResourceID) -> Optional[ResourceStatus]:
        with self._lock:
            return self._resources.get(resource_id)

    def of_type(self, resource_type: ResourceType) -> List[ResourceStatus]:
        with self._lock:
            return [rs for rs in self._resources.values() if rs.descriptor.type == resource_type]

    def ids(self) -> List[ResourceID]:
        with self._lock:
            return list(self._resources.keys())

    def link_child(self, parent_id: ResourceID, child: ResourceTopologyNode) -> None:
        """Attach child under parent_id's topology node."""
        with self._lock:
            parent = self._resources.get(parent_id)
            if parent is None:
                raise KeyError(parent_id)
            parent.topology_node.add_child(child)

    def topology_snapshot(self, root_id: ResourceID) -> Optional[Dict[str, Any]]:
        with self._lock:
            root = self._resources.get(root_id)
            return root.topology_node.to_dict() if root else None

    def status_snapshot(self, resource_id: ResourceID) -> Optional[Dict[str, Any]]:
        with self._lock:
            status = self._resources.get(resource_id)
            return status.to_dict() if status else None

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [rs.to_dict() for rs in self._resources.values()]

    def __contains__(self, resource_id: object) -> bool:
        return self.contains(resource_id)  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def __iter__(self) -> Iterator[ResourceStatus]:
        with self._lock:
            return iter(list(self._resources.values()))
