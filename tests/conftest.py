import sys
from pathlib import Path
from typing import Dict, List, Optional

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from topo.errors import BindingError, SchedulerError
from topo.inventory import ClusterInventoryClient, DiscoveredNode
from topo.reconciler import ReconciliationLoop
from topo.scheduler import LocalSchedulerFacade, SchedulerContext
from topo.state import ResourceCatalog
from topo.topology import TopologyBuilder


class FakeInventory(ClusterInventoryClient):
    """Scripted inventory: each cycle pops the next node/workload lists."""

    def __init__(self, calls: List[tuple]) -> None:
        self.calls = calls
        self.nodes: List[DiscoveredNode] = []
        self.workloads: List[str] = []
        self.node_error: Optional[Exception] = None
        self.workload_error: Optional[Exception] = None
        self.bind_failures: Dict[str, int] = {}
        self.bindings: List[tuple] = []

    def list_nodes(self) -> List[DiscoveredNode]:
        if self.node_error:
            raise self.node_error
        return list(self.nodes)

    def list_workloads(self) -> List[str]:
        if self.workload_error:
            raise self.workload_error
        return list(self.workloads)

    def bind_workload(self, workload_id: str, node_address: str) -> None:
        remaining = self.bind_failures.get(workload_id, 0)
        if remaining:
            self.bind_failures[workload_id] = remaining - 1
            raise BindingError(workload_id, node_address, "conflict")
        self.calls.append(("bind", workload_id, node_address))
        self.bindings.append((workload_id, node_address))


class RecordingScheduler(LocalSchedulerFacade):
    def __init__(self, context: SchedulerContext, calls: List[tuple]) -> None:
        super().__init__(context)
        self.calls = calls
        self.failures_left = 0

    def register_resource(self, topology_node, local=False, simulated=False) -> None:
        if self.failures_left:
            self.failures_left -= 1
            raise SchedulerError("scheduler unavailable")
        super().register_resource(topology_node, local=local, simulated=simulated)
        self.calls.append(("register", topology_node.resource_desc.uuid))


class Harness:
    def __init__(self, track_bound_workloads: bool = True) -> None:
        self.calls: List[tuple] = []
        self.catalog = ResourceCatalog()
        self.builder = TopologyBuilder(self.catalog)
        self.coordinator = self.builder.create_top_level_resource()
        self.context = SchedulerContext(
            resource_map=self.catalog,
            topology_root=self.coordinator.topology_node,
        )
        self.scheduler = RecordingScheduler(self.context, self.calls)
        self.inventory = FakeInventory(self.calls)
        self.loop = ReconciliationLoop(
            self.catalog,
            self.builder,
            self.coordinator,
            self.scheduler,
            self.inventory,
            poll_interval_s=0.01,
            track_bound_workloads=track_bound_workloads,
        )

    def calls_of(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def untracked_harness():
    return Harness(track_bound_workloads=False)
