"""Polling loop that reconciles cluster inventory with the scheduler topology."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Set

from topo.errors import DuplicateResourceError, InventoryError, SchedulerError, TopologyError
from topo.ids import ResourceID, resource_id_from_string
from topo.inventory import ClusterInventoryClient, DiscoveredNode
from topo.placement import FirstNodePolicy, PlacementPolicy
from topo.scheduler import SchedulerFacade
from topo.state import ResourceCatalog, ResourceStatus
from topo.topology import TopologyBuilder

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 10.0


@dataclass
class CycleReport:
    """What a single reconciliation cycle did."""
    cycle: int
    nodes_seen: int = 0
    new_resources: List[str] = field(default_factory=list)
    registered: List[str] = field(default_factory=list)
    workloads_seen: int = 0
    bound: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class ReconciliationLoop:
    """
    Discovers nodes and workloads on a fixed interval.

    Each cycle registers every unseen node with the scheduler before any
    workload is bound, so workloads can land on nodes discovered in the same
    cycle. Cycles run sequentially on one thread and never overlap.
    """

    def __init__(
        self,
        catalog: ResourceCatalog,
        builder: TopologyBuilder,
        coordinator: ResourceStatus,
        scheduler: SchedulerFacade,
        inventory: ClusterInventoryClient,
        policy: Optional[PlacementPolicy] = None,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        track_bound_workloads: bool = True,
    ) -> None:
        """
        Args:
            catalog: Resource catalog owned by this loop
            builder: Builder used to create machine resources
            coordinator: Status of the top-level coordinator resource
            scheduler: Facade that receives newly created topology nodes
            inventory: Source of nodes and workloads, and binding sink
            policy: Placement policy (first discovered node if None)
            poll_interval_s: Seconds to wait between cycles
            track_bound_workloads: Skip workloads this process already bound
        """
        self.catalog = catalog
        self.builder = builder
        self.coordinator = coordinator
        self.coordinator_id: ResourceID = resource_id_from_string(coordinator.descriptor.uuid)
        self.scheduler = scheduler
        self.inventory = inventory
        self.policy = policy or FirstNodePolicy()
        self.poll_interval_s = poll_interval_s
        self.track_bound_workloads = track_bound_workloads

        self._registered: Set[ResourceID] = set()
        self._bound: Set[str] = set()
        self._cycles = 0
        self._last_report: Optional[CycleReport] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -------- lifecycle --------

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def bound_workloads(self) -> List[str]:
        return sorted(self._bound)

    def is_registered(self, resource_id: ResourceID) -> bool:
        return resource_id in self._registered

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning("ReconciliationLoop already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="topo-reconciler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Signal cancellation; joins the background thread if there is one."""
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Run cycles until stop() is called."""
        logger.info(f"Reconciliation loop started (interval={self.poll_interval_s}s)")
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Reconciliation cycle failed")
            if self._stop_event.wait(self.poll_interval_s):
                break
        logger.info("Reconciliation loop stopped")

    # -------- one cycle --------

    def run_cycle(self) -> CycleReport:
        self._cycles += 1
        report = CycleReport(cycle=self._cycles)

        nodes = self._discover_nodes(report)
        self._discover_workloads(nodes, report)

        self._last_report = report
        return report

    def _discover_nodes(self, report: CycleReport) -> List[DiscoveredNode]:
        try:
            nodes = self.inventory.list_nodes()
        except InventoryError as e:
            logger.error(f"Node discovery failed: {e}")
            report.errors.append(str(e))
            return []

        report.nodes_seen = len(nodes)
        for node in nodes:
            rid = resource_id_from_string(node.external_id)
            status = self.catalog.get(rid)
            if status is None:
                status = self._create_resource(rid, node, report)
                if status is None:
                    continue
            elif rid in self._registered:
                continue
            self._register(rid, status, report)
        return nodes

    def _create_resource(
        self,
        rid: ResourceID,
        node: DiscoveredNode,
        report: CycleReport,
    ) -> Optional[ResourceStatus]:
        logger.info(
            f"Adding new node's resource with RID {rid}",
            extra={"resource_id": str(rid), "node": node.hostname or node.address, "cycle": report.cycle},
        )
        try:
            status = self.builder.create_resource_for_node(
                rid,
                self.coordinator_id,
                host=node.endpoint_host,
                friendly_name=node.hostname,
                labels=node.labels,
                capacity=node.capacity,
            )
        except DuplicateResourceError as e:
            logger.warning(f"Skipping duplicate resource: {e}")
            report.errors.append(str(e))
            return None
        except TopologyError as e:
            logger.error(f"Could not create resource for node {node.external_id}: {e}")
            report.errors.append(str(e))
            return None
        report.new_resources.append(str(rid))
        return status

    def _register(self, rid: ResourceID, status: ResourceStatus, report: CycleReport) -> None:
        try:
            self.scheduler.register_resource(status.topology_node, local=False, simulated=False)
        except SchedulerError as e:
            # Left out of _registered so the next cycle retries.
            logger.error(f"Registration of resource {rid} failed, will retry: {e}")
            report.errors.append(str(e))
            return
        self._registered.add(rid)
        report.registered.append(str(rid))

    def _discover_workloads(self, nodes: List[DiscoveredNode], report: CycleReport) -> None:
        try:
            workloads = self.inventory.list_workloads()
        except InventoryError as e:
            logger.error(f"Workload discovery failed: {e}")
            report.errors.append(str(e))
            return

        report.workloads_seen = len(workloads)
        # Only nodes the scheduler has accepted are placement targets.
        placeable = [n for n in nodes if resource_id_from_string(n.external_id) in self._registered]
        for workload_id in workloads:
            logger.info(f"Pod: {workload_id}", extra={"workload": workload_id, "cycle": report.cycle})
            if not placeable:
                continue
            if self.track_bound_workloads and workload_id in self._bound:
                continue
            target = self.policy.choose(workload_id, placeable)
            if target is None:
                continue
            try:
                self.inventory.bind_workload(workload_id, target.address)
            except InventoryError as e:
                logger.error(f"Binding failed, will retry: {e}")
                report.errors.append(str(e))
                continue
            self._bound.add(workload_id)
            report.bound.append(workload_id)

        # A pod that left the listing and comes back under the same name is a
        # new pod and must be bound again.
        self._bound.intersection_update(workloads)
