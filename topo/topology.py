"""Construction of coordinator and machine topology nodes."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from topo.errors import TopologyError
from topo.ids import IdentityGenerator, ResourceID
from topo.state import (
    ResourceCatalog,
    ResourceDescriptor,
    ResourceState,
    ResourceStatus,
    ResourceTopologyNode,
    ResourceType,
    ResourceVector,
)

logger = logging.getLogger(__name__)


class TopologyBuilder:
    """Builds topology nodes and inserts them into the resource catalog."""

    def __init__(self, catalog: ResourceCatalog, ids: Optional[IdentityGenerator] = None) -> None:
        self.catalog = catalog
        self.ids = ids or IdentityGenerator()
        self._coordinator_id: Optional[ResourceID] = None

    @property
    def coordinator_id(self) -> Optional[ResourceID]:
        return self._coordinator_id

    def create_top_level_resource(self) -> ResourceStatus:
        """
        Create the single coordinator resource at the root of the topology.

        Returns:
            ResourceStatus of the coordinator

        Raises:
            TopologyError: If a coordinator already exists
        """
        if self._coordinator_id is not None:
            raise TopologyError(f"Coordinator {self._coordinator_id} already exists")

        res_id = self.ids.generate()
        rd = ResourceDescriptor(uuid=str(res_id), type=ResourceType.COORDINATOR)
        rtnd = ResourceTopologyNode(resource_desc=rd)
        # TODO: take the coordinator endpoint from listen_uri once the
        # scheduler needs to call back into this process.
        rs = ResourceStatus(rd, rtnd, endpoint_host="localhost", endpoint_port=0)
        self.catalog.insert(res_id, rs)
        self._coordinator_id = res_id
        logger.info(f"Created coordinator resource {res_id}")
        return rs

    def create_resource_for_node(
        self,
        node_id: ResourceID,
        parent_id: ResourceID,
        host: str = "",
        port: int = 0,
        friendly_name: str = "",
        labels: Optional[Dict[str, str]] = None,
        capacity: Optional[ResourceVector] = None,
    ) -> ResourceStatus:
        """
        Create an idle machine resource under an existing parent.

        Args:
            node_id: Resource ID derived from the node's external identifier
            parent_id: Resource ID of the containing resource
            host: Network endpoint host for the machine
            port: Network endpoint port
            friendly_name: Human-readable name (node hostname)
            labels: Node labels copied onto the descriptor
            capacity: Reported CPU/memory capacity

        Returns:
            ResourceStatus of the new machine

        Raises:
            TopologyError: If the parent is not in the catalog
            DuplicateResourceError: If node_id is already in the catalog
        """
        parent = self.catalog.get(parent_id)
        if parent is None:
            raise TopologyError(f"Parent resource {parent_id} not found for node {node_id}")

        rd = ResourceDescriptor(
            uuid=str(node_id),
            type=ResourceType.MACHINE,
            state=ResourceState.IDLE,
            parent_id=str(parent_id),
            friendly_name=friendly_name,
            labels=dict(labels or {}),
            capacity=capacity or ResourceVector(),
        )
        rtnd = ResourceTopologyNode(resource_desc=rd)
        rs = ResourceStatus(rd, rtnd, endpoint_host=host, endpoint_port=port)
        self.catalog.insert(node_id, rs)
        # Only link into the tree once the catalog accepted the entry.
        self.catalog.link_child(parent_id, rtnd)
        return rs
