"""Cluster inventory clients: node and pod discovery plus pod binding."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client, config
from kubernetes.client import V1Binding, V1ObjectMeta, V1ObjectReference
from kubernetes.client.exceptions import ApiException
from kubernetes.utils import parse_quantity

from topo.errors import BindingError, InventoryError
from topo.state import ResourceVector

logger = logging.getLogger(__name__)


@dataclass
class DiscoveredNode:
    """A cluster node as reported by the inventory."""
    external_id: str
    address: str  # placement target handed to bind_workload
    host: Optional[str] = None  # network endpoint, falls back to address
    hostname: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    capacity: ResourceVector = field(default_factory=ResourceVector)

    @property
    def endpoint_host(self) -> str:
        return self.host or self.address


class ClusterInventoryClient(ABC):
    @abstractmethod
    def list_nodes(self) -> List[DiscoveredNode]:
        raise NotImplementedError

    @abstractmethod
    def list_workloads(self) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def bind_workload(self, workload_id: str, node_address: str) -> None:
        raise NotImplementedError


def load_kube_config(kubeconfig_path: Optional[str] = None) -> None:
    """Load an explicit kubeconfig, else in-cluster config, else the default kubeconfig."""
    if kubeconfig_path:
        config.load_kube_config(config_file=kubeconfig_path)
        logger.info(f"Loaded kubeconfig from {kubeconfig_path}")
        return
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded kubeconfig")


def parse_cpu_millis(cpu_str: Optional[str]) -> int:
    """Parse a CPU quantity (e.g. '100m' -> 100, '2' -> 2000). Raises ValueError."""
    if not cpu_str:
        return 0
    return int(parse_quantity(cpu_str.strip()) * 1000)


def parse_memory_kb(memory_str: Optional[str]) -> int:
    """Parse a memory quantity (e.g. '8Gi', '2Pi') into kilobytes. Raises ValueError."""
    if not memory_str:
        return 0
    return int(parse_quantity(memory_str.strip())) // 1024


def split_workload_id(workload_id: str, default_namespace: str = "default") -> Tuple[str, str]:
    """Split 'namespace/name' into its parts."""
    if "/" in workload_id:
        namespace, name = workload_id.split("/", 1)
        return namespace, name
    return default_namespace, workload_id


class KubeInventoryClient(ClusterInventoryClient):
    """Inventory backed by the Kubernetes core API."""

    def __init__(
        self,
        core_api: Optional[client.CoreV1Api] = None,
        namespace: str = "",
        scheduler_name: str = "",
        only_unbound_pods: bool = False,
    ) -> None:
        """
        Args:
            core_api: CoreV1Api to use (built from the loaded kube config if None)
            namespace: Namespace to list pods in; empty lists all namespaces
            scheduler_name: Only report pods whose spec.schedulerName matches
            only_unbound_pods: Only report pods without spec.nodeName
        """
        self.core = core_api or client.CoreV1Api()
        self.namespace = namespace
        self.scheduler_name = scheduler_name
        self.only_unbound_pods = only_unbound_pods

    def list_nodes(self) -> List[DiscoveredNode]:
        try:
            nodes = self.core.list_node()
        except ApiException as e:
            raise InventoryError(f"Failed to list nodes: status={e.status}, reason={e.reason}") from e
        except Exception as e:
            raise InventoryError(f"Failed to list nodes: {e}") from e

        discovered = []
        for node in nodes.items:
            if node.spec is not None and node.spec.unschedulable:
                logger.debug(f"Skipping unschedulable node {node.metadata.name}")
                continue
            discovered.append(self._node_from_api(node))
        return discovered

    def _node_from_api(self, node: Any) -> DiscoveredNode:
        name = node.metadata.name
        host = None
        capacity: Dict[str, str] = {}
        if node.status is not None:
            for addr in node.status.addresses or []:
                if addr.type == 'InternalIP':
                    host = addr.address
                    break
            capacity = node.status.capacity or {}
        try:
            vector = ResourceVector(
                cpu_millis=parse_cpu_millis(capacity.get('cpu')),
                ram_kb=parse_memory_kb(capacity.get('memory')),
            )
        except (ValueError, ArithmeticError) as e:
            logger.warning(f"Unparseable capacity {capacity} on node {name}, using zero: {e}")
            vector = ResourceVector()
        return DiscoveredNode(
            external_id=node.metadata.uid or name,
            address=name,
            host=host,
            hostname=name,
            labels=dict(node.metadata.labels or {}),
            capacity=vector,
        )

    def list_workloads(self) -> List[str]:
        selectors = []
        if self.scheduler_name:
            selectors.append(f"spec.schedulerName={self.scheduler_name}")
        if self.only_unbound_pods:
            selectors.append("spec.nodeName=")
        kwargs = {"field_selector": ",".join(selectors)} if selectors else {}

        try:
            if self.namespace:
                pods = self.core.list_namespaced_pod(self.namespace, **kwargs)
            else:
                pods = self.core.list_pod_for_all_namespaces(**kwargs)
        except ApiException as e:
            raise InventoryError(f"Failed to list pods: status={e.status}, reason={e.reason}") from e
        except Exception as e:
            raise InventoryError(f"Failed to list pods: {e}") from e

        return [f"{pod.metadata.namespace}/{pod.metadata.name}" for pod in pods.items]

    def bind_workload(self, workload_id: str, node_address: str) -> None:
        namespace, name = split_workload_id(workload_id, self.namespace or "default")
        body = V1Binding(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            target=V1ObjectReference(api_version="v1", kind="Node", name=node_address),
        )
        try:
            # The generated client cannot deserialize the Binding response.
            self.core.create_namespaced_binding(namespace, body, _preload_content=False)
        except ApiException as e:
            raise BindingError(workload_id, node_address, f"status={e.status}, reason={e.reason}") from e
        except Exception as e:
            raise BindingError(workload_id, node_address, str(e)) from e
        logger.info(f"Bound pod {workload_id} to node {node_address}")
