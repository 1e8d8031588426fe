from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from topo.inventory import DiscoveredNode


class PlacementPolicy(ABC):
	@abstractmethod
	def choose(self, workload_id: str, nodes: Sequence[DiscoveredNode]) -> Optional[DiscoveredNode]:
		"""Pick a target node for the workload, or None to leave it unplaced."""
		raise NotImplementedError


class FirstNodePolicy(PlacementPolicy):
	"""Always places on the first node discovered in the current cycle."""

	def choose(self, workload_id: str, nodes: Sequence[DiscoveredNode]) -> Optional[DiscoveredNode]:
		if not nodes:
			return None
		return nodes[0]
