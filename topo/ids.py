"""Resource identifier generation."""

from __future__ import annotations

import uuid
from typing import Callable, Set

ResourceID = uuid.UUID

# Fixed namespace for name-derived IDs so the same external identifier maps
# to the same ResourceID across cycles and restarts.
RESOURCE_NAMESPACE = uuid.UUID("5b0d8c6e-3f0a-4c8e-9f5e-2a1d7c4b9e10")


class IdentityGenerator:
    """Hands out resource IDs that are unique among all IDs it has issued."""

    def __init__(self, factory: Callable[[], uuid.UUID] = uuid.uuid4) -> None:
        self._factory = factory
        self._issued: Set[ResourceID] = set()

    def generate(self) -> ResourceID:
        rid = self._factory()
        while rid in self._issued:
            rid = self._factory()
        self._issued.add(rid)
        return rid

    def __len__(self) -> int:
        return len(self._issued)


def resource_id_from_string(value: str) -> ResourceID:
    """
    Parse an external identifier into a ResourceID.

    UUID literals (e.g. Kubernetes ``metadata.uid``) are used as-is; anything
    else gets a stable name-based UUID.
    """
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return uuid.uuid5(RESOURCE_NAMESPACE, str(value))
