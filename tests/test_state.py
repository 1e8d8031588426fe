import threading
import uuid

import pytest

from topo.errors import DuplicateResourceError
from topo.ids import IdentityGenerator, resource_id_from_string
from topo.state import (
    ResourceCatalog,
    ResourceDescriptor,
    ResourceStatus,
    ResourceTopologyNode,
    ResourceType,
)


def _status(rid, rtype=ResourceType.MACHINE):
    rd = ResourceDescriptor(uuid=str(rid), type=rtype)
    return ResourceStatus(rd, ResourceTopologyNode(resource_desc=rd))


def test_generated_ids_are_unique():
    ids = IdentityGenerator()
    generated = [ids.generate() for _ in range(1000)]
    assert len(set(generated)) == len(generated)


def test_generator_redraws_on_collision():
    fixed = uuid.UUID("00000000-0000-0000-0000-000000000001")
    other = uuid.UUID("00000000-0000-0000-0000-000000000002")
    sequence = iter([fixed, fixed, fixed, other])
    ids = IdentityGenerator(factory=lambda: next(sequence))

    assert ids.generate() == fixed
    assert ids.generate() == other
    assert len(ids) == 2


def test_uuid_strings_parse_to_themselves():
    raw = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
    assert resource_id_from_string(raw) == uuid.UUID(raw)


def test_non_uuid_identifiers_map_to_stable_ids():
    first = resource_id_from_string("worker-0")
    assert first == resource_id_from_string("worker-0")
    assert first != resource_id_from_string("worker-1")


def test_catalog_rejects_duplicate_insert():
    catalog = ResourceCatalog()
    rid = uuid.uuid4()
    original = _status(rid)
    catalog.insert(rid, original)

    with pytest.raises(DuplicateResourceError) as exc:
        catalog.insert(rid, _status(rid))

    assert exc.value.resource_id == rid
    assert catalog.get(rid) is original
    assert len(catalog) == 1


def test_catalog_lookup():
    catalog = ResourceCatalog()
    rid = uuid.uuid4()
    assert not catalog.contains(rid)
    assert catalog.get(rid) is None

    catalog.insert(rid, _status(rid, ResourceType.COORDINATOR))

    assert rid in catalog
    assert catalog.ids() == [rid]
    assert [s.descriptor.uuid for s in catalog] == [str(rid)]
    assert len(catalog.of_type(ResourceType.COORDINATOR)) == 1
    assert catalog.of_type(ResourceType.MACHINE) == []


def test_add_child_requires_matching_parent():
    parent = ResourceTopologyNode(ResourceDescriptor(uuid="p", type=ResourceType.COORDINATOR))
    stray = ResourceTopologyNode(ResourceDescriptor(uuid="c", type=ResourceType.MACHINE, parent_id="x"))

    with pytest.raises(ValueError):
        parent.add_child(stray)
    assert parent.children == []


def test_link_child_waits_for_readers():
    catalog = ResourceCatalog()
    root_id = uuid.uuid4()
    catalog.insert(root_id, _status(root_id, ResourceType.COORDINATOR))
    child = ResourceTopologyNode(ResourceDescriptor(uuid="c", type=ResourceType.MACHINE, parent_id=str(root_id)))

    writer = threading.Thread(target=catalog.link_child, args=(root_id, child))
    with catalog._lock:
        writer.start()
        writer.join(timeout=0.05)
        assert writer.is_alive()
        assert catalog.topology_snapshot(root_id)["children"] == []
    writer.join(timeout=1.0)

    assert not writer.is_alive()
    assert [c["resource_desc"]["uuid"] for c in catalog.topology_snapshot(root_id)["children"]] == ["c"]
    assert catalog.status_snapshot(root_id)["children"] == ["c"]


def test_snapshots_of_unknown_resources():
    catalog = ResourceCatalog()
    missing = uuid.uuid4()

    assert catalog.topology_snapshot(missing) is None
    assert catalog.status_snapshot(missing) is None
    assert catalog.snapshot() == []
    with pytest.raises(KeyError):
        catalog.link_child(missing, ResourceTopologyNode(ResourceDescriptor(uuid="c", type=ResourceType.MACHINE)))
