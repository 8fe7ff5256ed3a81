"""Tests for the identity registry."""

import numpy as np
import pytest

from facemanager.core.contracts import Person, Rectangle
from facemanager.identity.registry import IdentityRegistry

from conftest import descriptor


def make_person(desc, box=Rectangle(0, 0, 49, 49), external_id=""):
    return Person(
        bounding_box=box,
        face_image=np.zeros((2, 2, 3), dtype=np.uint8),
        descriptor=desc,
        external_id=external_id,
    )


@pytest.fixture
def registry():
    return IdentityRegistry()


def test_local_ids_start_at_one_and_increase(registry):
    ids = [registry.register(make_person(descriptor(10.0 * i))) for i in range(3)]
    assert ids == [1, 2, 3]
    assert len(registry) == 3
    assert [p.local_id for p in registry] == [1, 2, 3]


def test_register_twice_rejected(registry):
    person = make_person(descriptor(0.0))
    registry.register(person)
    with pytest.raises(ValueError):
        registry.register(person)
    assert len(registry) == 1
    assert person.local_id == 1


@pytest.mark.parametrize("distance,same", [(0.59, True), (0.61, False)])
def test_descriptor_threshold(registry, distance, same):
    registry.register(make_person(descriptor(0.0)))
    registry.register(make_person(descriptor(distance)))

    found = registry.find_by_descriptor(descriptor(distance))
    if same:
        # First match in registration order, not the closest
        assert found.local_id == 1
    else:
        assert found.local_id == 2
        assert not registry.is_same_person(descriptor(0.0), descriptor(distance))


def test_descriptor_threshold_is_exclusive(registry):
    base = np.zeros(8, dtype=np.float64)
    at_threshold = base.copy()
    at_threshold[0] = 0.6
    assert np.linalg.norm(at_threshold - base) == 0.6

    registry.register(make_person(base))
    assert registry.find_by_descriptor(at_threshold) is None


def test_find_by_descriptor_none_when_empty(registry):
    assert registry.find_by_descriptor(descriptor(0.0)) is None


def test_find_by_region(registry):
    registry.register(make_person(descriptor(0.0), box=Rectangle(0, 0, 9, 9)))
    registry.register(make_person(descriptor(10.0), box=Rectangle(2, 0, 11, 9)))
    registry.register(make_person(descriptor(20.0), box=Rectangle(100, 100, 109, 109)))

    # IoU with #2 is 80/120 > 0.5
    found = registry.find_by_region(Rectangle(0, 0, 9, 9))
    assert [p.local_id for p in found] == [1, 2]

    # IoU exactly 0.5 is not enough: 10x10 vs 10x20 containing it
    assert registry.find_by_region(Rectangle(100, 100, 109, 119)) == []


def test_find_by_external_id(registry):
    registry.register(make_person(descriptor(0.0), external_id="alice"))
    registry.register(make_person(descriptor(10.0), external_id="bob"))
    registry.register(make_person(descriptor(20.0), external_id="alice"))

    assert [p.local_id for p in registry.find_by_external_id("alice")] == [1, 3]
    assert registry.find_by_external_id("carol") == []


def test_find_by_id(registry):
    local_id = registry.register(make_person(descriptor(0.0)))
    assert registry.find_by_id(local_id).local_id == local_id
    assert registry.find_by_id(99) is None
    assert local_id in registry
