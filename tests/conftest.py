"""Shared fixtures: a small Aseel flock with known relationships."""

import time
from datetime import datetime, timedelta

import pytest

from poultry_breeding_engine.config import default_config, load_config
from poultry_breeding_engine.models import BirdRecord, ShowRecord, TraitRecord
from poultry_breeding_engine.repositories import FlockRepository

HATCH = datetime(2023, 3, 1)


def bird(bird_id, gender, sire=None, dam=None, **kwargs):
    kwargs.setdefault("breed", "Aseel")
    kwargs.setdefault("hatched_at", HATCH)
    kwargs.setdefault("health_status", "healthy")
    return BirdRecord(id=bird_id, name=bird_id.title(), gender=gender, sire_id=sire, dam_id=dam, **kwargs)


def trait(bird_id, name, value, category="general", unit=None, days=0):
    return TraitRecord(bird_id=bird_id, trait_name=name, value=str(value), category=category,
                       unit=unit, recorded_at=datetime(2024, 1, 1) + timedelta(days=days))


def flock_birds():
    """
    Founders M1..M3 / F1..F3 are unrelated.
    SIRE_A and DAM_A are full siblings (M1 x F1), DAM_B is their half sibling (M1 x F2),
    SIRE_C is M2 x F2, DAM_C is M3 x F3 (unrelated to SIRE_A).
    CHICK1 and CHICK2 are full siblings out of the SIRE_A x DAM_A mating.
    """
    return [
        bird("M1", "male"), bird("M2", "male"), bird("M3", "male"),
        bird("F1", "female"), bird("F2", "female"), bird("F3", "female"),
        bird("SIRE_A", "male", "M1", "F1", weight=3000, color="Black"),
        bird("DAM_A", "female", "M1", "F1", weight=2500, color="Black"),
        bird("DAM_B", "female", "M1", "F2", weight=2400, color="Red"),
        bird("SIRE_C", "male", "M2", "F2", weight=3200, color="Wheaten"),
        bird("DAM_C", "female", "M3", "F3", weight=2300, color="Blue"),
        bird("CHICK1", "male", "SIRE_A", "DAM_A", hatched_at=datetime(2025, 1, 1)),
        bird("CHICK2", "female", "SIRE_A", "DAM_A", hatched_at=datetime(2025, 1, 1)),
        bird("SICK_HEN", "female", health_status="sick"),
    ]


def flock_traits():
    return [
        trait("SIRE_A", "aggression", 9, unit="score"),
        trait("SIRE_A", "stamina", 3, unit="score"),
        trait("SIRE_A", "leg_strength", 8, unit="score"),
        trait("DAM_A", "aggression", 8, unit="score"),
        trait("DAM_A", "stamina", 2, unit="score"),
        trait("DAM_C", "stamina", 9, unit="score"),
        trait("DAM_C", "aggression", 6, unit="score"),
        trait("DAM_B", "vitality", "poor", category="health"),
    ]


def flock_shows():
    return [
        ShowRecord("SIRE_A", "Spring Fair", 1),
        ShowRecord("SIRE_A", "District Show", 2),
        ShowRecord("DAM_C", "Spring Fair", 3),
    ]


@pytest.fixture
def config():
    return default_config()


@pytest.fixture
def flock():
    return FlockRepository.from_records(flock_birds(), flock_traits(), flock_shows(),
                                        active_pairs=[("SIRE_A", "DAM_C")])


class DictRepository:
    """BirdRepository over a plain dict, with optional slow and failing ids."""

    def __init__(self, birds, slow_ids=(), failing_ids=(), delay=0.5):
        self.birds = {b.id: b for b in birds}
        self.slow_ids = set(slow_ids)
        self.failing_ids = set(failing_ids)
        self.delay = delay

    def find_by_id(self, bird_id):
        if bird_id in self.failing_ids:
            raise RuntimeError(f"storage error for {bird_id}")
        if bird_id in self.slow_ids:
            time.sleep(self.delay)
        return self.birds.get(bird_id)

    def get_offspring(self, bird_id):
        return [b for b in self.birds.values() if bird_id in (b.sire_id, b.dam_id)]

    def list_birds(self):
        return list(self.birds.values())


@pytest.fixture
def dict_repository():
    return DictRepository


@pytest.fixture
def fast_timeout_config():
    return load_config(overrides={"pedigree": {"lookup_timeout": 0.05}})
