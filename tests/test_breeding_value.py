"""Tests for poultry_breeding_engine.breeding_value: BVI components and ratings."""

import numpy as np
import pytest

from poultry_breeding_engine.breeding_value import BreedingValueIndexService, rate
from poultry_breeding_engine.exceptions import BirdNotFoundError
from poultry_breeding_engine.models import BirdRecord, ShowRecord, TraitRecord
from poultry_breeding_engine.repositories import FlockRepository


@pytest.fixture
def service(flock, config):
    return BreedingValueIndexService(flock, flock, flock, config)


def elite_flock():
    birds = [BirdRecord(id="STAR", gender="male"), BirdRecord(id="HEN", gender="female")]
    birds += [BirdRecord(id=f"K{i}", gender="female", sire_id="STAR", dam_id="HEN") for i in range(20)]
    traits = [TraitRecord("STAR", f"trait_{i}", "7") for i in range(20)]
    shows = [ShowRecord("STAR", f"Show {i}", 1) for i in range(4)]
    return FlockRepository.from_records(birds, traits, shows)


class TestRate:
    @pytest.mark.parametrize("bvi,rating", [
        (0.0, "Developing"), (0.39, "Developing"), (0.4, "Average"),
        (0.6, "Strong"), (0.79, "Strong"), (0.8, "Elite"), (1.0, "Elite"),
    ])
    def test_buckets(self, bvi, rating):
        assert rate(bvi) == rating


class TestBvi:
    def test_unrated_without_data(self, service):
        result = service.bvi("CHICK1")
        assert result.rating == "Unrated"
        assert result.bvi == 0.0

    def test_elite(self):
        repo = elite_flock()
        result = BreedingValueIndexService(repo, repo, repo).bvi("STAR")
        assert result.bvi == pytest.approx(1.0)
        assert result.rating == "Elite"
        assert result.show_wins == result.show_total == 4
        assert result.offspring_count == 20

    def test_components(self, service, config):
        result = service.bvi("SIRE_A")
        settings = config.breeding_value
        offspring = np.log1p(2) / np.log1p(settings.offspring_cap)
        expected = 3 / 20 * settings.trait_weight + 0.5 * settings.show_weight + offspring * settings.offspring_weight
        assert result.bvi == pytest.approx(expected, abs=1e-4)
        assert result.trait_count == 3
        assert result.show_wins == 1
        assert result.show_total == 2
        assert result.offspring_count == 2

    def test_offspring_only(self, service):
        result = service.bvi("M1")
        assert result.rating == "Developing"
        assert 0.0 < result.bvi < 0.4
        assert "shows" in result.recommendation

    def test_always_in_range(self, service, flock):
        for bird in flock.list_birds():
            assert 0.0 <= service.bvi(bird.id).bvi <= 1.0

    def test_unknown_bird(self, service):
        with pytest.raises(BirdNotFoundError):
            service.bvi("NOPE")

    def test_without_show_repository(self, flock, config):
        result = BreedingValueIndexService(flock, flock, None, config).bvi("SIRE_A")
        assert result.show_total == 0
