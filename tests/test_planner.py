"""Tests for poultry_breeding_engine.planner: pairing matrix and the DEAP planner."""

import numpy as np
import pandas as pd
import pytest

from poultry_breeding_engine.engine import BreedingEngine
from poultry_breeding_engine.planner import FlockAnalyzer, PairingPlanner, build_pairing_matrix, filter_by_coi


@pytest.fixture
def matrix():
    return pd.DataFrame(
        [
            [80.0, np.nan, 60.0],
            [np.nan, 70.0, 65.0],
            [90.0, 50.0, np.nan],
            [55.0, np.nan, 85.0],
        ],
        index=pd.Index(["D1", "D2", "D3", "D4"], name="dam"),
        columns=pd.Index(["S1", "S2", "S3"], name="sire"),
    )


class TestPairingMatrix:
    def test_filter_by_coi(self):
        scores = pd.DataFrame([[70.0, 60.0]], index=["D"], columns=["S1", "S2"])
        coi = pd.DataFrame([[25.0, 0.0]], index=["D"], columns=["S1", "S2"])
        filtered = filter_by_coi(scores, coi, 6.25)
        assert np.isnan(filtered.at["D", "S1"])
        assert filtered.at["D", "S2"] == 60.0

    def test_threshold_is_exclusive(self):
        scores = pd.DataFrame([[70.0]], index=["D"], columns=["S"])
        coi = pd.DataFrame([[6.25]], index=["D"], columns=["S"])
        assert filter_by_coi(scores, coi, 6.25).isna().all().all()

    def test_related_pairs_excluded(self, flock, config):
        ranker = BreedingEngine(flock, flock, flock, flock, config).ranker
        dams = [flock.find_by_id(i) for i in ("DAM_A", "DAM_B", "DAM_C")]
        sires = [flock.find_by_id(i) for i in ("SIRE_A", "SIRE_C")]
        result = build_pairing_matrix(ranker, dams, sires, coi_threshold=6.25)
        assert result.shape == (3, 2)
        assert np.isnan(result.at["DAM_A", "SIRE_A"])    # полные сибсы
        assert np.isnan(result.at["DAM_B", "SIRE_A"])    # полусибсы
        assert not np.isnan(result.at["DAM_C", "SIRE_A"])


class TestPairingPlanner:
    def test_respects_exclusions(self, matrix):
        planner = PairingPlanner(matrix, max_assign_per_sire=0.5)
        result, best, hof = planner.optimize(pop_size=10, ngen=5, seed=42)
        assert len(result) == 4
        for _, row in result.iterrows():
            assert not np.isnan(matrix.at[row["Dam"], row["Assigned_Sire"]])
        assert len(hof) >= 1

    def test_limit_per_sire(self, matrix):
        planner = PairingPlanner(matrix, max_assign_per_sire=0.5)
        assert planner.max_assign_per_sire == 2

    def test_tiny_fraction_still_allows_one(self, matrix):
        assert PairingPlanner(matrix, max_assign_per_sire=0.01).max_assign_per_sire == 1

    def test_unassignable_dam(self, matrix):
        matrix.loc["D5"] = [np.nan, np.nan, np.nan]
        planner = PairingPlanner(matrix, max_assign_per_sire=0.5)
        assert planner.unassignable == ["D5"]
        result, _, _ = planner.optimize(pop_size=6, ngen=2, seed=1)
        row = result[result["Dam"] == "D5"].iloc[0]
        assert row["Assigned_Sire"] is None

    def test_all_excluded(self):
        matrix = pd.DataFrame([[np.nan]], index=["D"], columns=["S"])
        with pytest.raises(ValueError):
            PairingPlanner(matrix)

    def test_single_dam(self):
        matrix = pd.DataFrame([[70.0, 90.0]], index=["D"], columns=["S1", "S2"])
        result, _, _ = PairingPlanner(matrix, max_assign_per_sire=1.0).optimize(pop_size=4, ngen=3, seed=3)
        assert result.loc[0, "Assigned_Sire"] in ("S1", "S2")

    def test_invalid_probabilities(self, matrix):
        with pytest.raises(ValueError):
            PairingPlanner(matrix).optimize(pop_size=4, ngen=1, cxpb=0.8, mutpb=0.5)

    def test_custom_criteria(self, matrix):
        planner = PairingPlanner(matrix, optimization_criteria={'sire_diversity': {'weight': 0.5}})
        assert planner.optimization_criteria['sire_diversity']['weight'] == 0.5
        assert planner.optimization_criteria['mean_score']['weight'] == 1.0
        with pytest.raises(ValueError):
            PairingPlanner(matrix, optimization_criteria={'unknown': {'weight': 1.0}})


class TestFlockAnalyzer:
    def test_summary(self):
        scores = pd.DataFrame([[80.0, 40.0], [60.0, 20.0]], index=["D1", "D2"], columns=["S1", "S2"])
        coi = pd.DataFrame([[25.0, 0.0], [0.0, 0.0]], index=["D1", "D2"], columns=["S1", "S2"])
        stats = FlockAnalyzer.summarize_matrix(coi, scores, 6.25)
        assert stats['total_pairs'] == 4
        assert stats['excluded_pairs'] == 1
        assert stats['included_pairs'] == 3
        assert stats['excluded_percent'] == pytest.approx(25.0)
        assert stats['excluded_mean_score'] == pytest.approx(80.0)
        assert stats['included_mean_score'] == pytest.approx(40.0)
        assert stats['mean_coi'] == pytest.approx(6.25)

    def test_planners_keep_their_own_weights(self, matrix):
        maximizing = PairingPlanner(matrix)
        minimizing = PairingPlanner(matrix, optimization_criteria={'mean_score': {'maximize': False}})
        assert maximizing.toolbox.individual().fitness.weights[0] == 1.0
        assert minimizing.toolbox.individual().fitness.weights[0] == -1.0
        assert maximizing.fitness_cls is not minimizing.fitness_cls

    def test_individuals_clone_with_fitness(self, matrix):
        planner = PairingPlanner(matrix, max_assign_per_sire=0.5)
        individual = planner.toolbox.individual()
        individual.fitness.values = planner.toolbox.evaluate(individual)
        clone = planner.toolbox.clone(individual)
        assert list(clone) == list(individual)
        assert clone.fitness.values == individual.fitness.values
        assert clone.fitness is not individual.fitness
