"""Tests for poultry_breeding_engine.pedigree: ancestor trees, descendants, lineage."""

import pytest

from poultry_breeding_engine.exceptions import BirdNotFoundError, BreedingEngineError
from poultry_breeding_engine.models import BirdRecord, GuestReason
from poultry_breeding_engine.pedigree import PedigreeGraphBuilder, genetic_contribution


def chain(length):
    """G0 is the oldest founder, G{length-1} the youngest descendant."""
    birds = [BirdRecord(id="G0", gender="male")]
    for i in range(1, length):
        birds.append(BirdRecord(id=f"G{i}", gender="male", sire_id=f"G{i-1}"))
    return birds


# ── genetic_contribution ──────────────────────────────────────────────

class TestGeneticContribution:
    def test_parents_half(self):
        assert genetic_contribution(0) == 50.0

    def test_halves_each_generation(self):
        assert genetic_contribution(1) == 25.0
        assert genetic_contribution(3) == 6.25

    def test_never_negative(self):
        assert genetic_contribution(60) >= 0.0

    def test_negative_depth_rejected(self):
        with pytest.raises(ValueError):
            genetic_contribution(-1)


# ── build ─────────────────────────────────────────────────────────────

class TestBuild:
    def test_resolves_parents(self, flock, config):
        tree = PedigreeGraphBuilder(flock, config).build("CHICK1")
        assert tree.bird_id == "CHICK1"
        assert tree.sire.bird_id == "SIRE_A"
        assert tree.dam.bird_id == "DAM_A"
        assert tree.sire.sire.bird_id == "M1"
        assert tree.count_ancestors() == 6

    def test_same_ancestor_on_both_sides(self, flock, config):
        tree = PedigreeGraphBuilder(flock, config).build("CHICK1")
        assert tree.sire.sire.bird is not None
        assert tree.dam.sire.bird is not None
        assert tree.sire.sire.bird_id == tree.dam.sire.bird_id == "M1"

    def test_missing_parent_is_guest(self, flock, config):
        tree = PedigreeGraphBuilder(flock, config).build("M1")
        assert tree.sire.is_guest_parent
        assert tree.sire.guest_reason is GuestReason.MISSING
        assert tree.sire.bird is None

    @pytest.mark.parametrize("max_depth", [0, 1, 3, 5])
    def test_depth_bound(self, dict_repository, max_depth):
        builder = PedigreeGraphBuilder(dict_repository(chain(10)))
        tree = builder.build("G9", max_depth)
        assert tree.max_generation() <= max_depth

    def test_depth_limit_node_keeps_id(self, dict_repository):
        tree = PedigreeGraphBuilder(dict_repository(chain(10))).build("G9", 2)
        limit = tree.sire.sire
        assert limit.bird_id == "G7"
        assert limit.is_guest_parent
        assert limit.guest_reason is GuestReason.DEPTH_LIMIT
        assert limit.sire is None

    def test_unknown_root(self, flock, config):
        with pytest.raises(BirdNotFoundError):
            PedigreeGraphBuilder(flock, config).build("NOPE")

    def test_root_from_record(self, flock, config):
        visitor = BirdRecord(id="VISITOR", gender="female", sire_id="M1")
        tree = PedigreeGraphBuilder(flock, config).build("VISITOR", 2, record=visitor)
        assert tree.bird is visitor
        assert tree.sire.bird_id == "M1" and not tree.sire.is_guest_parent
        assert tree.dam.guest_reason is GuestReason.MISSING

    def test_record_does_not_shadow_repository(self, flock, config):
        stale = BirdRecord(id="SIRE_A", gender="male")
        tree = PedigreeGraphBuilder(flock, config).build("SIRE_A", 1, record=stale)
        assert tree.sire.bird_id == "M1"

    def test_failing_root_lookup(self, dict_repository):
        repo = dict_repository([BirdRecord(id="X", gender="male")], failing_ids={"X"})
        with pytest.raises(BreedingEngineError):
            PedigreeGraphBuilder(repo).build("X")

    def test_negative_depth_rejected(self, flock, config):
        with pytest.raises(ValueError):
            PedigreeGraphBuilder(flock, config).build("CHICK1", -1)


# ── degraded lookups ──────────────────────────────────────────────────

class TestDegradedLookups:
    def test_cycle_terminates(self, dict_repository):
        birds = [
            BirdRecord(id="X", gender="male", sire_id="Y"),
            BirdRecord(id="Y", gender="male", sire_id="X"),
        ]
        tree = PedigreeGraphBuilder(dict_repository(birds)).build("X", 10)
        assert tree.sire.bird_id == "Y"
        assert tree.sire.sire.is_guest_parent
        assert tree.sire.sire.guest_reason is GuestReason.CYCLE
        assert tree.max_generation() == 2

    def test_timeout_yields_guest(self, dict_repository, fast_timeout_config):
        birds = [
            BirdRecord(id="ROOT", gender="male", sire_id="SLOW", dam_id="DAM"),
            BirdRecord(id="SLOW", gender="male"),
            BirdRecord(id="DAM", gender="female"),
        ]
        repo = dict_repository(birds, slow_ids={"SLOW"})
        tree = PedigreeGraphBuilder(repo, fast_timeout_config).build("ROOT")
        assert tree.sire.is_guest_parent
        assert tree.sire.guest_reason is GuestReason.TIMEOUT
        assert tree.dam.bird is not None

    def test_failed_lookup_yields_guest(self, dict_repository):
        birds = [
            BirdRecord(id="ROOT", gender="male", sire_id="BROKEN"),
            BirdRecord(id="BROKEN", gender="male"),
        ]
        repo = dict_repository(birds, failing_ids={"BROKEN"})
        tree = PedigreeGraphBuilder(repo).build("ROOT")
        assert tree.sire.guest_reason is GuestReason.LOOKUP_FAILED

    def test_sequential_branches(self, flock):
        from poultry_breeding_engine.config import load_config
        config = load_config(overrides={"pedigree": {"parallel_parents": False}})
        tree = PedigreeGraphBuilder(flock, config).build("CHICK1")
        assert tree.count_ancestors() == 6


# ── descendants / graph / lineage ─────────────────────────────────────

class TestDescendants:
    def test_direct_offspring(self, flock, config):
        ids = {b.id for b in PedigreeGraphBuilder(flock, config).offspring("M1")}
        assert ids == {"SIRE_A", "DAM_A", "DAM_B"}

    def test_breadth_first_with_depth(self, flock, config):
        result = PedigreeGraphBuilder(flock, config).descendants("M1", 2)
        generations = {b.id: g for b, g in result}
        assert generations == {"SIRE_A": 1, "DAM_A": 1, "DAM_B": 1, "CHICK1": 2, "CHICK2": 2}

    def test_depth_one_is_flat(self, flock, config):
        result = PedigreeGraphBuilder(flock, config).descendants("M1", 1)
        assert {g for _, g in result} == {1}


class TestGraph:
    def test_edges_point_to_parents(self, flock, config):
        builder = PedigreeGraphBuilder(flock, config)
        G = builder.to_graph(builder.build("CHICK1"))
        assert G.edges["CHICK1", "SIRE_A"]["role"] == "sire"
        assert G.edges["CHICK1", "DAM_A"]["role"] == "dam"
        assert G.has_edge("DAM_A", "M1")


class TestLineageScore:
    def test_partial_lineage(self, flock, config):
        score = PedigreeGraphBuilder(flock, config).lineage_score("CHICK1", 3)
        assert score.known_ancestors == 6
        assert score.max_possible_ancestors == 14
        assert score.total_score == 42
        assert score.generations_complete == 2
        assert score.recommendation == "Limited lineage, significant gaps"

    def test_founder_has_no_lineage(self, flock, config):
        score = PedigreeGraphBuilder(flock, config).lineage_score("F1")
        assert score.total_score == 0
        assert score.generations_complete == 0

    def test_explicit_generations_respected(self, flock, config):
        score = PedigreeGraphBuilder(flock, config).lineage_score("CHICK1", 1)
        assert score.max_possible_ancestors == 2
        assert score.generations_complete == 1

    @pytest.mark.parametrize("generations", [0, -1])
    def test_generations_below_one_rejected(self, flock, config, generations):
        with pytest.raises(ValueError):
            PedigreeGraphBuilder(flock, config).lineage_score("CHICK1", generations)


class TestFormatTree:
    def test_contribution_labels(self, flock, config):
        builder = PedigreeGraphBuilder(flock, config)
        text = builder.format_tree(builder.build("CHICK1", 2))
        assert "Chick1" in text.splitlines()[0]
        assert "sire: Sire_A (50.00%)" in text
        assert "(25.00%)" in text
