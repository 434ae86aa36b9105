"""Tests for poultry_breeding_engine.config: defaults, YAML loading and validation."""

import pytest
import yaml

from poultry_breeding_engine.config import (
    EngineConfig,
    config_from_dict,
    deep_merge,
    default_config,
    load_config,
    setup_pairing_criteria,
    validate_config,
)
from poultry_breeding_engine.exceptions import ConfigError


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_base_untouched(self):
        base = {'x': {'a': 1}}
        deep_merge(base, {'x': {'a': 2}})
        assert base == {'x': {'a': 1}}

    def test_override_dict_with_scalar(self):
        assert deep_merge({'a': {'nested': 1}}, {'a': 'replaced'}) == {'a': 'replaced'}


# ── defaults ──────────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_documented_constants(self):
        config = default_config()
        assert config.pedigree.max_pedigree_depth == 5
        assert (config.risk.critical, config.risk.high, config.risk.moderate) == (25.0, 12.5, 6.25)
        assert config.traits.default_spread == 0.12
        bv = config.breeding_value
        assert bv.trait_weight + bv.show_weight + bv.offspring_weight == pytest.approx(1.0)

    def test_pairing_criteria_defaults(self):
        weights = {k: v['weight'] for k, v in default_config().pairing.criteria.items()}
        assert weights == {
            'offspring_potential': 0.40,
            'genetic_diversity': 0.25,
            'trait_complementarity': 0.20,
            'practical_score': 0.15,
        }

    def test_defaults_validate(self):
        validate_config(default_config())


class TestPairingCriteria:
    def test_partial_override_keeps_description(self):
        criteria = setup_pairing_criteria({'genetic_diversity': {'weight': 0.5}})
        assert criteria['genetic_diversity']['weight'] == 0.5
        assert criteria['genetic_diversity']['description']
        assert criteria['offspring_potential']['weight'] == 0.40

    def test_engine_config_merges(self):
        config = EngineConfig()
        assert len(config.pairing.criteria) == 4


# ── load_config ───────────────────────────────────────────────────────

class TestLoadConfig:
    def test_yaml_overrides(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.safe_dump({
            'pedigree': {'max_pedigree_depth': 7},
            'pairing': {'criteria': {'practical_score': {'weight': 0.3}}},
        }))
        config = load_config(path)
        assert config.pedigree.max_pedigree_depth == 7
        assert config.pedigree.lookup_timeout == 2.0
        assert config.pairing.criteria['practical_score']['weight'] == 0.3
        assert config.pairing.criteria['genetic_diversity']['weight'] == 0.25

    def test_overrides_after_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.safe_dump({'pedigree': {'max_pedigree_depth': 7}}))
        config = load_config(path, overrides={'pedigree': {'max_pedigree_depth': 3}})
        assert config.pedigree.max_pedigree_depth == 3

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).pedigree.max_pedigree_depth == 5

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_config(path)


# ── validation ────────────────────────────────────────────────────────

class TestValidation:
    def test_unknown_section(self):
        with pytest.raises(ConfigError):
            config_from_dict({'nope': {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            load_config(overrides={'pedigree': {'depth': 3}})

    def test_unordered_risk_thresholds(self):
        with pytest.raises(ConfigError):
            load_config(overrides={'risk': {'high': 30.0}})

    def test_bvi_weights_must_sum_to_one(self):
        with pytest.raises(ConfigError):
            load_config(overrides={'breeding_value': {'trait_weight': 0.9}})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_config(overrides={'pedigree': {'lookup_timeout': 0}})
