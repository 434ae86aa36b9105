"""
Конфигурация движка разведения

Все коэффициенты - именованные настраиваемые константы. Поддерживается
загрузка переопределений из YAML с глубоким слиянием:
  default_config() -> файл YAML -> словарь overrides
"""

import copy
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class PedigreeSection:
    """Построение родословной"""
    max_pedigree_depth: int = 5
    lookup_timeout: float = 2.0        # секунды на один запрос к репозиторию
    parallel_parents: bool = True      # ветви отца и матери корня строятся параллельно
    lineage_generations: int = 3


@dataclass
class RiskThresholds:
    """Пороги риска по COI (%), стандартная генетическая шкала"""
    critical: float = 25.0
    high: float = 12.5
    moderate: float = 6.25


@dataclass
class CompatibilitySection:
    coi_penalty_per_percent: float = 2.0
    health_penalty: float = 10.0           # за каждого родителя с отметкой о здоровье
    breed_mismatch_penalty: float = 5.0
    max_complementarity_bonus: float = 10.0
    health_score_threshold: float = 4.0    # числовые оценки здоровья ниже порога - флаг
    flagged_health_values: List[str] = field(default_factory=lambda: [
        "sick", "poor", "infected", "injured", "diseased", "quarantine",
    ])


@dataclass
class TraitRangeSection:
    """Разброс диапазонов веса/роста потомства"""
    default_spread: float = 0.12
    degraded_spread: float = 0.25
    min_spread: float = 0.05
    max_spread: float = 0.30
    variance_multiplier: float = 1.5
    min_history_points: int = 4
    fallback_weight: float = 2500.0    # г, если вес обоих родителей неизвестен
    fallback_height: float = 35.0      # см
    carrier_probability: float = 1.0   # вероятность, что доминантный фенотип несёт рецессивный аллель
    heritability: float = 0.4
    score_population_mean: float = 5.0
    score_environment_variance: float = 1.5


@dataclass
class BreedingValueSection:
    trait_weight: float = 0.40
    show_weight: float = 0.35
    offspring_weight: float = 0.25
    definable_traits: int = 20
    offspring_cap: int = 20


@dataclass
class PairingSection:
    """Ранжирование партнёров"""
    criteria: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    default_bvi: float = 0.3
    maturity_weeks: int = 20
    max_age_gap_weeks: int = 104
    excluded_health_statuses: List[str] = field(default_factory=lambda: ["sick", "dead"])
    strength_threshold: float = 75.0
    high_bvi_threshold: float = 0.7
    excellent_compatibility: float = 80.0
    risk_threshold: float = 40.0
    max_strengths: int = 4
    max_risks: int = 3
    weight_standard_min: float = 1500.0   # г, взрослая курица
    weight_standard_max: float = 3500.0   # г, взрослый петух
    standard_colors: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class PlannerSection:
    coi_threshold: float = 6.25
    max_assign_per_sire: float = 0.1
    pop_size: int = 100
    ngen: int = 50
    cxpb: float = 0.5
    mutpb: float = 0.1


@dataclass
class EngineConfig:
    pedigree: PedigreeSection = field(default_factory=PedigreeSection)
    risk: RiskThresholds = field(default_factory=RiskThresholds)
    compatibility: CompatibilitySection = field(default_factory=CompatibilitySection)
    traits: TraitRangeSection = field(default_factory=TraitRangeSection)
    breeding_value: BreedingValueSection = field(default_factory=BreedingValueSection)
    pairing: PairingSection = field(default_factory=PairingSection)
    planner: PlannerSection = field(default_factory=PlannerSection)

    def __post_init__(self):
        self.pairing.criteria = setup_pairing_criteria(self.pairing.criteria)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def setup_pairing_criteria(custom_criteria: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Настраивает критерии итоговой оценки пары

    Args:
        custom_criteria: пользовательские критерии

    Returns:
        Словарь с критериями и их весами
    """
    # Стандартные критерии по умолчанию
    default_criteria = {
        'offspring_potential': {
            'weight': 0.40,
            'description': 'Потенциал потомства (BVI родителей и прогноз признаков)',
        },
        'genetic_diversity': {
            'weight': 0.25,
            'description': 'Генетическое разнообразие (100 - COI)',
        },
        'trait_complementarity': {
            'weight': 0.20,
            'description': 'Взаимодополнение признаков',
        },
        'practical_score': {
            'weight': 0.15,
            'description': 'Практические факторы: порода, возраст, здоровье, место',
        },
    }

    if custom_criteria:
        # Обновляем стандартные критерии пользовательскими
        for key, value in custom_criteria.items():
            if key in default_criteria:
                default_criteria[key].update(value)
            else:
                default_criteria[key] = value

    return default_criteria


def deep_merge(base: Dict, override: Dict) -> Dict:
    """Рекурсивное слияние словарей; override имеет приоритет"""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _dict_to_section(section_cls, data: Dict) -> Any:
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys for {section_cls.__name__}: {sorted(unknown)}")
    return section_cls(**data)


def config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    """Собирает EngineConfig из вложенного словаря"""
    section_types = {f.name: f.default_factory for f in fields(EngineConfig)}
    unknown = set(data) - set(section_types)
    if unknown:
        raise ConfigError(f"Unknown config sections: {sorted(unknown)}")
    sections = {
        name: _dict_to_section(section_cls, data.get(name) or {})
        for name, section_cls in section_types.items()
    }
    config = EngineConfig(**sections)
    validate_config(config)
    return config


def validate_config(config: EngineConfig) -> None:
    """Проверяет согласованность параметров, бросает ConfigError"""
    errors = []

    if config.pedigree.max_pedigree_depth < 1:
        errors.append("pedigree.max_pedigree_depth must be >= 1")
    if config.pedigree.lookup_timeout <= 0:
        errors.append("pedigree.lookup_timeout must be positive")

    risk = config.risk
    if not (0 <= risk.moderate < risk.high < risk.critical <= 100):
        errors.append("risk thresholds must satisfy 0 <= moderate < high < critical <= 100")

    traits = config.traits
    if not (0 <= traits.min_spread <= traits.default_spread <= traits.max_spread < 1):
        errors.append("traits spreads must satisfy 0 <= min <= default <= max < 1")
    if not (0 <= traits.degraded_spread < 1):
        errors.append("traits.degraded_spread must be in [0, 1)")
    if not (0 <= traits.carrier_probability <= 1):
        errors.append("traits.carrier_probability must be in [0, 1]")

    bv = config.breeding_value
    bv_total = bv.trait_weight + bv.show_weight + bv.offspring_weight
    if abs(bv_total - 1.0) > 1e-6:
        errors.append(f"breeding_value weights must sum to 1.0, got {bv_total:.3f}")
    if bv.definable_traits < 1 or bv.offspring_cap < 1:
        errors.append("breeding_value.definable_traits and offspring_cap must be >= 1")

    pairing_total = sum(c['weight'] for c in config.pairing.criteria.values())
    if pairing_total <= 0:
        errors.append("pairing criteria weights must have a positive sum")

    if not (0 < config.planner.max_assign_per_sire <= 1):
        errors.append("planner.max_assign_per_sire must be in (0, 1]")

    if errors:
        raise ConfigError("; ".join(errors))


def default_config() -> EngineConfig:
    return EngineConfig()


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> EngineConfig:
    """
    Загружает конфигурацию

    Args:
        path: путь к YAML-файлу с переопределениями (необязательно)
        overrides: словарь переопределений поверх файла

    Returns:
        Проверенный EngineConfig
    """
    data = default_config().to_dict()

    if path is not None:
        path = Path(path)
        logger.info(f"Загрузка конфигурации из {path}")
        with open(path, "r", encoding="utf-8") as fh:
            file_data = yaml.safe_load(fh) or {}
        if not isinstance(file_data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        data = deep_merge(data, file_data)

    if overrides:
        data = deep_merge(data, overrides)

    return config_from_dict(data)
