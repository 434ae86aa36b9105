"""
Poultry Breeding Engine - библиотека генетического анализа для птицеводов

Основные модули:
- PedigreeGraphBuilder: построение родословных
- InbreedingCoefficientCalculator: расчёт COI по Райту
- GeneticTraitPredictor: прогноз признаков потомства
- CompatibilityScorer: оценка совместимости пары
- BreedingValueIndexService: индекс племенной ценности
- MateRecommendationRanker: подбор партнёров
- PairingPlanner: планирование пар по стаду
- BreedingEngine: фасад для вызывающей стороны
"""

from .breeding_value import BreedingValueIndexService
from .compatibility import CompatibilityScorer, classify_risk
from .config import EngineConfig, default_config, load_config
from .engine import BreedingEngine
from .exceptions import BirdNotFoundError, BreedingEngineError, ConfigError, RankingCancelled
from .kinship import InbreedingCoefficientCalculator
from .models import (BirdRecord, BreedingPrediction, BreedingValueResult, CompatibilityResult, EngineResult,
                     Gender, GuestReason, LineageScore, MateCandidate, MateRecommendations, PedigreeNode,
                     ProbabilityItem, ResultStatus, RiskLevel, ShowRecord, TraitRecord, ValueRange)
from .pedigree import PedigreeGraphBuilder, genetic_contribution
from .planner import FlockAnalyzer, PairingPlanner, build_pairing_matrix, save_results
from .ranker import MateRecommendationRanker
from .repositories import FlockRepository
from .traits import GeneticTraitPredictor, trait_complementarity

__version__ = "0.1.0"

__all__ = [
    "BirdNotFoundError", "BirdRecord", "BreedingEngine", "BreedingEngineError", "BreedingPrediction",
    "BreedingValueIndexService", "BreedingValueResult", "CompatibilityResult", "CompatibilityScorer",
    "ConfigError", "EngineConfig", "EngineResult", "FlockAnalyzer", "FlockRepository", "Gender",
    "GeneticTraitPredictor", "GuestReason", "InbreedingCoefficientCalculator", "LineageScore",
    "MateCandidate", "MateRecommendationRanker", "MateRecommendations", "PairingPlanner",
    "PedigreeGraphBuilder", "PedigreeNode", "ProbabilityItem", "RankingCancelled", "ResultStatus",
    "RiskLevel", "ShowRecord", "TraitRecord", "ValueRange", "build_pairing_matrix", "classify_risk",
    "default_config", "genetic_contribution", "load_config", "save_results", "trait_complementarity",
]
