"""
Фасад движка разведения

BreedingEngine собирает компоненты поверх репозиториев и отдаёт каждой
операции EngineResult: исключения наружу не пробрасываются.
"""

import logging
import threading
from typing import Callable, Optional

import pandas as pd

from .breeding_value import BreedingValueIndexService
from .compatibility import CompatibilityScorer
from .config import EngineConfig, default_config
from .exceptions import BirdNotFoundError, RankingCancelled
from .kinship import InbreedingCoefficientCalculator
from .models import EngineResult, Gender
from .pedigree import PedigreeGraphBuilder
from .planner import FlockAnalyzer, PairingPlanner, filter_by_coi, score_pairs
from .ranker import MateRecommendationRanker
from .repositories import BirdRepository, PairRepository, ShowRepository, TraitRepository
from .traits import GeneticTraitPredictor

logger = logging.getLogger(__name__)


class BreedingEngine:
    """Точка входа для вызывающей стороны"""

    def __init__(self, birds: BirdRepository, traits: TraitRepository,
                 shows: Optional[ShowRepository] = None, pairs: Optional[PairRepository] = None,
                 config: Optional[EngineConfig] = None, max_workers: Optional[int] = None):
        """
        Args:
            birds: репозиторий птиц
            traits: репозиторий истории признаков
            shows: репозиторий результатов выставок
            pairs: репозиторий активных пар
            config: конфигурация движка
            max_workers: потоки для оценки кандидатов в find_best_mates
        """
        self.config = config or default_config()
        self.birds = birds
        self.traits = traits

        self.pedigree_builder = PedigreeGraphBuilder(birds, self.config)
        self.coi_calculator = InbreedingCoefficientCalculator(self.pedigree_builder, self.config)
        self.predictor = GeneticTraitPredictor(self.config)
        self.compatibility_scorer = CompatibilityScorer(self.coi_calculator, traits, self.config)
        self.bvi_service = BreedingValueIndexService(birds, traits, shows, self.config)
        self.ranker = MateRecommendationRanker(
            birds, traits, self.compatibility_scorer, self.bvi_service, self.predictor,
            pair_repository=pairs, config=self.config, max_workers=max_workers,
        )

    def _run(self, operation: str, func: Callable, *args, **kwargs) -> EngineResult:
        try:
            return EngineResult.success(func(*args, **kwargs))
        except BirdNotFoundError as exc:
            logger.warning(f"{operation}: {exc}")
            return EngineResult.not_found(str(exc))
        except RankingCancelled as exc:
            logger.info(f"{operation}: {exc}")
            return EngineResult.failure(str(exc))
        except Exception as exc:
            logger.exception(f"{operation}: непредвиденная ошибка")
            return EngineResult.failure(f"{operation} failed: {exc}")

    def _require(self, bird_id: str):
        bird = self.birds.find_by_id(bird_id)
        if bird is None:
            raise BirdNotFoundError(bird_id)
        return bird

    def compute_pedigree(self, bird_id: str, max_depth: Optional[int] = None) -> EngineResult:
        """Дерево предков птицы (PedigreeNode)"""
        return self._run("compute_pedigree", self.pedigree_builder.build, bird_id, max_depth)

    def compute_compatibility(self, sire_id: str, dam_id: str) -> EngineResult:
        """Совместимость пары (CompatibilityResult)"""
        def run():
            return self.compatibility_scorer.compatibility(self._require(sire_id), self._require(dam_id))
        return self._run("compute_compatibility", run)

    def predict_offspring(self, sire_id: str, dam_id: str) -> EngineResult:
        """Прогноз признаков потомства (BreedingPrediction)"""
        def run():
            sire, dam = self._require(sire_id), self._require(dam_id)
            history = {bird.id: self.traits.history_for(bird.id) for bird in (sire, dam)}
            return self.predictor.predict(sire, dam, history)
        return self._run("predict_offspring", run)

    def compute_breeding_value(self, bird_id: str) -> EngineResult:
        """Индекс племенной ценности (BreedingValueResult)"""
        return self._run("compute_breeding_value", self.bvi_service.bvi, bird_id)

    def find_best_mates(self, bird_id: str, top_n: int = 10,
                        cancel_event: Optional[threading.Event] = None, candidate_pool=None) -> EngineResult:
        """Лучшие партнёры для птицы (MateRecommendations)"""
        return self._run("find_best_mates", self.ranker.find_best_mates, bird_id,
                         candidate_pool, top_n, cancel_event)

    def compute_lineage_score(self, bird_id: str, generations: Optional[int] = None) -> EngineResult:
        """Полнота родословной (LineageScore)"""
        return self._run("compute_lineage_score", self.pedigree_builder.lineage_score, bird_id, generations)

    def plan_flock_pairings(self, dam_ids=None, sire_ids=None, coi_threshold: Optional[float] = None,
                            seed: Optional[int] = None, **optimize_kwargs) -> EngineResult:
        """
        План пар по стаду

        Args:
            dam_ids: ID самок (по умолчанию все здоровые самки)
            sire_ids: ID самцов (по умолчанию все здоровые самцы)
            coi_threshold: порог COI в процентах
            seed: зерно генератора для воспроизводимости
            **optimize_kwargs: pop_size, ngen, cxpb, mutpb

        Returns:
            EngineResult с данными {'assignments', 'pairing_matrix', 'coi_matrix', 'stats', 'pareto_front'}
        """
        def run():
            settings = self.config.planner
            threshold = settings.coi_threshold if coi_threshold is None else coi_threshold
            dams = self._select(dam_ids, Gender.FEMALE)
            sires = self._select(sire_ids, Gender.MALE)
            if not dams or not sires:
                raise ValueError("Нужна хотя бы одна самка и один самец")

            logger.info(f"Планирование пар: {len(dams)} самок, {len(sires)} самцов, порог COI {threshold}%")
            scores, coi_matrix = score_pairs(self.ranker, dams, sires)
            pairing_matrix = filter_by_coi(scores, coi_matrix, threshold)
            stats = FlockAnalyzer.summarize_matrix(coi_matrix, scores, threshold)

            planner = PairingPlanner(pairing_matrix, max_assign_per_sire=settings.max_assign_per_sire)
            params = {
                'pop_size': settings.pop_size,
                'ngen': settings.ngen,
                'cxpb': settings.cxpb,
                'mutpb': settings.mutpb,
            }
            params.update(optimize_kwargs)
            assignments, _, hof = planner.optimize(seed=seed, **params)

            return {
                'assignments': assignments,
                'pairing_matrix': pairing_matrix,
                'coi_matrix': coi_matrix,
                'stats': stats,
                'pareto_front': pd.DataFrame([ind.fitness.values for ind in hof.items],
                                             columns=list(planner.optimization_criteria.keys())),
            }
        return self._run("plan_flock_pairings", run)

    def _select(self, ids, gender: Gender):
        excluded = {s.lower() for s in self.config.pairing.excluded_health_statuses}
        if ids is None:
            return [b for b in self.birds.list_birds()
                    if b.gender is gender and not (b.health_status and b.health_status.strip().lower() in excluded)]
        return [self._require(bird_id) for bird_id in ids]
