"""
Подбор и ранжирование партнёров для птицы

Для каждого кандидата считаются четыре подоценки (0-100):
- offspring_potential - BVI родителей и желательность прогноза потомства
- genetic_diversity - 100 - COI
- trait_complementarity - взаимодополнение балльных признаков
- practical_score - порода, возраст, здоровье, место содержания
Итог - взвешенное среднее по критериям из конфигурации.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .breeding_value import BreedingValueIndexService
from .compatibility import CompatibilityScorer
from .config import EngineConfig, default_config
from .exceptions import BirdNotFoundError, BreedingEngineError, RankingCancelled
from .models import (BirdRecord, BreedingPrediction, BreedingValueResult, CompatibilityResult, Gender,
                     MateCandidate, MateRecommendations, RiskLevel)
from .repositories import BirdRepository, PairRepository, TraitRepository
from .traits import GeneticTraitPredictor, score_traits, trait_complementarity

logger = logging.getLogger(__name__)

STRENGTH_LABELS = {
    "offspring_potential": "Strong offspring potential",
    "genetic_diversity": "High genetic diversity",
    "trait_complementarity": "Complementary traits",
    "practical_score": "Practical match (breed, age, location)",
}

RISK_LABELS = {
    "offspring_potential": "Low offspring potential",
    "genetic_diversity": "Low genetic diversity",
    "trait_complementarity": "Traits share the same weaknesses",
    "practical_score": "Practical constraints (breed, age, location)",
}


class MateRecommendationRanker:
    """Класс для ранжирования кандидатов в партнёры"""

    def __init__(self, bird_repository: BirdRepository, trait_repository: TraitRepository,
                 compatibility_scorer: CompatibilityScorer, bvi_service: BreedingValueIndexService,
                 predictor: GeneticTraitPredictor, pair_repository: Optional[PairRepository] = None,
                 config: Optional[EngineConfig] = None, max_workers: Optional[int] = None):
        """
        Args:
            bird_repository: источник птиц (пул кандидатов по умолчанию)
            trait_repository: история признаков
            compatibility_scorer: оценка пары (COI, здоровье, порода)
            bvi_service: индекс племенной ценности
            predictor: прогноз признаков потомства
            pair_repository: активные пары (исключаются из кандидатов)
            config: конфигурация движка
            max_workers: число потоков для оценки кандидатов (None или 1 - последовательно)
        """
        self.birds = bird_repository
        self.traits = trait_repository
        self.scorer = compatibility_scorer
        self.bvi_service = bvi_service
        self.predictor = predictor
        self.pairs = pair_repository
        self.config = config or default_config()
        self.max_workers = max_workers

    @property
    def criteria(self) -> Dict[str, Dict]:
        return self.config.pairing.criteria

    def find_best_mates(self, focal_bird_id: str, candidate_pool: Optional[Iterable[BirdRecord]] = None,
                        top_n: int = 10, cancel_event: Optional[threading.Event] = None) -> MateRecommendations:
        """
        Находит лучших партнёров для птицы

        Args:
            focal_bird_id: ID птицы, для которой ищем пару
            candidate_pool: кандидаты (по умолчанию все птицы репозитория)
            top_n: сколько лучших вернуть
            cancel_event: событие отмены, проверяется между кандидатами

        Returns:
            MateRecommendations
        """
        focal = self.birds.find_by_id(focal_bird_id)
        if focal is None:
            raise BirdNotFoundError(focal_bird_id)

        pool = list(candidate_pool) if candidate_pool is not None else self.birds.list_birds()
        eligible = self.eligible_candidates(focal, pool)
        focal_bvi = self._safe_bvi(focal.id)

        logger.info(f"Подбор партнёров для {focal.display_name}: {len(eligible)} из {len(pool)} кандидатов")
        if not eligible:
            return MateRecommendations(focal_bird=focal, focal_bvi=focal_bvi, candidates=[], total_evaluated=0)

        scored = self._score_all(focal, focal_bvi, eligible, cancel_event)
        scored.sort(key=lambda c: (-c.pairing_score, c.bird.id))

        return MateRecommendations(
            focal_bird=focal,
            focal_bvi=focal_bvi,
            candidates=scored[:max(top_n, 0)],
            total_evaluated=len(scored),
        )

    def eligible_candidates(self, focal: BirdRecord, pool: Iterable[BirdRecord]) -> List[BirdRecord]:
        """Фильтр: противоположный пол, не сама птица, не активный партнёр, не больна"""
        partners = self.pairs.active_partner_ids(focal.id) if self.pairs is not None else set()
        excluded_status = {s.lower() for s in self.config.pairing.excluded_health_statuses}
        target = focal.gender.opposite()
        if target is Gender.UNKNOWN:
            logger.warning(f"Пол птицы {focal.id} неизвестен, рассматриваются кандидаты обоих полов")

        eligible = []
        seen = set()
        for bird in pool:
            if bird.id == focal.id or bird.id in partners or bird.id in seen:
                continue
            if target is Gender.UNKNOWN:
                if bird.gender is Gender.UNKNOWN:
                    continue
            elif bird.gender is not target:
                continue
            if bird.health_status and bird.health_status.strip().lower() in excluded_status:
                continue
            seen.add(bird.id)
            eligible.append(bird)
        return eligible

    def _score_all(self, focal: BirdRecord, focal_bvi: BreedingValueResult,
                   candidates: List[BirdRecord], cancel_event: Optional[threading.Event]) -> List[MateCandidate]:
        focal_history = self.traits.history_for(focal.id)
        results: List[MateCandidate] = []

        if not self.max_workers or self.max_workers <= 1:
            for candidate in candidates:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Подбор партнёров отменён после {len(results)} кандидатов")
                    raise RankingCancelled(len(results))
                scored = self._score_or_skip(focal, candidate, focal_bvi, focal_history)
                if scored is not None:
                    results.append(scored)
            return results

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="mate-ranker") as pool:
            futures = [
                pool.submit(self._score_unless_cancelled, focal, candidate, focal_bvi, focal_history, cancel_event)
                for candidate in candidates
            ]
            for future in as_completed(futures):
                if cancel_event is not None and cancel_event.is_set():
                    for pending in futures:
                        pending.cancel()
                    logger.info(f"Подбор партнёров отменён после {len(results)} кандидатов")
                    raise RankingCancelled(len(results))
                candidate = future.result()
                if candidate is not None:
                    results.append(candidate)
        return results

    def _score_unless_cancelled(self, focal, candidate, focal_bvi, focal_history, cancel_event):
        if cancel_event is not None and cancel_event.is_set():
            return None
        return self._score_or_skip(focal, candidate, focal_bvi, focal_history)

    def _score_or_skip(self, focal, candidate, focal_bvi, focal_history) -> Optional[MateCandidate]:
        try:
            return self.score_candidate(focal, candidate, focal_bvi, focal_history)
        except BreedingEngineError as exc:
            # кандидат, которого не удалось оценить, не прерывает подбор
            logger.warning(f"Кандидат {candidate.id} пропущен: {exc}")
            return None

    def _safe_bvi(self, bird_id: str) -> Optional[BreedingValueResult]:
        try:
            return self.bvi_service.bvi(bird_id)
        except BirdNotFoundError:
            # кандидат из внешнего пула, которого нет в репозитории
            return None

    def score_candidate(self, focal: BirdRecord, candidate: BirdRecord,
                        focal_bvi: Optional[BreedingValueResult] = None,
                        focal_history=None) -> MateCandidate:
        """Оценивает одного кандидата"""
        if focal_history is None:
            focal_history = self.traits.history_for(focal.id)
        if focal_bvi is None:
            focal_bvi = self._safe_bvi(focal.id)

        if focal.is_male or candidate.is_female:
            sire, dam = focal, candidate
        else:
            sire, dam = candidate, focal

        candidate_history = self.traits.history_for(candidate.id)
        candidate_bvi = self._safe_bvi(candidate.id)
        compat = self.scorer.compatibility(sire, dam)

        prediction = self.predictor.predict(sire, dam, {focal.id: focal_history, candidate.id: candidate_history})
        mean_bvi = float(np.mean([self._bvi_value(focal_bvi), self._bvi_value(candidate_bvi)]))
        offspring_potential = 100.0 * (0.5 * mean_bvi + 0.5 * self.desirability(prediction, sire, dam))

        genetic_diversity = 100.0 - compat.coi_percent
        complementarity, comp_strengths, comp_risks = trait_complementarity(
            score_traits(focal_history), score_traits(candidate_history)
        )
        practical = self.practical_score(focal, candidate)

        sub_scores = {
            "offspring_potential": float(np.clip(offspring_potential, 0, 100)),
            "genetic_diversity": float(np.clip(genetic_diversity, 0, 100)),
            "trait_complementarity": float(np.clip(complementarity, 0, 100)),
            "practical_score": float(np.clip(practical, 0, 100)),
        }
        pairing_score = self.weighted_score(sub_scores)

        settings = self.config.pairing
        strengths, risks = self.candidate_notes(focal, candidate, candidate_bvi, compat)
        strengths.extend(STRENGTH_LABELS[k] for k, v in sub_scores.items()
                         if k in STRENGTH_LABELS and v >= settings.strength_threshold)
        strengths.extend(comp_strengths)
        risks.extend(RISK_LABELS[k] for k, v in sub_scores.items()
                     if k in RISK_LABELS and v < settings.risk_threshold)
        risks.extend(comp_risks)

        return MateCandidate(
            bird=candidate,
            pairing_score=round(pairing_score, 2),
            offspring_potential=round(sub_scores["offspring_potential"], 2),
            genetic_diversity=round(sub_scores["genetic_diversity"], 2),
            trait_complementarity=round(sub_scores["trait_complementarity"], 2),
            practical_score=round(sub_scores["practical_score"], 2),
            recommendation=self._recommendation(candidate, pairing_score, compat.risk_level),
            key_strengths=strengths[:settings.max_strengths],
            key_risks=risks[:settings.max_risks],
            bvi=candidate_bvi,
            compatibility=compat,
        )

    def candidate_notes(self, focal: BirdRecord, candidate: BirdRecord,
                        candidate_bvi: Optional[BreedingValueResult],
                        compat: CompatibilityResult) -> Tuple[List[str], List[str]]:
        """Сильные стороны и риски, относящиеся к самому кандидату"""
        settings = self.config.pairing
        strengths: List[str] = []
        risks: List[str] = []

        if compat.risk_level.severity >= RiskLevel.MODERATE.severity:
            risks.append(f"{compat.risk_level.value.capitalize()} inbreeding risk (COI {compat.coi_percent:.2f}%)")
        if compat.score > settings.excellent_compatibility:
            strengths.append("Excellent genetic compatibility")

        if candidate_bvi is not None and candidate_bvi.rating != "Unrated":
            if candidate_bvi.bvi >= settings.high_bvi_threshold:
                strengths.append(f"High BVI ({candidate_bvi.rating})")
            if candidate_bvi.show_wins > 0:
                strengths.append(f"Show winner ({candidate_bvi.show_wins} wins)")

        if focal.breed and candidate.breed:
            if focal.breed.strip().lower() == candidate.breed.strip().lower():
                strengths.append(f"Same breed ({focal.breed})")
            else:
                strengths.append(f"Cross-breed: {focal.breed} × {candidate.breed}")

        age = candidate.age_weeks()
        if age is not None and age < settings.maturity_weeks:
            risks.append(f"Young bird ({age}w)")
        return strengths, risks

    def weighted_score(self, sub_scores: Dict[str, float]) -> float:
        """Взвешенное среднее подоценок по критериям конфигурации"""
        total_weight = 0.0
        total = 0.0
        for name, criterion in self.criteria.items():
            if name not in sub_scores:
                continue
            total += criterion['weight'] * sub_scores[name]
            total_weight += criterion['weight']
        if total_weight <= 0:
            return 0.0
        return float(np.clip(total / total_weight, 0.0, 100.0))

    def _bvi_value(self, result: Optional[BreedingValueResult]) -> float:
        if result is None or result.rating == "Unrated":
            return self.config.pairing.default_bvi
        return result.bvi

    def desirability(self, prediction: BreedingPrediction, sire: BirdRecord, dam: BirdRecord) -> float:
        """
        Доля прогноза, соответствующая стандарту породы (0-1)

        Вес: доля прогнозного диапазона внутри стандартного. Окрас: суммарная
        вероятность стандартных окрасов породы. Без данных - 0.5.
        """
        settings = self.config.pairing
        parts = []

        low, high = prediction.weight_range.min, prediction.weight_range.max
        overlap = max(0.0, min(high, settings.weight_standard_max) - max(low, settings.weight_standard_min))
        if high > low:
            parts.append(overlap / (high - low))
        elif high > 0:
            parts.append(1.0 if settings.weight_standard_min <= low <= settings.weight_standard_max else 0.0)

        breed = sire.breed if sire.breed else dam.breed
        standard = {b.lower(): [c.lower() for c in colors] for b, colors in settings.standard_colors.items()}
        colors = standard.get(breed.strip().lower()) if breed else None
        known = [p for p in prediction.color_probabilities if p.item != "Unknown"]
        if colors and known:
            parts.append(sum(p.percentage for p in known if p.item.lower() in colors) / 100.0)

        return float(np.mean(parts)) if parts else 0.5

    def practical_score(self, focal: BirdRecord, candidate: BirdRecord) -> float:
        """Негенетические факторы: порода, зрелость, разница в возрасте, здоровье, место"""
        settings = self.config.pairing
        score = 50.0

        if focal.breed and candidate.breed and focal.breed.strip().lower() == candidate.breed.strip().lower():
            score += 25

        ages = [focal.age_weeks(), candidate.age_weeks()]
        if all(a is not None for a in ages):
            if all(a >= settings.maturity_weeks for a in ages):
                score += 15
            else:
                score += 5
            if abs(ages[0] - ages[1]) > settings.max_age_gap_weeks:
                score -= 10

        healthy = {"healthy", "good", "excellent"}
        if all(b.health_status and b.health_status.strip().lower() in healthy for b in (focal, candidate)):
            score += 10

        if focal.location and candidate.location and focal.location.strip().lower() != candidate.location.strip().lower():
            score -= 10

        return float(np.clip(score, 0, 100))

    @staticmethod
    def _recommendation(candidate: BirdRecord, score: float, risk: RiskLevel) -> str:
        name = candidate.display_name
        if risk is RiskLevel.CRITICAL:
            return f"Not recommended: {name} is too closely related"
        if score >= 80:
            return f"Highly recommended: {name} is an excellent match"
        if score >= 65:
            return f"Recommended: {name} is a good match"
        if score >= 50:
            return f"Acceptable: review the key risks before pairing with {name}"
        return f"Not recommended: consider other candidates before {name}"

