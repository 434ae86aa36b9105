"""
Оценка совместимости пары
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .config import EngineConfig, RiskThresholds, default_config
from .kinship import InbreedingCoefficientCalculator
from .models import BirdRecord, CompatibilityResult, RiskLevel, TraitRecord
from .repositories import TraitRepository
from .traits import score_traits, trait_complementarity

logger = logging.getLogger(__name__)


def classify_risk(coi_percent: float, thresholds: Optional[RiskThresholds] = None) -> RiskLevel:
    """Уровень риска по COI: >=25 CRITICAL, >=12.5 HIGH, >=6.25 MODERATE"""
    thresholds = thresholds or RiskThresholds()
    if coi_percent >= thresholds.critical:
        return RiskLevel.CRITICAL
    if coi_percent >= thresholds.high:
        return RiskLevel.HIGH
    if coi_percent >= thresholds.moderate:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


class CompatibilityScorer:
    """Класс для оценки пары: COI, здоровье, порода, взаимодополнение признаков"""

    def __init__(self, coi_calculator: InbreedingCoefficientCalculator,
                 trait_repository: TraitRepository, config: Optional[EngineConfig] = None):
        """
        Args:
            coi_calculator: калькулятор инбридинга
            trait_repository: история признаков
            config: конфигурация движка
        """
        self.coi_calculator = coi_calculator
        self.traits = trait_repository
        self.config = config or coi_calculator.config or default_config()

    def compatibility(self, sire: BirdRecord, dam: BirdRecord) -> CompatibilityResult:
        """
        Оценивает совместимость пары

        Args:
            sire: предполагаемый отец
            dam: предполагаемая мать

        Returns:
            CompatibilityResult
        """
        if sire.id == dam.id:
            logger.warning(f"Попытка спарить птицу {sire.id} саму с собой")
            return CompatibilityResult(
                score=0.0,
                coi_percent=100.0,
                risk_level=RiskLevel.CRITICAL,
                verdict="Invalid Pairing",
                warnings=["Self-pairing: maximal inbreeding risk (COI 100%)"],
                recommendations=["Choose a different mate"],
                reasons=["A bird cannot be paired with itself"],
                rejected=True,
            )

        if sire.gender is dam.gender and sire.gender.value != "unknown":
            return CompatibilityResult(
                score=0.0,
                coi_percent=0.0,
                risk_level=RiskLevel.CRITICAL,
                verdict="Invalid Pairing",
                warnings=[f"Same-gender pairing: both birds are {sire.gender.value}"],
                recommendations=["Choose a mate of the opposite gender"],
                reasons=["Pairing requires one male and one female"],
                rejected=True,
            )

        reasons: List[str] = []
        if sire.is_female or dam.is_male:
            sire, dam = dam, sire
            reasons.append(f"Roles swapped: {sire.display_name} is the sire, {dam.display_name} is the dam")

        settings = self.config.compatibility
        max_depth = self.config.pedigree.max_pedigree_depth
        builder = self.coi_calculator.pedigree_builder
        sire_tree = builder.build(sire.id, max_depth, record=sire)
        dam_tree = builder.build(dam.id, max_depth, record=dam)
        coi_percent = self.coi_calculator.coi_from_trees(sire_tree, dam_tree, max_depth)
        common = [a for a in self.coi_calculator.common_ancestors_from_trees(sire_tree, dam_tree, max_depth)
                  if a not in (sire.id, dam.id)]
        risk = classify_risk(coi_percent, self.config.risk)

        warnings: List[str] = []
        recommendations: List[str] = []

        # COI
        coi_penalty = coi_percent * settings.coi_penalty_per_percent
        if coi_percent > 0:
            reasons.append(f"COI {coi_percent:.2f}% ({risk.value}): -{coi_penalty:.1f}")
        else:
            reasons.append(f"No common ancestors within {max_depth} generations")
        if common:
            reasons.append(f"Common ancestors: {', '.join(common)}")

        if risk is RiskLevel.CRITICAL:
            warnings.append(f"Critical inbreeding risk: COI {coi_percent:.2f}% is at or above "
                            f"{self.config.risk.critical}%")
        elif risk is RiskLevel.HIGH:
            warnings.append(f"High inbreeding risk: COI {coi_percent:.2f}% is at or above "
                            f"{self.config.risk.high}%")
        elif risk is RiskLevel.MODERATE:
            recommendations.append("Moderate inbreeding: monitor offspring vigor and fertility")

        relation = self.coi_calculator.relationship_label(sire, dam)
        if relation is not None:
            warnings.append(f"Close relatives ({relation}): inbreeding depression likely")

        # Здоровье
        sire_history = self.traits.history_for(sire.id)
        dam_history = self.traits.history_for(dam.id)
        health_penalty = 0.0
        for bird, history in ((sire, sire_history), (dam, dam_history)):
            flags = self.health_flags(bird, history)
            if flags:
                health_penalty += settings.health_penalty
                warnings.append(f"{bird.display_name} has health concerns: {', '.join(flags)}")
                reasons.append(f"Health flags on {bird.display_name}: -{settings.health_penalty:.1f}")
        if health_penalty:
            recommendations.append("Resolve health issues before breeding")

        # Порода
        breed_penalty = 0.0
        if sire.breed and dam.breed and sire.breed.strip().lower() != dam.breed.strip().lower():
            breed_penalty = settings.breed_mismatch_penalty
            reasons.append(f"Cross-breed pairing {sire.breed} × {dam.breed}: -{breed_penalty:.1f}")

        # Взаимодополнение признаков
        comp_score, strengths, risks = trait_complementarity(score_traits(sire_history), score_traits(dam_history))
        bonus = max(0.0, (comp_score - 50.0) / 50.0) * settings.max_complementarity_bonus
        if bonus > 0:
            reasons.append(f"Trait complementarity {comp_score:.0f}/100: +{bonus:.1f}")
        reasons.extend(strengths)
        warnings.extend(risks)

        score = float(np.clip(100.0 - coi_penalty - health_penalty - breed_penalty + bonus, 0.0, 100.0))

        if risk is RiskLevel.CRITICAL:
            verdict = "Not Recommended"
        elif score > 80:
            verdict = "Excellent Match"
        elif score > 60:
            verdict = "Good Match"
        elif score > 40:
            verdict = "Fair Match"
        else:
            verdict = "Poor Match"

        if risk.severity >= RiskLevel.HIGH.severity or score <= 60:
            recommendations.append("Consider alternative pairings with less related birds")
        elif score > 80:
            recommendations.append("Proceed with pairing")

        logger.debug(f"Совместимость {sire.id} x {dam.id}: score={score:.1f}, COI={coi_percent:.2f}%, {risk.value}")
        return CompatibilityResult(
            score=round(score, 2),
            coi_percent=round(coi_percent, 4),
            risk_level=risk,
            verdict=verdict,
            warnings=warnings,
            recommendations=recommendations,
            reasons=reasons,
            common_ancestors=common,
        )

    def health_flags(self, bird: BirdRecord, history: Sequence[TraitRecord]) -> List[str]:
        """Отметки о здоровье птицы: статус и записи категории health"""
        settings = self.config.compatibility
        flagged = {v.lower() for v in settings.flagged_health_values}
        flags = []

        if bird.health_status and bird.health_status.strip().lower() in flagged:
            flags.append(bird.health_status.strip().lower())

        for record in history:
            if record.category.strip().lower() != "health":
                continue
            value = record.value.strip().lower()
            if value in flagged:
                flags.append(f"{record.trait_name}: {value}")
            elif record.numeric_value is not None and record.numeric_value < settings.health_score_threshold:
                flags.append(f"{record.trait_name}: {record.numeric_value:g}")

        return sorted(set(flags))
