"""
Прогноз признаков потомства

Непрерывные признаки (вес, рост) - диапазон вокруг среднего родителей с
разбросом из истории замеров. Категориальные (окрас, рисунок) - упрощённая
менделевская модель: фенотип родителя переводится в правдоподобный генотип
по таблице доминирования, затем решётка Пеннета даёт распределение
фенотипов потомства.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import EngineConfig, default_config
from .models import BirdRecord, BreedingPrediction, ProbabilityItem, TraitRange, TraitRecord, ValueRange

logger = logging.getLogger(__name__)

TRAIT_COLUMNS = ["bird_id", "category", "trait_name", "value", "numeric_value", "unit", "recorded_at"]
SCORE_UNITS = {"score", "score_1_10", "points"}
WEIGHT_TRAITS = ("weight", "body_weight", "weight_g")
HEIGHT_TRAITS = ("height", "body_height", "height_cm")
COLOR_TRAITS = ("color", "colour", "plumage_color")
PATTERN_TRAITS = ("pattern", "plumage_pattern")

TraitHistory = Union[Mapping[str, Sequence[TraitRecord]], Iterable[TraitRecord]]


@dataclass(frozen=True)
class LocusRule:
    """
    Таблица доминирования для одного локуса

    Args:
        trait: название признака
        dominance: аллели от самого доминантного к самому рецессивному
        phenotypes: фенотип каждого аллеля
        blends: фенотипы неполного доминирования для пар аллелей
        aliases: местные и бытовые названия фенотипов
    """
    trait: str
    dominance: Tuple[str, ...]
    phenotypes: Dict[str, str]
    blends: Dict[Tuple[str, str], str] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)

    @property
    def recessive_base(self) -> str:
        return self.dominance[-1]

    def _rank(self, allele: str) -> float:
        if allele in self.dominance:
            return float(self.dominance.index(allele))
        # Неизвестный фенотип: новый аллель чуть доминантнее базового рецессивного
        return len(self.dominance) - 1.5

    def _allele_phenotype(self, allele: str) -> str:
        return self.phenotypes.get(allele, allele)

    def phenotype_of(self, genotype: Tuple[str, str]) -> str:
        """Фенотип генотипа"""
        a, b = sorted(genotype)
        if (a, b) in self.blends:
            return self.blends[(a, b)]
        if a == b:
            return self._allele_phenotype(a)
        rank_a, rank_b = self._rank(a), self._rank(b)
        if rank_a == rank_b:
            return "Mixed"
        return self._allele_phenotype(a if rank_a < rank_b else b)

    def canonical(self, phenotype: str) -> str:
        text = phenotype.strip()
        key = text.lower()
        if key in self.aliases:
            return self.aliases[key]
        for name in list(self.phenotypes.values()) + list(self.blends.values()):
            if name.lower() == key:
                return name
        return text.title()

    def genotype_distribution(self, phenotype: str, carrier_probability: float) -> Dict[Tuple[str, str], float]:
        """
        Правдоподобные генотипы для известного фенотипа

        Доминантный фенотип с вероятностью carrier_probability несёт
        рецессивный базовый аллель, иначе гомозиготен.
        """
        name = self.canonical(phenotype)
        for pair, blend in self.blends.items():
            if blend == name:
                return {pair: 1.0}

        allele = next((a for a in self.dominance if self.phenotypes.get(a) == name), name)
        base = self.recessive_base
        if allele == base:
            return {(base, base): 1.0}

        distribution = {}
        if carrier_probability > 0:
            distribution[(allele, base)] = carrier_probability
        if carrier_probability < 1:
            distribution[(allele, allele)] = 1.0 - carrier_probability
        return distribution

    def gametes(self, phenotype: Optional[str], carrier_probability: float) -> Dict[str, float]:
        """Распределение гамет родителя; неизвестный фенотип - равномерно по таблице"""
        if not phenotype or not phenotype.strip():
            share = 1.0 / len(self.dominance)
            return {allele: share for allele in self.dominance}

        result: Dict[str, float] = defaultdict(float)
        for (a, b), weight in self.genotype_distribution(phenotype, carrier_probability).items():
            result[a] += weight / 2
            result[b] += weight / 2
        return dict(result)

    def cross(self, sire_phenotype: Optional[str], dam_phenotype: Optional[str],
              carrier_probability: float = 1.0) -> Dict[str, float]:
        """Решётка Пеннета: вероятность каждого фенотипа потомства"""
        sire_gametes = self.gametes(sire_phenotype, carrier_probability)
        dam_gametes = self.gametes(dam_phenotype, carrier_probability)

        outcome: Dict[str, float] = defaultdict(float)
        for a, pa in sire_gametes.items():
            for b, pb in dam_gametes.items():
                outcome[self.phenotype_of((a, b))] += pa * pb
        return dict(outcome)


# Локус E (базовый окрас) с синим неполным доминированием: Bl/Bl - Splash, Bl/E - Blue
COLOR_RULE = LocusRule(
    trait="color",
    dominance=("I", "Bl", "E", "eWh", "e+", "eb"),
    phenotypes={"I": "White", "Bl": "Blue", "E": "Black", "eWh": "Wheaten", "e+": "Red", "eb": "Brown"},
    blends={("Bl", "Bl"): "Splash", ("Bl", "E"): "Blue"},
    aliases={
        "kaki": "Black", "nalla": "Black", "extended black": "Black",
        "dega": "Red", "gold": "Red", "nemali": "Wheaten", "buff": "Wheaten",
        "kokkirayi": "Blue", "pingala": "Splash", "sethu": "White",
    },
)

PATTERN_RULE = LocusRule(
    trait="pattern",
    dominance=("B", "Pg", "N", "mo"),
    phenotypes={"B": "Barred", "Pg": "Laced", "N": "Solid", "mo": "Mottled"},
    aliases={"parla": "Barred", "cuckoo": "Barred", "poola": "Mottled", "plain": "Solid"},
)


def to_percentages(probabilities: Mapping[str, float], decimals: int = 1) -> List[ProbabilityItem]:
    """
    Переводит вероятности в проценты, сумма ровно 100

    Округление методом наибольшего остатка, результат по убыванию.
    """
    items = [(name, p) for name, p in probabilities.items() if p > 0]
    if not items:
        return []
    names = [name for name, _ in items]
    values = np.array([p for _, p in items], dtype=float)

    unit = 10 ** decimals
    scaled = values / values.sum() * 100 * unit
    floors = np.floor(scaled)
    remainder = int(round(100 * unit - floors.sum()))
    order = np.argsort(-(scaled - floors), kind="stable")
    floors[order[:remainder]] += 1

    result = [ProbabilityItem(name, round(float(v) / unit, decimals)) for name, v in zip(names, floors)]
    result = [item for item in result if item.percentage > 0]
    return sorted(result, key=lambda item: (-item.percentage, item.item))


def trait_frame(records: Iterable[TraitRecord]) -> pd.DataFrame:
    """История замеров в виде DataFrame"""
    df = pd.DataFrame([vars(r) for r in records], columns=TRAIT_COLUMNS)
    if not df.empty:
        df["trait_name"] = df["trait_name"].str.strip().str.lower()
        df["numeric_value"] = pd.to_numeric(df["numeric_value"], errors="coerce")
    return df


def latest_traits(records: Iterable[TraitRecord]) -> pd.DataFrame:
    """Последняя запись по каждому признаку, индекс - trait_name"""
    df = trait_frame(records)
    if df.empty:
        return df.set_index("trait_name")
    return (df.sort_values("recorded_at", kind="stable")
              .groupby("trait_name", sort=True)
              .tail(1)
              .set_index("trait_name"))


def score_traits(records: Iterable[TraitRecord]) -> Dict[str, float]:
    """Последние значения балльных признаков (шкала 0-10)"""
    latest = latest_traits(records)
    if latest.empty:
        return {}
    numeric = latest.dropna(subset=["numeric_value"])
    is_score = numeric["unit"].isin(SCORE_UNITS) | (
        numeric["unit"].isna() & numeric["numeric_value"].between(0, 10)
    )
    return numeric.loc[is_score, "numeric_value"].astype(float).to_dict()


def _pretty(trait_name: str) -> str:
    return trait_name.replace("_", " ").strip().capitalize()


def trait_complementarity(focal: Mapping[str, float], mate: Mapping[str, float]) -> Tuple[float, List[str], List[str]]:
    """
    Взаимодополнение балльных признаков пары

    Высокая оценка, если партнёр компенсирует слабые признаки (3/10 и 8/10
    дают потомство в среднем около 5.5/10). Оба слабых - низкая оценка,
    оба сильных - тоже хорошо.

    Returns:
        (оценка 0-100, сильные стороны, риски)
    """
    strengths: List[str] = []
    risks: List[str] = []
    all_traits = sorted(set(focal) | set(mate))
    if not all_traits:
        return 50.0, strengths, risks

    scores = []
    for trait in all_traits:
        focal_val, mate_val = focal.get(trait), mate.get(trait)
        if focal_val is None or mate_val is None:
            scores.append(50.0)
            continue

        avg = (focal_val + mate_val) / 2
        best = max(focal_val, mate_val)
        if avg >= 7:
            scores.append(100.0)
        elif best >= 7:
            scores.append(85.0)
        elif avg >= 5:
            scores.append(65.0)
        elif best >= 5:
            scores.append(50.0)
        else:
            scores.append(25.0)

        if focal_val < 4 and mate_val >= 7:
            strengths.append(f"Compensates weak {_pretty(trait)}")
        if focal_val < 4 and mate_val < 4:
            risks.append(f"Both weak: {_pretty(trait)}")

    return float(np.clip(np.mean(scores), 0, 100)), strengths, risks


def group_history(trait_history: TraitHistory, bird_ids: Sequence[str]) -> Dict[str, List[TraitRecord]]:
    """Приводит историю (словарь или плоский список) к словарю по птицам"""
    if isinstance(trait_history, Mapping):
        return {bird_id: list(trait_history.get(bird_id, [])) for bird_id in bird_ids}
    grouped: Dict[str, List[TraitRecord]] = {bird_id: [] for bird_id in bird_ids}
    for record in trait_history or []:
        if record.bird_id in grouped:
            grouped[record.bird_id].append(record)
    return grouped


class GeneticTraitPredictor:
    """Менделевский прогноз признаков потомства"""

    def __init__(self, config: Optional[EngineConfig] = None,
                 color_rule: LocusRule = COLOR_RULE, pattern_rule: LocusRule = PATTERN_RULE):
        self.config = config or default_config()
        self.color_rule = color_rule
        self.pattern_rule = pattern_rule

    @property
    def settings(self):
        return self.config.traits

    def predict(self, sire: BirdRecord, dam: BirdRecord, trait_history: TraitHistory) -> BreedingPrediction:
        """
        Прогноз потомства пары

        Args:
            sire: отец
            dam: мать
            trait_history: история замеров (словарь bird_id -> записи или плоский список)

        Returns:
            BreedingPrediction
        """
        history = group_history(trait_history, [sire.id, dam.id])
        sire_df, dam_df = trait_frame(history[sire.id]), trait_frame(history[dam.id])

        weight_range = self._continuous_range(sire.weight, dam.weight, sire_df, dam_df,
                                              WEIGHT_TRAITS, self.settings.fallback_weight)
        height_range = self._continuous_range(sire.height, dam.height, sire_df, dam_df,
                                              HEIGHT_TRAITS, self.settings.fallback_height)

        carrier = self.settings.carrier_probability
        sire_color = sire.color or self._latest_text(sire_df, COLOR_TRAITS)
        dam_color = dam.color or self._latest_text(dam_df, COLOR_TRAITS)
        color_probabilities = self._categorical(self.color_rule, sire_color, dam_color, carrier)

        sire_pattern = sire.pattern or self._latest_text(sire_df, PATTERN_TRAITS)
        dam_pattern = dam.pattern or self._latest_text(dam_df, PATTERN_TRAITS)
        pattern_probabilities = self._categorical(self.pattern_rule, sire_pattern, dam_pattern, carrier)

        sire_scores, dam_scores = score_traits(history[sire.id]), score_traits(history[dam.id])
        predicted_traits = self._predict_numeric_traits(history[sire.id], history[dam.id])
        likely = self._likely_traits(color_probabilities, pattern_probabilities,
                                     sire_scores, dam_scores, sire_df, dam_df)

        distinct = len(set(sire_df.get("trait_name", [])) | set(dam_df.get("trait_name", [])))
        data_points = len(sire_df) + len(dam_df)
        if data_points >= 20 and distinct >= 6:
            confidence = "High"
        elif data_points >= 8 and distinct >= 3:
            confidence = "Medium"
        else:
            confidence = "Low"

        return BreedingPrediction(
            weight_range=weight_range,
            height_range=height_range,
            likely_traits=likely,
            color_probabilities=color_probabilities,
            pattern_probabilities=pattern_probabilities,
            predicted_traits=predicted_traits,
            breed_type=self.breed_type(sire, dam),
            data_confidence=confidence,
        )

    @staticmethod
    def breed_type(sire: BirdRecord, dam: BirdRecord) -> str:
        if sire.breed and dam.breed:
            if sire.breed.strip().lower() == dam.breed.strip().lower():
                return sire.breed
            return f"{sire.breed} × {dam.breed}"
        return sire.breed or dam.breed or "Unknown"

    @staticmethod
    def _series(df: pd.DataFrame, names: Sequence[str]) -> np.ndarray:
        if df.empty:
            return np.array([])
        rows = df[df["trait_name"].isin(names)].dropna(subset=["numeric_value"])
        return rows.sort_values("recorded_at", kind="stable")["numeric_value"].to_numpy(dtype=float)

    @staticmethod
    def _latest_text(df: pd.DataFrame, names: Sequence[str]) -> Optional[str]:
        if df.empty:
            return None
        rows = df[df["trait_name"].isin(names)]
        rows = rows[rows["value"].astype(str).str.strip() != ""]
        if rows.empty:
            return None
        return str(rows.sort_values("recorded_at", kind="stable")["value"].iloc[-1])

    def _continuous_range(self, sire_value: Optional[float], dam_value: Optional[float],
                          sire_df: pd.DataFrame, dam_df: pd.DataFrame,
                          names: Sequence[str], fallback: float) -> ValueRange:
        settings = self.settings
        sire_hist, dam_hist = self._series(sire_df, names), self._series(dam_df, names)
        if sire_value is None and len(sire_hist):
            sire_value = float(sire_hist[-1])
        if dam_value is None and len(dam_hist):
            dam_value = float(dam_hist[-1])

        known = [v for v in (sire_value, dam_value) if v is not None]
        if len(known) < 2:
            # Неполные данные: расширенный диапазон вместо ошибки
            mean = known[0] if known else fallback
            spread = settings.degraded_spread
            logger.debug(f"Неполные данные по {names[0]}: среднее {mean}, разброс {spread}")
        else:
            mean = float(np.mean(known))
            spread = self._history_spread(sire_hist, dam_hist)

        return ValueRange(round(mean * (1 - spread), 1), round(mean * (1 + spread), 1))

    def _history_spread(self, sire_hist: np.ndarray, dam_hist: np.ndarray) -> float:
        """Разброс из коэффициента вариации истории родителей"""
        settings = self.settings
        if len(sire_hist) + len(dam_hist) < settings.min_history_points:
            return settings.default_spread

        # Нормируем каждого родителя на его среднее, чтобы разница отца и матери не считалась разбросом
        normalized = [h / h.mean() for h in (sire_hist, dam_hist) if len(h) and h.mean() > 0]
        if not normalized:
            return settings.default_spread
        cv = float(np.std(np.concatenate(normalized)))
        return float(np.clip(cv * settings.variance_multiplier, settings.min_spread, settings.max_spread))

    @staticmethod
    def _categorical(rule: LocusRule, sire_value: Optional[str], dam_value: Optional[str],
                     carrier: float) -> List[ProbabilityItem]:
        if not sire_value and not dam_value:
            return [ProbabilityItem("Unknown", 100.0)]
        return to_percentages(rule.cross(sire_value, dam_value, carrier))

    def _predict_numeric_traits(self, sire_records: List[TraitRecord],
                                dam_records: List[TraitRecord]) -> Dict[str, TraitRange]:
        """Регрессия к среднему по родителям для числовых признаков"""
        settings = self.settings
        sire_latest, dam_latest = latest_traits(sire_records), latest_traits(dam_records)
        skip = set(WEIGHT_TRAITS) | set(HEIGHT_TRAITS)
        names = sorted((set(sire_latest.index) | set(dam_latest.index)) - skip)

        predicted = {}
        for name in names:
            sire_row = sire_latest.loc[name] if name in sire_latest.index else None
            dam_row = dam_latest.loc[name] if name in dam_latest.index else None
            values = [row["numeric_value"] for row in (sire_row, dam_row)
                      if row is not None and pd.notna(row["numeric_value"])]
            if not values:
                continue
            units = [row["unit"] for row in (sire_row, dam_row) if row is not None and pd.notna(row["unit"])]
            unit = units[0] if units else None
            is_score = unit in SCORE_UNITS or (unit is None and all(0 <= v <= 10 for v in values))

            if is_score and len(values) == 2:
                mid = float(np.mean(values))
                mean = settings.score_population_mean
                value = mean + settings.heritability * (mid - mean)
                noise = settings.score_environment_variance
                predicted[name] = TraitRange(round(value, 2), round(max(value - noise, 0.0), 2),
                                             round(min(value + noise, 10.0), 2), unit)
            elif is_score:
                value = values[0]
                predicted[name] = TraitRange(round(value * 0.7, 2), round(max(value * 0.5, 0.0), 2),
                                             round(min(value * 0.9, 10.0), 2), unit)
            else:
                mid = float(np.mean(values))
                spread = settings.default_spread if len(values) == 2 else settings.degraded_spread
                predicted[name] = TraitRange(round(mid, 2), round(mid * (1 - spread), 2),
                                             round(mid * (1 + spread), 2), unit)
        return predicted

    def _likely_traits(self, colors: List[ProbabilityItem], patterns: List[ProbabilityItem],
                       sire_scores: Dict[str, float], dam_scores: Dict[str, float],
                       sire_df: pd.DataFrame, dam_df: pd.DataFrame) -> List[str]:
        notes = []
        for item in colors[:2]:
            if item.item != "Unknown" and item.percentage >= 25:
                notes.append(f"{item.item} plumage ({item.percentage:.0f}%)")
        for item in patterns[:1]:
            if item.item != "Unknown" and item.percentage >= 25:
                notes.append(f"{item.item} pattern ({item.percentage:.0f}%)")

        for trait in sorted(set(sire_scores) & set(dam_scores)):
            sire_val, dam_val = sire_scores[trait], dam_scores[trait]
            if sire_val >= 8 and dam_val >= 8:
                notes.append(f"Both parents excel at {_pretty(trait)}; strong inheritance likely")
            elif abs(sire_val - dam_val) >= 4:
                notes.append(f"{_pretty(trait)} varies widely between parents; offspring may vary")

        # Стабильно высокие оценки во всей истории обоих родителей
        lineage = pd.concat([df for df in (sire_df, dam_df) if not df.empty], ignore_index=True) \
            if not (sire_df.empty and dam_df.empty) else pd.DataFrame(columns=TRAIT_COLUMNS)
        for trait in sorted(set(sire_scores) | set(dam_scores)):
            values = lineage.loc[lineage["trait_name"] == trait, "numeric_value"].dropna()
            if len(values) >= 3 and values.min() >= 8:
                notes.append(f"Consistently high {_pretty(trait).lower()} scores in lineage")

        return notes[:8]
