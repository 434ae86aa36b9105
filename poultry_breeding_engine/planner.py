"""
Планирование пар по всему стаду

Матрица оценок пар (самки x самцы) строится ранжировщиком; пары с COI
на пороге и выше исключаются (NaN). PairingPlanner подбирает каждой самке
самца генетическим алгоритмом NSGA-II (DEAP) с ограничением на долю самок
на одного самца.
"""

import logging
import math
import random
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from deap import algorithms, base, tools

from .models import BirdRecord
from .ranker import MateRecommendationRanker

logger = logging.getLogger(__name__)


def make_deap_types(weights: Sequence[float]):
    """
    Типы DEAP для одного планировщика

    Каждый экземпляр получает свои классы приспособленности и особи,
    поэтому веса критериев не разделяются между планировщиками.
    """
    fitness_cls = type("PairingFitness", (base.Fitness,), {"weights": tuple(weights)})

    class PairingPlan(list):
        """Особь: индекс самца для каждой самки"""

        def __init__(self, iterable=()):
            super().__init__(iterable)
            self.fitness = fitness_cls()

    return fitness_cls, PairingPlan


def score_pairs(ranker: MateRecommendationRanker, dams: Sequence[BirdRecord],
                sires: Sequence[BirdRecord]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Оценивает все пары самка x самец

    Returns:
        (матрица pairing_score, матрица COI в процентах)
    """
    logger.info("Расчёт матрицы оценок пар...")
    dam_ids = [d.id for d in dams]
    sire_ids = [s.id for s in sires]
    scores = pd.DataFrame(index=pd.Index(dam_ids, name="dam"), columns=pd.Index(sire_ids, name="sire"), dtype=float)
    coi = scores.copy()

    total_pairs = len(dams) * len(sires)
    processed = 0
    for dam in dams:
        history = ranker.traits.history_for(dam.id)
        dam_bvi = ranker.bvi_service.bvi(dam.id)
        for sire in sires:
            candidate = ranker.score_candidate(dam, sire, dam_bvi, history)
            scores.at[dam.id, sire.id] = candidate.pairing_score
            coi.at[dam.id, sire.id] = candidate.compatibility.coi_percent
            processed += 1

            if processed % 100 == 0:
                logger.info(f"Обработано {processed}/{total_pairs} пар ({processed/total_pairs*100:.1f}%)")

    logger.info("Матрица оценок пар рассчитана")
    return scores, coi


def filter_by_coi(scores: pd.DataFrame, coi_matrix: pd.DataFrame, coi_threshold: float) -> pd.DataFrame:
    """Исключает пары с COI на пороге и выше"""
    return scores.where(coi_matrix < coi_threshold)


def build_pairing_matrix(ranker: MateRecommendationRanker, dams: Sequence[BirdRecord],
                         sires: Sequence[BirdRecord], coi_threshold: Optional[float] = None) -> pd.DataFrame:
    """
    Создаёт матрицу оценок пар с фильтрацией по инбридингу

    Args:
        ranker: ранжировщик партнёров
        dams: самки (строки)
        sires: самцы (столбцы)
        coi_threshold: порог COI в процентах (по умолчанию из конфигурации)

    Returns:
        Матрица pairing_score, исключённые пары - NaN
    """
    if coi_threshold is None:
        coi_threshold = ranker.config.planner.coi_threshold
    scores, coi = score_pairs(ranker, dams, sires)
    return filter_by_coi(scores, coi, coi_threshold)


class PairingPlanner:
    """Класс для подбора пар по стаду с помощью генетического алгоритма"""

    def __init__(self, pairing_matrix: pd.DataFrame, max_assign_per_sire: float = 0.1,
                 optimization_criteria=None):
        """
        Args:
            pairing_matrix: матрица оценок пар (самки x самцы), NaN - запрещённая пара
            max_assign_per_sire: максимальная доля самок на одного самца
            optimization_criteria: словарь с критериями оптимизации и их весами
        """
        # Самки без единого допустимого самца в оптимизацию не попадают
        feasible = pairing_matrix.notna().any(axis=1)
        self.unassignable = pairing_matrix.index[~feasible].tolist()
        if self.unassignable:
            logger.warning(f"Самки без допустимых самцов: {self.unassignable}")

        self.pairing_matrix = pairing_matrix.loc[feasible]
        self.score_values = self.pairing_matrix.to_numpy(dtype=float)
        self.dams = self.pairing_matrix.index.tolist()
        self.sires = self.pairing_matrix.columns.tolist()
        self.n_dams, self.n_sires = self.score_values.shape
        if self.n_dams == 0:
            raise ValueError("Нет самок с допустимыми самцами: ослабьте порог COI")

        self.max_assign_per_sire = max(1, math.ceil(self.n_dams * max_assign_per_sire))
        if self.max_assign_per_sire * self.n_sires < self.n_dams:
            logger.warning(f"Ограничение {self.max_assign_per_sire} самок на самца невыполнимо "
                           f"для {self.n_dams} самок и {self.n_sires} самцов")

        self.optimization_criteria = self._setup_optimization_criteria(optimization_criteria)
        self._setup_deap()

        logger.info(f"Планировщик инициализирован: {self.n_dams} самок, {self.n_sires} самцов")
        logger.info(f"Максимум самок на самца: {self.max_assign_per_sire}")
        logger.info(f"Критерии оптимизации: {list(self.optimization_criteria.keys())}")

    def _setup_optimization_criteria(self, custom_criteria=None):
        """
        Настраивает критерии оптимизации

        Args:
            custom_criteria: пользовательские критерии

        Returns:
            Словарь с критериями и их весами
        """
        default_criteria = {
            'mean_score': {
                'weight': 1.0,
                'description': 'Средняя оценка назначенных пар',
                'maximize': True
            },
            'variance_score': {
                'weight': 0.00001,
                'description': 'Дисперсия оценок пар',
                'maximize': True
            },
            'sire_diversity': {
                'weight': 0.1,
                'description': 'Доля задействованных самцов',
                'maximize': True
            },
            'constraint_violation': {
                'weight': 1.0,
                'description': 'Превышение лимита самок на самца',
                'maximize': False
            }
        }

        if custom_criteria:
            for key, value in custom_criteria.items():
                if key in default_criteria:
                    default_criteria[key].update(value)
                else:
                    raise ValueError(f"Неизвестный критерий оптимизации: {key}")

        return default_criteria

    def _setup_deap(self):
        """Настройка DEAP для генетического алгоритма"""
        weights = []
        for criterion_config in self.optimization_criteria.values():
            weight = abs(criterion_config['weight'])
            weights.append(weight if criterion_config['maximize'] else -weight)

        self.fitness_cls, self.plan_cls = make_deap_types(weights)

        self.toolbox = base.Toolbox()
        self.toolbox.register("individual", self._create_individual)
        self.toolbox.register("population", tools.initRepeat, list, self.toolbox.individual)
        self.toolbox.register("evaluate", self._evaluate_individual)
        self.toolbox.register("mate", self._crossover)
        self.toolbox.register("mutate", self._mutate)
        self.toolbox.register("select", tools.selNSGA2)

    def _allowed_sires(self, dam_idx: int) -> np.ndarray:
        return np.where(~np.isnan(self.score_values[dam_idx]))[0]

    def _count_sire_usage(self, individual: List[int]) -> np.ndarray:
        """Подсчитывает использование самцов"""
        return np.bincount(np.asarray(individual, dtype=int), minlength=self.n_sires)

    def _repair_individual(self, individual: List[int]) -> List[int]:
        """Исправляет особь, чтобы она соответствовала ограничениям"""
        usage = self._count_sire_usage(individual)

        for dam_idx in range(self.n_dams):
            sire_idx = individual[dam_idx]

            if usage[sire_idx] > self.max_assign_per_sire or np.isnan(self.score_values[dam_idx, sire_idx]):
                valid_sires = [s for s in self._allowed_sires(dam_idx) if usage[s] < self.max_assign_per_sire]
                if valid_sires:
                    new_sire = random.choice(valid_sires)
                    usage[sire_idx] -= 1
                    usage[new_sire] += 1
                    individual[dam_idx] = new_sire

        return individual

    def _create_individual(self):
        """Создаёт новую особь"""
        individual = []
        sire_usage = np.zeros(self.n_sires, dtype=int)

        for dam_idx in range(self.n_dams):
            possible_sires = self._allowed_sires(dam_idx)

            attempts = 0
            while attempts < 10:
                sire_idx = int(random.choice(possible_sires))
                if sire_usage[sire_idx] < self.max_assign_per_sire:
                    sire_usage[sire_idx] += 1
                    individual.append(sire_idx)
                    break
                attempts += 1
            else:
                sire_idx = int(random.choice(possible_sires))
                sire_usage[sire_idx] += 1
                individual.append(sire_idx)
                logger.debug(f"Принудительное назначение для самки {self.dams[dam_idx]}")

        return self.plan_cls(individual)

    def _evaluate_individual(self, individual) -> tuple:
        """Оценивает приспособленность особи по всем критериям"""
        scores = [self.score_values[i, sire_idx] for i, sire_idx in enumerate(individual)]
        usage = self._count_sire_usage(individual)
        overused = float(np.sum(np.maximum(usage - self.max_assign_per_sire, 0)))

        criteria_values = {
            'mean_score': float(np.mean(scores)),
            'variance_score': float(np.var(scores)),
            'sire_diversity': len(set(individual)) / self.n_sires,
            'constraint_violation': overused,
        }
        if overused > 0:
            penalty = overused * 1e-3
            for name in ('mean_score', 'variance_score', 'sire_diversity'):
                criteria_values[name] -= penalty

        return tuple(criteria_values[criterion] for criterion in self.optimization_criteria.keys())

    def _mutate(self, individual):
        """Мутация: одна самка получает случайного или лучшего свободного самца"""
        mutated = individual[:]
        dam_idx = random.randint(0, self.n_dams - 1)
        usage = self._count_sire_usage(mutated)

        valid_sires = [s for s in self._allowed_sires(dam_idx) if usage[s] < self.max_assign_per_sire]
        if not valid_sires:
            return (self.plan_cls(mutated),)

        if random.random() < 0.5:
            new_sire = random.choice(valid_sires)
        else:
            new_sire = max(valid_sires, key=lambda s: self.score_values[dam_idx, s])

        mutated[dam_idx] = int(new_sire)
        return (self.plan_cls(self._repair_individual(mutated)),)

    def _crossover(self, ind1, ind2):
        """Двухточечное скрещивание с последующим исправлением"""
        if self.n_dams < 2:
            return self.plan_cls(ind1[:]), self.plan_cls(ind2[:])
        ind1_new, ind2_new = tools.cxTwoPoint(ind1[:], ind2[:])
        return (self.plan_cls(self._repair_individual(ind1_new)),
                self.plan_cls(self._repair_individual(ind2_new)))

    def optimize(self, pop_size: int = 100, ngen: int = 50, cxpb: float = 0.5, mutpb: float = 0.1,
                 seed: Optional[int] = None, verbose: bool = False):
        """
        Запускает генетический алгоритм

        Args:
            pop_size: размер популяции
            ngen: количество поколений
            cxpb: вероятность скрещивания
            mutpb: вероятность мутации
            seed: зерно генератора случайных чисел для воспроизводимости
            verbose: печатать статистику поколений

        Returns:
            DataFrame с назначениями, лучшая особь, фронт Парето
        """
        if cxpb + mutpb > 1.0:
            raise ValueError("Сумма cxpb и mutpb не должна превышать 1.0")
        if pop_size < 2:
            raise ValueError("pop_size должен быть не меньше 2")
        if seed is not None:
            random.seed(seed)
            np.random.seed(seed)

        logger.info("Запуск генетического алгоритма...")

        pop = self.toolbox.population(n=pop_size)
        hof = tools.ParetoFront()

        stats = tools.Statistics(lambda ind: ind.fitness.values)
        stats.register("avg", np.mean, axis=0)
        stats.register("min", np.min, axis=0)
        stats.register("max", np.max, axis=0)

        pop, logbook = algorithms.eaMuPlusLambda(
            pop, self.toolbox,
            mu=pop_size,
            lambda_=2 * pop_size,
            cxpb=cxpb,
            mutpb=mutpb,
            ngen=ngen,
            stats=stats,
            halloffame=hof,
            verbose=verbose
        )

        logger.info(f"Алгоритм завершён, найдено {len(hof)} недоминируемых решений")

        best_ind = sorted(hof.items, key=lambda x: x.fitness.values[0], reverse=True)[0]
        logger.info(f"Лучшее решение: mean={best_ind.fitness.values[0]:.4f}, "
                    f"var={best_ind.fitness.values[1]:.4f}")

        result_df = pd.DataFrame({
            "Dam": self.dams,
            "Assigned_Sire": [self.sires[sire_idx] for sire_idx in best_ind],
            "Pairing_Score": [self.score_values[i, s] for i, s in enumerate(best_ind)],
        })
        if self.unassignable:
            unassigned = pd.DataFrame({
                "Dam": self.unassignable,
                "Assigned_Sire": [None] * len(self.unassignable),
                "Pairing_Score": [np.nan] * len(self.unassignable),
            })
            result_df = pd.concat([result_df, unassigned], ignore_index=True)

        return result_df, best_ind, hof


class FlockAnalyzer:
    """Класс для анализа матрицы пар и результатов планирования"""

    @staticmethod
    def summarize_matrix(coi_matrix: pd.DataFrame, scores: pd.DataFrame, coi_threshold: float) -> Dict:
        """
        Анализирует влияние фильтрации по инбридингу

        Args:
            coi_matrix: матрица COI в процентах
            scores: матрица оценок пар до фильтрации
            coi_threshold: порог исключения

        Returns:
            Словарь с анализом фильтрации
        """
        total_pairs = int(coi_matrix.size)
        excluded_mask = (coi_matrix >= coi_threshold).to_numpy()
        excluded_pairs = int(excluded_mask.sum())
        values = scores.to_numpy(dtype=float)

        included = values[~excluded_mask]
        included = included[~np.isnan(included)]
        excluded = values[excluded_mask]
        excluded = excluded[~np.isnan(excluded)]

        return {
            'total_pairs': total_pairs,
            'excluded_pairs': excluded_pairs,
            'included_pairs': total_pairs - excluded_pairs,
            'excluded_percent': excluded_pairs / total_pairs * 100 if total_pairs > 0 else 0,
            'excluded_mean_score': float(excluded.mean()) if len(excluded) > 0 else 0,
            'included_mean_score': float(included.mean()) if len(included) > 0 else 0,
            'excluded_max_score': float(excluded.max()) if len(excluded) > 0 else 0,
            'included_max_score': float(included.max()) if len(included) > 0 else 0,
            'mean_coi': float(np.nanmean(coi_matrix.to_numpy(dtype=float))) if total_pairs > 0 else 0,
        }

    @staticmethod
    def print_analysis_report(filtering_stats: Dict):
        """Выводит отчёт анализа"""
        print("=" * 60)
        print("ОТЧЁТ ПО ПЛАНИРОВАНИЮ ПАР")
        print("=" * 60)

        print("\nФИЛЬТРАЦИЯ ПО ИНБРИДИНГУ:")
        print(f"Всего пар: {filtering_stats['total_pairs']}")
        print(f"Исключено пар: {filtering_stats['excluded_pairs']} ({filtering_stats['excluded_percent']:.1f}%)")
        print(f"Включено пар: {filtering_stats['included_pairs']}")
        print(f"Средний COI: {filtering_stats['mean_coi']:.2f}%")
        print(f"Средняя оценка исключённых: {filtering_stats['excluded_mean_score']:.2f}")
        print(f"Средняя оценка включённых: {filtering_stats['included_mean_score']:.2f}")

        if filtering_stats['excluded_mean_score'] > filtering_stats['included_mean_score']:
            print("\n⚠️  ВНИМАНИЕ: Исключённые пары имеют более высокую среднюю оценку!")
            print("   Рекомендуется искать неродственных производителей со стороны.")

        print("=" * 60)


def save_results(result_df: pd.DataFrame, filename: str = "flock_pairing_plan.csv"):
    """
    Сохраняет результаты в файл

    Args:
        result_df: DataFrame с результатами
        filename: имя файла для сохранения
    """
    result_df.to_csv(filename, index=False)
    logger.info(f"Результаты сохранены в '{filename}'")
