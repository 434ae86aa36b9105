"""
Построение родословных

PedigreeGraphBuilder рекурсивно разрешает ссылки на отца и мать через
BirdRepository и строит ограниченное по глубине дерево предков. Ветви
отца и матери корня строятся параллельно, внутри ветви запросы идут
последовательно. Каждый запрос к репозиторию ограничен таймаутом: медленный
или упавший запрос превращает узел в гостевой, а не ломает всё дерево.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import FrozenSet, List, Optional, Tuple

import networkx as nx

from .config import EngineConfig, default_config
from .exceptions import BirdNotFoundError, BreedingEngineError
from .models import BirdRecord, GuestReason, LineageScore, PedigreeNode
from .repositories import BirdRepository

logger = logging.getLogger(__name__)


def genetic_contribution(depth: int) -> float:
    """
    Генетический вклад предка на глубине depth, в процентах

    depth считается от слоя родителей: родители (depth=0) дают по 50%,
    деды (depth=1) по 25% и т.д. Только для отображения и
    взвешивания, в расчёте COI не участвует.
    """
    if depth < 0:
        raise ValueError(f"depth must be non-negative, got {depth}")
    return max(0.0, 50.0 / 2 ** depth)


class PedigreeGraphBuilder:
    """Класс для построения деревьев предков и поиска потомков"""

    LOOKUP_WORKERS = 8

    def __init__(self, bird_repository: BirdRepository, config: Optional[EngineConfig] = None):
        """
        Args:
            bird_repository: источник записей о птицах
            config: конфигурация движка
        """
        self.birds = bird_repository
        self.config = config or default_config()

    @property
    def default_depth(self) -> int:
        return self.config.pedigree.max_pedigree_depth

    def build(self, bird_id: str, max_depth: Optional[int] = None,
              record: Optional[BirdRecord] = None) -> PedigreeNode:
        """
        Строит дерево предков

        Args:
            bird_id: ID корневой птицы
            max_depth: максимальная глубина (по умолчанию из конфигурации)
            record: запись корневой птицы, если её нет в репозитории
                (родители всё равно ищутся через репозиторий)

        Returns:
            Корневой PedigreeNode
        """
        max_depth = self.default_depth if max_depth is None else max_depth
        if max_depth < 0:
            raise ValueError(f"max_depth must be non-negative, got {max_depth}")

        lookup_pool = ThreadPoolExecutor(max_workers=self.LOOKUP_WORKERS,
                                         thread_name_prefix="pedigree-lookup")
        try:
            root, reason = self._lookup(lookup_pool, bird_id)
            if root is None and reason is None and record is not None:
                logger.debug(f"Птицы {bird_id} нет в репозитории, корень строится по переданной записи")
                root = record
            if root is None:
                if reason is None:
                    raise BirdNotFoundError(bird_id)
                raise BreedingEngineError(f"Lookup of root bird {bird_id} failed ({reason.value})")

            tree = self._expand(lookup_pool, root, 0, max_depth, frozenset(),
                                parallel=self.config.pedigree.parallel_parents)
        finally:
            # Зависшие запросы не должны блокировать возврат результата
            lookup_pool.shutdown(wait=False, cancel_futures=True)

        logger.debug(f"Родословная {bird_id}: {tree.count_ancestors()} предков, "
                     f"глубина {tree.max_generation()}")
        return tree

    def _lookup(self, pool: ThreadPoolExecutor, bird_id: str) -> Tuple[Optional[BirdRecord], Optional[GuestReason]]:
        """Запрос к репозиторию с таймаутом; возвращает (птица, причина неудачи)"""
        future = pool.submit(self.birds.find_by_id, bird_id)
        try:
            bird = future.result(timeout=self.config.pedigree.lookup_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"Таймаут запроса птицы {bird_id}, узел помечен как гостевой")
            return None, GuestReason.TIMEOUT
        except Exception as exc:
            logger.warning(f"Ошибка запроса птицы {bird_id}: {exc}")
            return None, GuestReason.LOOKUP_FAILED
        # None без причины: птица не найдена
        return bird, None

    def _expand(self, pool: ThreadPoolExecutor, bird: BirdRecord, generation: int,
                max_depth: int, path: FrozenSet[str], parallel: bool = False) -> PedigreeNode:
        """Рекурсивно раскрывает отца и мать; path - ID на текущем пути от корня"""
        path = path | {bird.id}

        if parallel and generation == 0:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="pedigree-branch") as branches:
                sire_future = branches.submit(self._parent_node, pool, bird, bird.sire_id,
                                              generation + 1, max_depth, path)
                dam_future = branches.submit(self._parent_node, pool, bird, bird.dam_id,
                                             generation + 1, max_depth, path)
                sire, dam = sire_future.result(), dam_future.result()
        else:
            sire = self._parent_node(pool, bird, bird.sire_id, generation + 1, max_depth, path)
            dam = self._parent_node(pool, bird, bird.dam_id, generation + 1, max_depth, path)

        return PedigreeNode(bird_id=bird.id, generation=generation, bird=bird, sire=sire, dam=dam)

    def _parent_node(self, pool: ThreadPoolExecutor, child: BirdRecord, parent_id: Optional[str],
                     generation: int, max_depth: int, path: FrozenSet[str]) -> Optional[PedigreeNode]:
        if generation > max_depth:
            return None

        def guest(reason: GuestReason) -> PedigreeNode:
            return PedigreeNode(bird_id=parent_id, generation=generation,
                                is_guest_parent=True, guest_reason=reason)

        if parent_id is None:
            return guest(GuestReason.MISSING)
        if parent_id in path:
            logger.warning(f"Нарушение целостности данных: {parent_id} является собственным предком "
                           f"(через {child.id}), ветвь обрезана")
            return guest(GuestReason.CYCLE)
        if generation == max_depth:
            return guest(GuestReason.DEPTH_LIMIT)

        parent, reason = self._lookup(pool, parent_id)
        if parent is None:
            return guest(reason or GuestReason.LOOKUP_FAILED)
        return self._expand(pool, parent, generation, max_depth, path)

    def offspring(self, bird_id: str) -> List[BirdRecord]:
        """Прямые потомки (один уровень)"""
        return list(self.birds.get_offspring(bird_id))

    def descendants(self, bird_id: str, max_depth: Optional[int] = None) -> List[Tuple[BirdRecord, int]]:
        """
        Потомки в ширину до max_depth поколений

        Returns:
            Список (птица, поколение), каждая птица один раз
        """
        max_depth = self.default_depth if max_depth is None else max_depth
        result = []
        seen = {bird_id}
        queue = deque([(bird_id, 0)])

        while queue:
            current, generation = queue.popleft()
            if generation >= max_depth:
                continue
            for child in self.offspring(current):
                if child.id in seen:
                    continue
                seen.add(child.id)
                result.append((child, generation + 1))
                queue.append((child.id, generation + 1))

        return result

    @staticmethod
    def to_graph(*trees: PedigreeNode) -> nx.DiGraph:
        """
        Переводит одно или несколько деревьев в ориентированный граф

        Рёбра идут от потомка к родителю, атрибут role = 'sire' | 'dam'.
        Одинаковые предки из разных деревьев сливаются в один узел.
        Гостевые узлы цикла рёбер не получают.
        """
        G = nx.DiGraph()
        for tree in trees:
            for node in tree.iter_nodes():
                if node.bird_id is None:
                    continue
                if not G.has_node(node.bird_id):
                    G.add_node(node.bird_id, generation=node.generation, guest=node.is_guest_parent)
                elif not node.is_guest_parent:
                    G.nodes[node.bird_id]['guest'] = False
                for role, parent in node.parents():
                    if parent.bird_id is None or parent.guest_reason is GuestReason.CYCLE:
                        continue
                    G.add_edge(node.bird_id, parent.bird_id, role=role)
        return G

    def lineage_score(self, bird_id: str, generations: Optional[int] = None) -> LineageScore:
        """
        Оценка полноты родословной

        Args:
            bird_id: ID птицы
            generations: сколько поколений предков учитывать

        Returns:
            LineageScore
        """
        if generations is None:
            generations = self.config.pedigree.lineage_generations
        if generations < 1:
            raise ValueError(f"generations must be at least 1, got {generations}")
        # +1: узлы на пределе глубины гостевые и не разрешаются
        tree = self.build(bird_id, generations + 1)

        per_generation = {}
        for node in tree.iter_nodes():
            if node is tree or node.bird is None or node.generation > generations:
                continue
            per_generation[node.generation] = per_generation.get(node.generation, 0) + 1

        known = sum(per_generation.values())
        max_possible = sum(2 ** g for g in range(1, generations + 1))
        completeness = int(known / max_possible * 100) if max_possible else 0

        complete_gens = 0
        for gen in range(1, generations + 1):
            if per_generation.get(gen, 0) >= 2 ** gen:
                complete_gens = gen
            else:
                break

        if completeness >= 90:
            recommendation = "Excellent lineage documentation"
        elif completeness >= 70:
            recommendation = "Good lineage, some gaps"
        elif completeness >= 50:
            recommendation = "Moderate lineage, consider researching parents"
        elif completeness >= 25:
            recommendation = "Limited lineage, significant gaps"
        else:
            recommendation = "Minimal lineage data available"

        return LineageScore(
            total_score=completeness,
            generations_complete=complete_gens,
            known_ancestors=known,
            max_possible_ancestors=max_possible,
            recommendation=recommendation,
        )

    @staticmethod
    def format_tree(tree: PedigreeNode) -> str:
        """Текстовое представление дерева с отступами"""
        lines = []

        def walk(node: PedigreeNode, role: str, level: int):
            indent = "  " * level + ("↳ " if level else "")
            label = f"{role}: " if role else ""
            suffix = f" [guest: {node.guest_reason.value}]" if node.is_guest_parent else ""
            share = f" ({genetic_contribution(node.generation - 1):.2f}%)" if level else ""
            lines.append(f"{indent}{label}{node.display_name}{share}{suffix}")
            for parent_role, parent in node.parents():
                walk(parent, parent_role, level + 1)

        walk(tree, "", 0)
        return "\n".join(lines)

    def print_pedigree_tree(self, bird_id: str, max_generations: int = 5):
        """Выводит дерево родословной в консоль"""
        print(self.format_tree(self.build(bird_id, max_generations)))
