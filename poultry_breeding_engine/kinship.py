"""
Расчёт коэффициента инбридинга (COI) по формуле Райта

F = Σ (1/2)^(n1 + n2 + 1) * (1 + F_A)

Сумма берётся по всем общим предкам A и всем парам путей отец -> A и
мать -> A, которые не пересекаются нигде, кроме самого A. F_A - собственный
коэффициент инбридинга предка, считается рекурсивно по его родителям.
"""

import logging
from typing import Dict, List, Optional, Set

import networkx as nx

from .config import EngineConfig, default_config
from .models import BirdRecord, PedigreeNode
from .pedigree import PedigreeGraphBuilder

logger = logging.getLogger(__name__)


class InbreedingCoefficientCalculator:
    """Класс для расчёта коэффициентов родства и инбридинга"""

    def __init__(self, pedigree_builder: PedigreeGraphBuilder, config: Optional[EngineConfig] = None):
        """
        Args:
            pedigree_builder: экземпляр PedigreeGraphBuilder
            config: конфигурация движка
        """
        self.pedigree_builder = pedigree_builder
        self.config = config or pedigree_builder.config or default_config()

    def coi(self, sire_id: str, dam_id: str, max_depth: Optional[int] = None) -> float:
        """
        Коэффициент инбридинга потомства пары, в процентах

        Args:
            sire_id: ID отца
            dam_id: ID матери
            max_depth: глубина родословной (по умолчанию из конфигурации)

        Returns:
            COI в диапазоне [0, 100]
        """
        if sire_id == dam_id:
            return 100.0

        max_depth = self.config.pedigree.max_pedigree_depth if max_depth is None else max_depth
        sire_tree = self.pedigree_builder.build(sire_id, max_depth)
        dam_tree = self.pedigree_builder.build(dam_id, max_depth)
        return self.coi_from_trees(sire_tree, dam_tree, max_depth)

    def coi_from_trees(self, sire_tree: PedigreeNode, dam_tree: PedigreeNode,
                       max_depth: Optional[int] = None) -> float:
        """COI по готовым деревьям отца и матери"""
        if sire_tree.bird_id == dam_tree.bird_id:
            return 100.0

        max_depth = self.config.pedigree.max_pedigree_depth if max_depth is None else max_depth
        G = PedigreeGraphBuilder.to_graph(sire_tree, dam_tree)
        memo: Dict = {}
        kinship = self._kinship(G, sire_tree.bird_id, dam_tree.bird_id, max_depth, memo)

        coi_percent = min(max(kinship * 100.0, 0.0), 100.0)
        logger.debug(f"COI {sire_tree.bird_id} x {dam_tree.bird_id}: {coi_percent:.3f}%")
        return coi_percent

    def common_ancestors(self, sire_id: str, dam_id: str, max_depth: Optional[int] = None) -> List[str]:
        """
        Находит общих предков двух птиц

        Сама птица считается собственным предком нулевого поколения, поэтому
        при скрещивании родителя с потомком родитель попадает в список.
        """
        if sire_id == dam_id:
            return [sire_id]
        max_depth = self.config.pedigree.max_pedigree_depth if max_depth is None else max_depth
        sire_tree = self.pedigree_builder.build(sire_id, max_depth)
        dam_tree = self.pedigree_builder.build(dam_id, max_depth)
        return self.common_ancestors_from_trees(sire_tree, dam_tree, max_depth)

    @staticmethod
    def common_ancestors_from_trees(sire_tree: PedigreeNode, dam_tree: PedigreeNode,
                                    max_depth: int) -> List[str]:
        G = PedigreeGraphBuilder.to_graph(sire_tree, dam_tree)
        return sorted(_reachable(G, sire_tree.bird_id, max_depth) & _reachable(G, dam_tree.bird_id, max_depth))

    def _kinship(self, G: nx.DiGraph, id1: str, id2: str, cutoff: int, memo: Dict) -> float:
        """
        Коэффициент родства двух узлов графа (доля, не проценты)

        memo живёт только в рамках одного вызова coi()
        """
        key = ('phi',) + tuple(sorted((id1, id2)))
        if key in memo:
            return memo[key]

        if id1 == id2:
            value = 0.5 * (1 + self._inbreeding(G, id1, cutoff, memo))
            memo[key] = value
            return value

        common = _reachable(G, id1, cutoff) & _reachable(G, id2, cutoff)
        kinship = 0.0

        for ancestor in common:
            paths1 = _paths_to(G, id1, ancestor, cutoff)
            paths2 = _paths_to(G, id2, ancestor, cutoff)
            if not paths1 or not paths2:
                continue
            F_a = self._inbreeding(G, ancestor, cutoff, memo)

            for p1 in paths1:
                inner1 = set(p1[:-1])
                for p2 in paths2:
                    # Пути не должны иметь общих особей, кроме самого предка
                    if inner1.intersection(p2[:-1]):
                        continue
                    n1, n2 = len(p1) - 1, len(p2) - 1
                    kinship += 0.5 ** (n1 + n2 + 1) * (1 + F_a)

        memo[key] = kinship
        return kinship

    def _inbreeding(self, G: nx.DiGraph, animal_id: str, cutoff: int, memo: Dict) -> float:
        """Собственный коэффициент инбридинга узла (0, если родители неизвестны)"""
        key = ('F', animal_id)
        if key in memo:
            return memo[key]

        in_progress: Set[str] = memo.setdefault('in_progress', set())
        if animal_id in in_progress:
            # цикл в данных: дальше не раскрываем
            return 0.0

        parents = {G.edges[animal_id, parent]['role']: parent for parent in G.successors(animal_id)}
        if 'sire' not in parents or 'dam' not in parents:
            memo[key] = 0.0
            return 0.0

        in_progress.add(animal_id)
        try:
            F = self._kinship(G, parents['sire'], parents['dam'], cutoff, memo)
        finally:
            in_progress.discard(animal_id)

        memo[key] = F
        return F

    @staticmethod
    def relationship_label(sire: BirdRecord, dam: BirdRecord) -> Optional[str]:
        """Прямое родство по ID родителей: полные/неполные сибсы, родитель-потомок"""
        if sire.id in (dam.sire_id, dam.dam_id) or dam.id in (sire.sire_id, sire.dam_id):
            return "parent-offspring"
        same_sire = sire.sire_id is not None and sire.sire_id == dam.sire_id
        same_dam = sire.dam_id is not None and sire.dam_id == dam.dam_id
        if same_sire and same_dam:
            return "full siblings"
        if same_sire or same_dam:
            return "half siblings"
        return None


def _reachable(G: nx.DiGraph, source: str, cutoff: int) -> Set[str]:
    """Сам узел и все его предки в пределах cutoff поколений"""
    if source not in G:
        return {source}
    return set(nx.single_source_shortest_path_length(G, source, cutoff=cutoff))


def _paths_to(G: nx.DiGraph, source: str, ancestor: str, cutoff: int) -> List[List[str]]:
    if source == ancestor:
        return [[source]]
    return list(nx.all_simple_paths(G, source, ancestor, cutoff=cutoff))
