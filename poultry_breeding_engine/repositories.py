"""
Внешние коллабораторы движка и их реализация в памяти

Движок обращается к данным только через протоколы ниже. FlockRepository -
готовая реализация поверх pandas.DataFrame или CSV-файлов (для тестов,
примеров и пакетного анализа стада).
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set

import pandas as pd

from .models import BirdRecord, ShowRecord, TraitRecord

logger = logging.getLogger(__name__)

UNKNOWN_PARENT_MARKERS = {"", "unknown", "none", "nan", "null", "-1"}
# Дата замера без отметки времени: раньше любых датированных записей
UNKNOWN_DATE = datetime(1970, 1, 1)

BIRD_COLUMNS = [
    "id", "name", "breed", "gender", "hatched_at", "weight", "height", "color",
    "sire_id", "dam_id", "pattern", "health_status", "location", "owner_id",
]


class BirdRepository(Protocol):
    def find_by_id(self, bird_id: str) -> Optional[BirdRecord]: ...

    def get_offspring(self, bird_id: str) -> List[BirdRecord]: ...

    def list_birds(self) -> List[BirdRecord]: ...


class TraitRepository(Protocol):
    def history_for(self, bird_id: str) -> List[TraitRecord]: ...


class ShowRepository(Protocol):
    def results_for(self, bird_id: str) -> List[ShowRecord]: ...


class PairRepository(Protocol):
    def active_partner_ids(self, bird_id: str) -> Set[str]: ...


def _clean_parent(val) -> Optional[str]:
    """Всё, что не похоже на ID (None, NaN, 'UNKNOWN'), превращаем в None"""
    if val is None or (not isinstance(val, str) and pd.isnull(val)):
        return None
    text = str(val).strip()
    if text.lower() in UNKNOWN_PARENT_MARKERS:
        return None
    return text


def _clean_value(val):
    if val is None:
        return None
    if not isinstance(val, str) and pd.isnull(val):
        return None
    return val


def _to_datetime(val) -> Optional[datetime]:
    val = _clean_value(val)
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    return pd.Timestamp(val).to_pydatetime()


def _load_frame(source, name: str) -> pd.DataFrame:
    if source is None:
        return pd.DataFrame()
    if isinstance(source, str):
        return pd.read_csv(source)
    if isinstance(source, pd.DataFrame):
        return source.copy()
    raise ValueError(f"{name} должен быть либо путем к CSV, либо pandas.DataFrame")


class FlockRepository:
    """
    Стадо в памяти: реализует BirdRepository, TraitRepository,
    ShowRepository и PairRepository
    """

    def __init__(self, birds_source, traits_source=None, shows_source=None,
                 pairs_source=None):
        """
        Args:
            birds_source: путь к CSV или DataFrame с птицами (колонки BIRD_COLUMNS,
                для совместимости также принимаются father_id/mother_id)
            traits_source: путь к CSV или DataFrame с замерами признаков
            shows_source: путь к CSV или DataFrame с результатами выставок
            pairs_source: путь к CSV или DataFrame активных пар (sire_id, dam_id)
        """
        self.birds_df = self._clean_birds(_load_frame(birds_source, "birds_source"))
        self.traits_df = _load_frame(traits_source, "traits_source")
        self.shows_df = _load_frame(shows_source, "shows_source")
        self.pairs_df = _load_frame(pairs_source, "pairs_source")

        self._birds: Dict[str, BirdRecord] = {}
        self._children: Dict[str, List[str]] = defaultdict(list)
        for row in self.birds_df.to_dict("records"):
            bird = self._row_to_bird(row)
            self._birds[bird.id] = bird
        for bird in self._birds.values():
            for parent_id in (bird.sire_id, bird.dam_id):
                if parent_id is not None:
                    self._children[parent_id].append(bird.id)

        self._traits = self._group_records(self.traits_df, self._row_to_trait)
        self._shows = self._group_records(self.shows_df, self._row_to_show)
        self._partners: Dict[str, Set[str]] = defaultdict(set)
        for row in self.pairs_df.to_dict("records"):
            if str(row.get("active", True)).lower() in ("false", "0", "no"):
                continue
            sire_id, dam_id = _clean_parent(row.get("sire_id")), _clean_parent(row.get("dam_id"))
            if sire_id and dam_id:
                self._partners[sire_id].add(dam_id)
                self._partners[dam_id].add(sire_id)

        logger.info(f"Загружено стадо: {len(self._birds)} птиц, "
                    f"{len(self.traits_df)} замеров, {len(self.shows_df)} выставок")

    @classmethod
    def from_records(cls, birds: Iterable[BirdRecord], traits: Iterable[TraitRecord] = (),
                     shows: Iterable[ShowRecord] = (), active_pairs=()) -> "FlockRepository":
        """Собирает репозиторий из готовых записей"""
        birds_df = pd.DataFrame([vars(b) | {"gender": b.gender.value} for b in birds],
                                columns=BIRD_COLUMNS)
        traits_df = pd.DataFrame([vars(t) for t in traits])
        shows_df = pd.DataFrame([vars(s) for s in shows])
        pairs_df = pd.DataFrame(list(active_pairs), columns=["sire_id", "dam_id"])
        return cls(birds_df, traits_df, shows_df, pairs_df)

    def _clean_birds(self, df: pd.DataFrame) -> pd.DataFrame:
        if df.empty:
            return pd.DataFrame(columns=BIRD_COLUMNS)
        df = df.rename(columns={"father_id": "sire_id", "mother_id": "dam_id"})
        for column in BIRD_COLUMNS:
            if column not in df.columns:
                df[column] = None
        df["id"] = df["id"].astype(str)

        # Проверяем на дубликаты ID
        duplicates = df["id"][df["id"].duplicated(keep=False)]
        if not duplicates.empty:
            logger.warning(f"Найдены дубликаты ID: {len(duplicates)}, оставлена последняя запись")
            df = df.drop_duplicates(subset="id", keep="last")

        df["sire_id"] = df["sire_id"].apply(_clean_parent)
        df["dam_id"] = df["dam_id"].apply(_clean_parent)
        return df.reset_index(drop=True)

    @staticmethod
    def _row_to_bird(row: dict) -> BirdRecord:
        return BirdRecord(
            id=row["id"],
            name=_clean_value(row.get("name")) or "",
            breed=_clean_value(row.get("breed")),
            gender=_clean_value(row.get("gender")),
            hatched_at=_to_datetime(row.get("hatched_at")),
            weight=_clean_value(row.get("weight")),
            height=_clean_value(row.get("height")),
            color=_clean_value(row.get("color")),
            sire_id=_clean_parent(row.get("sire_id")),
            dam_id=_clean_parent(row.get("dam_id")),
            pattern=_clean_value(row.get("pattern")),
            health_status=_clean_value(row.get("health_status")),
            location=_clean_value(row.get("location")),
            owner_id=_clean_value(row.get("owner_id")),
        )

    @staticmethod
    def _row_to_trait(row: dict) -> TraitRecord:
        return TraitRecord(
            bird_id=str(row["bird_id"]),
            trait_name=str(row["trait_name"]),
            value=_clean_value(row.get("value")),
            category=_clean_value(row.get("category")) or "general",
            numeric_value=_clean_value(row.get("numeric_value")),
            unit=_clean_value(row.get("unit")),
            recorded_at=_to_datetime(row.get("recorded_at")) or UNKNOWN_DATE,
        )

    @staticmethod
    def _row_to_show(row: dict) -> ShowRecord:
        placement = _clean_value(row.get("placement"))
        return ShowRecord(
            bird_id=str(row["bird_id"]),
            show_name=str(_clean_value(row.get("show_name")) or ""),
            placement=int(placement) if placement is not None else None,
            entered_at=_to_datetime(row.get("entered_at")),
        )

    @staticmethod
    def _group_records(df: pd.DataFrame, converter) -> Dict[str, list]:
        grouped = defaultdict(list)
        if df.empty:
            return grouped
        for row in df.to_dict("records"):
            record = converter(row)
            grouped[record.bird_id].append(record)
        return grouped

    # BirdRepository
    def find_by_id(self, bird_id: str) -> Optional[BirdRecord]:
        return self._birds.get(bird_id)

    def get_offspring(self, bird_id: str) -> List[BirdRecord]:
        return [self._birds[child_id] for child_id in self._children.get(bird_id, [])]

    def list_birds(self) -> List[BirdRecord]:
        return list(self._birds.values())

    # TraitRepository
    def history_for(self, bird_id: str) -> List[TraitRecord]:
        return list(self._traits.get(bird_id, []))

    # ShowRepository
    def results_for(self, bird_id: str) -> List[ShowRecord]:
        return list(self._shows.get(bird_id, []))

    # PairRepository
    def active_partner_ids(self, bird_id: str) -> Set[str]:
        return set(self._partners.get(bird_id, set()))

    def __len__(self) -> int:
        return len(self._birds)
