"""
Модели данных движка разведения

Все записи - неизменяемые снимки, которые передаются в движок внешними
репозиториями. Результаты вычислений не сохраняются.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, List, Optional, Set, Tuple


class Gender(Enum):
    """Пол птицы"""
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "Gender":
        if isinstance(value, Gender):
            return value
        if value is None:
            return cls.UNKNOWN
        text = str(value).strip().lower()
        aliases = {
            "m": cls.MALE, "male": cls.MALE, "rooster": cls.MALE, "cock": cls.MALE,
            "f": cls.FEMALE, "female": cls.FEMALE, "hen": cls.FEMALE,
        }
        return aliases.get(text, cls.UNKNOWN)

    def opposite(self) -> "Gender":
        if self is Gender.MALE:
            return Gender.FEMALE
        if self is Gender.FEMALE:
            return Gender.MALE
        return Gender.UNKNOWN


class RiskLevel(Enum):
    """Уровень риска инбридинга"""
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        return ["LOW", "MODERATE", "HIGH", "CRITICAL"].index(self.value)


class GuestReason(Enum):
    """Почему узел родословной остался гостевым"""
    MISSING = "missing"
    DEPTH_LIMIT = "depth_limit"
    LOOKUP_FAILED = "lookup_failed"
    TIMEOUT = "timeout"
    CYCLE = "cycle"


class ResultStatus(Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


def _parse_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class BirdRecord:
    """
    Снимок записи о птице

    Args:
        id: идентификатор птицы
        name: кличка
        breed: порода
        gender: пол (строки вроде "male"/"hen" приводятся к Gender)
        hatched_at: дата вылупления
        weight: вес в граммах
        height: рост в сантиметрах
        color: окрас оперения
        sire_id: ID отца
        dam_id: ID матери
    """
    id: str
    name: str = ""
    breed: Optional[str] = None
    gender: Gender = Gender.UNKNOWN
    hatched_at: Optional[datetime] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    color: Optional[str] = None
    sire_id: Optional[str] = None
    dam_id: Optional[str] = None
    pattern: Optional[str] = None
    health_status: Optional[str] = None
    location: Optional[str] = None
    owner_id: Optional[str] = None

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("BirdRecord.id must be a non-empty string")
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "gender", Gender.parse(self.gender))
        for attr in ("sire_id", "dam_id"):
            value = getattr(self, attr)
            if value is not None:
                value = str(value).strip() or None
                object.__setattr__(self, attr, value)
        if self.id in (self.sire_id, self.dam_id):
            raise ValueError(f"Bird {self.id} cannot be its own parent")
        for attr in ("weight", "height"):
            value = getattr(self, attr)
            if value is not None:
                value = float(value)
                if value < 0:
                    raise ValueError(f"BirdRecord.{attr} must be non-negative, got {value}")
                object.__setattr__(self, attr, value)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def is_male(self) -> bool:
        return self.gender is Gender.MALE

    @property
    def is_female(self) -> bool:
        return self.gender is Gender.FEMALE

    def age_weeks(self, now: Optional[datetime] = None) -> Optional[int]:
        """Возраст в полных неделях или None, если дата вылупления неизвестна"""
        if self.hatched_at is None:
            return None
        now = now or datetime.now(self.hatched_at.tzinfo)
        days = (now - self.hatched_at).days
        return max(days // 7, 0)


@dataclass(frozen=True)
class TraitRecord:
    """Запись о замере признака"""
    bird_id: str
    trait_name: str
    value: str
    category: str = "general"
    numeric_value: Optional[float] = None
    unit: Optional[str] = None
    recorded_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.trait_name:
            raise ValueError("TraitRecord.trait_name must be non-empty")
        object.__setattr__(self, "value", "" if self.value is None else str(self.value))
        if self.numeric_value is None:
            object.__setattr__(self, "numeric_value", _parse_float(self.value))
        else:
            object.__setattr__(self, "numeric_value", float(self.numeric_value))


@dataclass(frozen=True)
class ShowRecord:
    """Результат выставки. placement=1 - победа"""
    bird_id: str
    show_name: str
    placement: Optional[int] = None
    entered_at: Optional[datetime] = None

    @property
    def is_win(self) -> bool:
        return self.placement == 1

    @property
    def is_podium(self) -> bool:
        return self.placement is not None and 1 <= self.placement <= 3


@dataclass(frozen=True)
class PedigreeNode:
    """
    Узел дерева родословной

    Гостевой узел (is_guest_parent=True) не раскрывается дальше: родитель
    неизвестен, не найден, достигнут предел глубины или обнаружен цикл.
    """
    bird_id: Optional[str]
    generation: int
    bird: Optional[BirdRecord] = None
    sire: Optional["PedigreeNode"] = None
    dam: Optional["PedigreeNode"] = None
    is_guest_parent: bool = False
    guest_reason: Optional[GuestReason] = None

    @property
    def display_name(self) -> str:
        if self.bird is not None:
            return self.bird.display_name
        return self.bird_id or "Unknown"

    def parents(self) -> Iterator[Tuple[str, "PedigreeNode"]]:
        if self.sire is not None:
            yield "sire", self.sire
        if self.dam is not None:
            yield "dam", self.dam

    def iter_nodes(self) -> Iterator["PedigreeNode"]:
        """Обход в глубину, начиная с текущего узла"""
        yield self
        for _, parent in self.parents():
            yield from parent.iter_nodes()

    def known_ancestor_ids(self) -> Set[str]:
        return {
            node.bird_id for node in self.iter_nodes()
            if node is not self and node.bird_id is not None
        }

    def count_ancestors(self) -> int:
        """Количество разрешённых предков (без гостевых узлов)"""
        return sum(
            1 for node in self.iter_nodes()
            if node is not self and node.bird is not None
        )

    def max_generation(self) -> int:
        return max(node.generation for node in self.iter_nodes())


@dataclass(frozen=True)
class ValueRange:
    min: float
    max: float

    @property
    def mid(self) -> float:
        return (self.min + self.max) / 2


@dataclass(frozen=True)
class ProbabilityItem:
    item: str
    percentage: float


@dataclass(frozen=True)
class TraitRange:
    """Прогноз числового признака потомства"""
    predicted: float
    low: float
    high: float
    unit: Optional[str] = None


@dataclass(frozen=True)
class CompatibilityResult:
    score: float
    coi_percent: float
    risk_level: RiskLevel
    verdict: str
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    rejected: bool = False
    common_ancestors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BreedingPrediction:
    weight_range: ValueRange
    height_range: ValueRange
    likely_traits: List[str]
    color_probabilities: List[ProbabilityItem]
    pattern_probabilities: List[ProbabilityItem] = field(default_factory=list)
    predicted_traits: dict = field(default_factory=dict)
    breed_type: str = "Unknown"
    data_confidence: str = "Low"


@dataclass(frozen=True)
class BreedingValueResult:
    bvi: float
    rating: str
    trait_count: int
    show_wins: int
    show_total: int
    offspring_count: int
    recommendation: str
    trait_score: float = 0.0
    show_score: float = 0.0
    offspring_score: float = 0.0


@dataclass(frozen=True)
class LineageScore:
    total_score: int
    generations_complete: int
    known_ancestors: int
    max_possible_ancestors: int
    recommendation: str


@dataclass(frozen=True)
class MateCandidate:
    bird: BirdRecord
    pairing_score: float
    offspring_potential: float
    genetic_diversity: float
    trait_complementarity: float
    practical_score: float
    recommendation: str
    key_strengths: List[str] = field(default_factory=list)
    key_risks: List[str] = field(default_factory=list)
    bvi: Optional[BreedingValueResult] = None
    compatibility: Optional[CompatibilityResult] = None


@dataclass(frozen=True)
class MateRecommendations:
    focal_bird: BirdRecord
    focal_bvi: Optional[BreedingValueResult]
    candidates: List[MateCandidate]
    total_evaluated: int


@dataclass(frozen=True)
class EngineResult:
    """Конверт результата для вызывающей стороны (UI): движок не бросает исключений наружу"""
    status: ResultStatus
    data: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @classmethod
    def success(cls, data) -> "EngineResult":
        return cls(ResultStatus.SUCCESS, data)

    @classmethod
    def not_found(cls, message: str) -> "EngineResult":
        return cls(ResultStatus.NOT_FOUND, None, message)

    @classmethod
    def failure(cls, message: str) -> "EngineResult":
        return cls(ResultStatus.FAILURE, None, message)
