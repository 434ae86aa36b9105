"""
Индекс племенной ценности (BVI)
"""

import logging
from typing import Optional

import numpy as np

from .config import EngineConfig, default_config
from .exceptions import BirdNotFoundError
from .models import BreedingValueResult
from .repositories import BirdRepository, ShowRepository, TraitRepository

logger = logging.getLogger(__name__)

RATING_BUCKETS = [(0.8, "Elite"), (0.6, "Strong"), (0.4, "Average")]

WEAKEST_HINTS = {
    "trait": "record more trait data to improve ranking",
    "show": "enter more shows to prove show quality",
    "offspring": "register offspring to demonstrate breeding results",
}


def rate(bvi: float) -> str:
    for threshold, rating in RATING_BUCKETS:
        if bvi >= threshold:
            return rating
    return "Developing"


class BreedingValueIndexService:
    """Класс для расчёта BVI одной птицы по признакам, выставкам и потомству"""

    def __init__(self, bird_repository: BirdRepository, trait_repository: TraitRepository,
                 show_repository: Optional[ShowRepository] = None, config: Optional[EngineConfig] = None):
        self.birds = bird_repository
        self.traits = trait_repository
        self.shows = show_repository
        self.config = config or default_config()

    def bvi(self, bird_id: str) -> BreedingValueResult:
        """
        Рассчитывает индекс племенной ценности

        Args:
            bird_id: ID птицы

        Returns:
            BreedingValueResult, bvi в диапазоне [0, 1]
        """
        bird = self.birds.find_by_id(bird_id)
        if bird is None:
            raise BirdNotFoundError(bird_id)

        settings = self.config.breeding_value
        trait_count = len({r.trait_name.strip().lower() for r in self.traits.history_for(bird_id)})
        shows = self.shows.results_for(bird_id) if self.shows is not None else []
        show_total = len(shows)
        show_wins = sum(1 for s in shows if s.is_win)
        offspring_count = len(self.birds.get_offspring(bird_id))

        components = {
            "trait": min(trait_count / settings.definable_traits, 1.0),
            "show": show_wins / show_total if show_total else 0.0,
            # Каждый следующий потомок добавляет всё меньше
            "offspring": float(np.clip(np.log1p(offspring_count) / np.log1p(settings.offspring_cap), 0.0, 1.0)),
        }
        weights = {
            "trait": settings.trait_weight,
            "show": settings.show_weight,
            "offspring": settings.offspring_weight,
        }

        if trait_count == 0 and show_total == 0 and offspring_count == 0:
            logger.debug(f"BVI {bird_id}: нет данных для оценки")
            return BreedingValueResult(
                bvi=0.0,
                rating="Unrated",
                trait_count=0,
                show_wins=0,
                show_total=0,
                offspring_count=0,
                recommendation="No data to judge: record traits, shows or offspring to get a rating",
            )

        bvi = round(float(np.clip(sum(components[k] * weights[k] for k in components), 0.0, 1.0)), 4)
        rating = rate(bvi)
        weakest = min(components, key=lambda k: (components[k], k))

        if rating == "Elite":
            recommendation = "Elite breeder: prioritize in the breeding program"
        elif rating == "Strong":
            recommendation = f"Strong breeder; {WEAKEST_HINTS[weakest]}"
        elif rating == "Average":
            recommendation = f"Average breeding value; {WEAKEST_HINTS[weakest]}"
        else:
            recommendation = f"Developing: {WEAKEST_HINTS[weakest]}"

        logger.debug(f"BVI {bird_id}: {bvi:.3f} ({rating})")
        return BreedingValueResult(
            bvi=bvi,
            rating=rating,
            trait_count=trait_count,
            show_wins=show_wins,
            show_total=show_total,
            offspring_count=offspring_count,
            recommendation=recommendation,
            trait_score=round(components["trait"], 4),
            show_score=round(components["show"], 4),
            offspring_score=round(components["offspring"], 4),
        )
