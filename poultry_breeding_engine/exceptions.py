"""Исключения движка разведения"""


class BreedingEngineError(Exception):
    """Базовое исключение движка"""


class BirdNotFoundError(BreedingEngineError):
    """Птица с указанным ID не найдена в репозитории"""

    def __init__(self, bird_id: str):
        self.bird_id = bird_id
        super().__init__(f"Bird not found: {bird_id}")


class RankingCancelled(BreedingEngineError):
    """Ранжирование партнёров отменено вызывающей стороной"""

    def __init__(self, evaluated: int):
        self.evaluated = evaluated
        super().__init__(f"Mate ranking cancelled after {evaluated} candidates")


class ConfigError(BreedingEngineError, ValueError):
    """Некорректная конфигурация"""
