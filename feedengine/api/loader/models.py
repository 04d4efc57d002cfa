from dataclasses import dataclass
from typing import Dict

from feedengine.config.constants import LoadStrategy


@dataclass(frozen=True)
class LoadingStrategy:
    name: LoadStrategy
    priority: int
    preload: bool  # fetch eagerly, without being asked
    cache: bool  # keep the result in the resource cache


LOADING_STRATEGIES: Dict[LoadStrategy, LoadingStrategy] = {
    LoadStrategy.CRITICAL: LoadingStrategy(LoadStrategy.CRITICAL, 1, preload=True, cache=True),
    LoadStrategy.IMPORTANT: LoadingStrategy(LoadStrategy.IMPORTANT, 2, preload=True, cache=True),
    LoadStrategy.NORMAL: LoadingStrategy(LoadStrategy.NORMAL, 3, preload=False, cache=True),
    LoadStrategy.LOW: LoadingStrategy(LoadStrategy.LOW, 4, preload=False, cache=False),
}


def get_strategy(strategy) -> LoadingStrategy:
    """Resolve a strategy name; raises ValueError for unknown names"""
    return LOADING_STRATEGIES[LoadStrategy(strategy)]
