"""Tiered random sampling from ranked place pools."""
from __future__ import annotations

import math
import random
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from .places import ScoredPlace
from .scoring import rank_places

T = TypeVar("T")

TOP_TIER_FRACTION = 0.2
MID_TIER_FRACTION = 0.7
TOP_SAMPLE_SHARE = 0.6
MID_SAMPLE_SHARE = 0.3


class WeightedSampler:
    """Draws varied subsets, biased toward higher-ranked places.

    The random source is injectable so tests can pin the output.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def fork(self, names: Iterable[str]) -> Dict[str, "WeightedSampler"]:
        """Independent child samplers, seeded from this one in sorted name order.

        Call from a single thread; each child can then be used by its own worker.
        """
        return {name: WeightedSampler(random.Random(self.rng.getrandbits(64))) for name in sorted(set(names))}

    def shuffle(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = self.rng.randint(0, i)
            result[i], result[j] = result[j], result[i]
        return result

    def sample_random(self, items: Sequence[T], count: int) -> List[T]:
        if count <= 0:
            return []
        return self.shuffle(items)[:count]

    def sample_from_pool(self, pool: Sequence[ScoredPlace], count: int) -> List[ScoredPlace]:
        if count <= 0 or not pool:
            return []
        if len(pool) <= count:
            return self.shuffle(pool)

        ranked = rank_places(pool)
        n = len(ranked)
        top_end = max(1, math.floor(n * TOP_TIER_FRACTION))
        mid_end = max(top_end + 1, math.floor(n * MID_TIER_FRACTION))
        top = ranked[:top_end]
        mid = ranked[top_end:mid_end]
        low = ranked[mid_end:]

        top_count = min(len(top), math.ceil(count * TOP_SAMPLE_SHARE))
        mid_count = min(len(mid), math.ceil(count * MID_SAMPLE_SHARE))
        low_count = min(len(low), max(0, count - top_count - mid_count))

        picked = (
            self.sample_random(top, top_count)
            + self.sample_random(mid, mid_count)
            + self.sample_random(low, low_count)
        )
        if len(picked) < count:
            chosen = {id(place) for place in picked}
            rest = [place for place in ranked if id(place) not in chosen]
            picked.extend(self.sample_random(rest, count - len(picked)))
        return self.shuffle(picked)[:count]
