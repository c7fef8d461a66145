from __future__ import annotations
import random
from typing import Optional, Sequence, Tuple

# (shares, weight); skewed toward the round counts seen in watched-wallet fills
SHARE_TABLE: Tuple[Tuple[float, float], ...] = (
    (5, 0.10),
    (10, 0.22),
    (15, 0.12),
    (20, 0.16),
    (25, 0.10),
    (30, 0.08),
    (40, 0.07),
    (50, 0.09),
    (75, 0.03),
    (100, 0.03),
)

# (min_s, max_s, weight) gap until the next trade on a market
CADENCE_TIERS: Tuple[Tuple[float, float, float], ...] = (
    (2.0, 5.0, 0.55),
    (5.0, 10.0, 0.25),
    (10.0, 20.0, 0.15),
    (20.0, 45.0, 0.05),
)


class RandomSource:
    """Thin wrapper over random.Random so tests can pin every draw with a seed."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random(seed)

    def random(self) -> float:
        return self.rng.random()

    def uniform(self, a: float, b: float) -> float:
        return self.rng.uniform(a, b)

    def weighted(self, items: Sequence, weights: Sequence[float]):
        return self.rng.choices(list(items), weights=list(weights), k=1)[0]


def draw_shares(rnd: RandomSource, jitter: float = 0.1, table=SHARE_TABLE) -> float:
    base = rnd.weighted([s for s, _ in table], [w for _, w in table])
    return float(base) * (1.0 + rnd.uniform(-jitter, jitter))


def next_trade_gap(rnd: RandomSource, tiers=CADENCE_TIERS) -> float:
    lo, hi, _ = rnd.weighted(list(tiers), [w for _, _, w in tiers])
    return rnd.uniform(lo, hi)
