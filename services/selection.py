"""Uniform random reviewer selection.

The randomness source is passed in so tests can use a seeded
``random.Random``.
"""
import random
from typing import List, Optional, Sequence


def choose_reviewers(candidates: Sequence[str], k: int, rng: Optional[random.Random] = None) -> List[str]:
    """Pick up to ``k`` distinct candidates uniformly at random without replacement."""
    rng = rng or random
    pool = list(dict.fromkeys(candidates))
    if k <= 0 or not pool:
        return []
    return rng.sample(pool, min(k, len(pool)))


def choose_one(candidates: Sequence[str], rng: Optional[random.Random] = None) -> Optional[str]:
    picked = choose_reviewers(candidates, 1, rng)
    return picked[0] if picked else None
