"""Tier classification of basket totals between the best and worst store."""

import math
from typing import Optional


TIER_NONE = "none"
TIER_BEST = "best"
TIER_FAIR = "fair"
TIER_WORST = "worst"


class RankClassifier:
    """Map a total's position between best and worst to a discrete tier."""

    def __init__(self, best_threshold: float = 0.2, fair_threshold: float = 0.6):
        self.best_threshold = best_threshold
        self.fair_threshold = fair_threshold

    def classify(
        self,
        total: Optional[float],
        best: Optional[float],
        worst: Optional[float],
    ) -> str:
        if best is None or worst is None or total is None:
            return TIER_NONE
        if not all(math.isfinite(v) for v in (total, best, worst)):
            return TIER_NONE
        if worst == best:
            return TIER_BEST

        ratio = (total - best) / (worst - best)
        # Floating rounding can push the ratio slightly past the bounds.
        ratio = max(0.0, min(1.0, ratio))
        if ratio <= self.best_threshold:
            return TIER_BEST
        if ratio <= self.fair_threshold:
            return TIER_FAIR
        return TIER_WORST


_default_classifier = RankClassifier()


def classify(total: Optional[float], best: Optional[float], worst: Optional[float]) -> str:
    return _default_classifier.classify(total, best, worst)
