"""
Integer histogram used as a sufficient statistic for sampled metric values.

Storing raw metric values for 10^5 to 10^6 simulations per LOI label is not
feasible, so only value -> count is kept. Mean, standard deviation and
median are derived from the histogram and are exact for integer metrics.
"""

import logging
import math
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, Union

import pandas as pd

logger = logging.getLogger(__name__)


class IntHistogram:
    """Mapping of integer value -> number of occurrences."""

    def __init__(self, data: Dict[int, int] = None):
        self.data: Counter = Counter(data or {})

    @classmethod
    def create(cls, values: Iterable[int]) -> "IntHistogram":
        return cls(Counter(int(v) for v in values))

    def increment(self, value: int, count: int = 1):
        self.data[int(value)] += count

    def count_values(self) -> int:
        return sum(self.data.values())

    def __iadd__(self, other: "IntHistogram") -> "IntHistogram":
        self.data.update(other.data)
        return self

    def __len__(self) -> int:
        return len(self.data)

    def mean(self, values_number: int = None) -> float:
        """Mean value, ``sum(count * value) / n``."""
        n = self.count_values() if values_number is None else values_number
        if n == 0:
            return math.nan
        return math.fsum(count * value for value, count in self.data.items()) / n

    def stdev(self, values_number: int = None, mean: float = None) -> float:
        """Sample standard deviation (Bessel's correction).

        Returns NaN for an empty histogram and 0.0 for a single value.
        """
        n = self.count_values() if values_number is None else values_number
        if n == 0:
            return math.nan
        if n == 1:
            return 0.0
        if mean is None:
            mean = self.mean(n)
        acc = math.fsum(count * (value - mean) ** 2 for value, count in self.data.items())
        return math.sqrt(acc / (n - 1))

    def median(self, values_number: int = None) -> int:
        """Value at sorted position ``n // 2``, -1 if the histogram is empty."""
        n = self.count_values() if values_number is None else values_number
        median_idx = n // 2
        seen = 0
        for value in sorted(self.data):
            seen += self.data[value]
            if seen > median_idx:
                return value
        return -1

    def to_frame(self, metric_col: str = "metric") -> pd.DataFrame:
        keys = sorted(self.data)
        return pd.DataFrame({
            metric_col: keys,
            "count": [self.data[k] for k in keys],
        })

    def save(self, path: Union[str, Path], metric_col: str = "metric"):
        """Save as TSV with ``metric_col`` and ``count`` columns sorted by value."""
        self.to_frame(metric_col).to_csv(path, sep="\t", index=False)

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, IntHistogram):
            return False
        return +self.data == +other.data

    __hash__ = None

    def __repr__(self):
        return f"IntHistogram({dict(sorted(self.data.items()))})"
