"""
Integer metrics between two interval sets.

A metric is not symmetric: ``metric(a, b)`` and ``metric(b, a)`` generally
differ, the caller chooses the orientation.
"""

from abc import ABC, abstractmethod

from .exceptions import InvalidParameterError
from .intervals import IntervalSet


class RegionsMetric(ABC):
    """Base class for ``metric(a, b) -> int`` over interval sets.

    Args:
        flank: Flank each interval of ``a`` by this many bp on both sides
    """

    base_column = ""

    def __init__(self, flank: int = 0):
        if flank < 0:
            raise InvalidParameterError("flank", flank, ">= 0")
        self.flank = flank

    @property
    def column(self) -> str:
        """Output column name, e.g. ``overlap`` or ``overlap_flnk_100``."""
        if self.flank == 0:
            return self.base_column
        return f"{self.base_column}_flnk_{self.flank}"

    @abstractmethod
    def __call__(self, a: IntervalSet, b: IntervalSet) -> int:
        ...

    def __repr__(self):
        return f"<{type(self).__name__}(column={self.column})>"


class OverlapNumberMetric(RegionsMetric):
    """Number of ``a`` intervals overlapping at least one ``b`` interval.

    Same as ``bedtools intersect -u -a A -b B | wc -l``.
    """

    base_column = "overlap"

    def __call__(self, a: IntervalSet, b: IntervalSet) -> int:
        return a.overlap_number(b, flank=self.flank)


class IntersectionNumberMetric(RegionsMetric):
    """Number of non-empty fragments of ``a AND b``.

    Same as ``bedtools intersect -a A -b B | wc -l``.
    """

    base_column = "intersection_number"

    def __call__(self, a: IntervalSet, b: IntervalSet) -> int:
        return a.intersection_number(b, flank=self.flank)


_METRICS = {
    "overlap": OverlapNumberMetric,
    "intersection": IntersectionNumberMetric,
    "intersection_number": IntersectionNumberMetric,
}


def parse_metric(name: str, flank: int = 0) -> RegionsMetric:
    """Create a metric by name ('overlap' or 'intersection')."""
    try:
        return _METRICS[name](flank=flank)
    except KeyError:
        raise InvalidParameterError("metric", name, f"one of {sorted(_METRICS)}") from None
