"""
Genome metadata: chromosome names and lengths.

The chromosome order given at construction (usually the chrom.sizes file
order) is the canonical iteration order for all interval sets, coverage
prefix sums and reports.
"""

import logging
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .exceptions import EmptyDataError, InvalidParameterError, UnknownChromosomeError

logger = logging.getLogger(__name__)


class Genome:
    """Ordered mapping of chromosome name -> length.

    Args:
        chrom_sizes: Chromosome lengths, iteration order is kept
        build: Human readable genome build name (e.g. 'hg38')
        chrom_aliases: Alternative chromosome names mapped to canonical ones
    """

    def __init__(
        self,
        chrom_sizes: Mapping[str, int],
        build: str = "custom",
        chrom_aliases: Optional[Mapping[str, str]] = None,
    ):
        if not chrom_sizes:
            raise EmptyDataError("chromosome sizes")

        self.build = build
        self._sizes: Dict[str, int] = {}
        for chrom, length in chrom_sizes.items():
            length = int(length)
            if length <= 0:
                raise InvalidParameterError(f"length of {chrom}", length, "> 0")
            self._sizes[str(chrom)] = length

        self._aliases: Dict[str, str] = {}
        for alias, canonical in (chrom_aliases or {}).items():
            if canonical not in self._sizes:
                raise UnknownChromosomeError(canonical, self.presentable_name())
            self._aliases[alias] = canonical

    @property
    def chromosomes(self) -> List[str]:
        return list(self._sizes.keys())

    def length(self, chrom: str) -> int:
        try:
            return self._sizes[chrom]
        except KeyError:
            raise UnknownChromosomeError(chrom, self.presentable_name()) from None

    def resolve(self, name: str) -> Optional[str]:
        """Canonical chromosome name for a (possibly aliased) name, None if unknown."""
        if name in self._sizes:
            return name
        return self._aliases.get(name)

    def index(self, chrom: str) -> int:
        return self.chromosomes.index(chrom)

    def __contains__(self, chrom: str) -> bool:
        return self.resolve(chrom) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._sizes)

    def __len__(self) -> int:
        return len(self._sizes)

    def items(self) -> Iterator[Tuple[str, int]]:
        return iter(self._sizes.items())

    @property
    def total_length(self) -> int:
        return sum(self._sizes.values())

    def presentable_name(self) -> str:
        return f"genome '{self.build}' ({len(self._sizes)} chromosomes)"

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Genome):
            return False
        return list(self._sizes.items()) == list(other._sizes.items())

    def __hash__(self):
        return hash(tuple(self._sizes.items()))

    def __repr__(self):
        return f"<Genome(build={self.build}, chromosomes={len(self._sizes)})>"


def parse_chrom_aliases(items: List[str]) -> Dict[str, str]:
    """Parse `chrInput:chrGenome` pairs into an alias mapping."""
    result = {}
    for item in items:
        pair = item.split(":", 1)
        if len(pair) != 2:
            raise InvalidParameterError(
                "chromosome mapping", item, "'chrInput:chrGenome' format"
            )
        result[pair[0].strip()] = pair[1].strip()
    return result
