"""
RegionShuffle - Permutation-based enrichment of genomic regions in loci of interest

Tests whether input regions (e.g. DMRs) overlap loci of interest (e.g. CpG
islands) more or less than randomized region sets drawn from a matched
background would.
"""

__version__ = "0.1.0"
__author__ = "RegionShuffle Team"
