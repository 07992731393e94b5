"""Chunked iteration over large genomic inputs.

Sources read bounded chunks, the ChunkedProcessor maps each chunk to a
summary and folds the summaries so memory stays bounded by one chunk.
"""

from .processor import Accumulator
from .processor import ChunkedProcessor
from .processor import reduce_by_yield
from .regions import GenomicRegion
from .regions import region_mask
from .sources import BaseChunkSource
from .sources import DelimitedSource
from .sources import FastaSource
from .sources import LineSource
from .sources import SequenceSource
from .sources import VcfSource
from .sources import open_source
from .summaries import CountVector
from .summaries import combine_tallies
from .summaries import count_bases
from .summaries import empty_tally
from .summaries import tally_column

__all__ = [
    "Accumulator",
    "BaseChunkSource",
    "ChunkedProcessor",
    "CountVector",
    "DelimitedSource",
    "FastaSource",
    "GenomicRegion",
    "LineSource",
    "SequenceSource",
    "VcfSource",
    "combine_tallies",
    "count_bases",
    "empty_tally",
    "open_source",
    "reduce_by_yield",
    "region_mask",
    "tally_column",
]
