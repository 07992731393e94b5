"""Ready-made map and combine functions for chunked processing.

All combine operations here are associative and commutative, so chunk
boundaries and the order in which independent sources are folded never
change the final result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

BASES = ("A", "C", "G", "T", "N")

# Byte value -> slot in BASES; anything unknown is counted as N.
_BASE_INDEX = np.full(256, BASES.index("N"), dtype=np.intp)
for _i, _base in enumerate("ACGT"):
    _BASE_INDEX[ord(_base)] = _i
    _BASE_INDEX[ord(_base.lower())] = _i


@dataclass(eq=False)
class CountVector:
    """Fixed-label integer counts backed by a pre-allocated numpy array."""

    labels: tuple[str, ...]
    counts: np.ndarray

    def __post_init__(self):
        self.labels = tuple(self.labels)
        self.counts = np.asarray(self.counts, dtype=np.int64)
        if self.counts.shape != (len(self.labels),):
            raise ValueError(
                f"counts shape {self.counts.shape} does not match {len(self.labels)} labels"
            )

    @classmethod
    def zeros(cls, labels: Sequence[str] = BASES) -> CountVector:
        return cls(tuple(labels), np.zeros(len(labels), dtype=np.int64))

    def __add__(self, other: CountVector) -> CountVector:
        if not isinstance(other, CountVector):
            return NotImplemented
        if self.labels != other.labels:
            raise ValueError(f"Cannot combine counts over {self.labels} and {other.labels}")
        return CountVector(self.labels, self.counts + other.counts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CountVector):
            return NotImplemented
        return self.labels == other.labels and np.array_equal(self.counts, other.counts)

    def __getitem__(self, label: str) -> int:
        return int(self.counts[self.labels.index(label)])

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    def as_series(self) -> pd.Series:
        return pd.Series(self.counts, index=list(self.labels), dtype="int64")

    def copy(self) -> CountVector:
        return CountVector(self.labels, self.counts.copy())


def _sequences(chunk: Any) -> Iterable[str]:
    if isinstance(chunk, str):
        return [chunk]
    return [item[1] if isinstance(item, tuple) else item for item in chunk]


def count_bases(chunk: Any) -> CountVector:
    """Tally A/C/G/T/N over a chunk of sequences or FASTA records.

    The chunk is joined once and counted with ``np.bincount`` rather than
    looping over characters.
    """
    joined = "".join(_sequences(chunk)).encode("ascii", errors="replace")
    counts = np.zeros(len(BASES), dtype=np.int64)
    if joined:
        byte_counts = np.bincount(np.frombuffer(joined, dtype=np.uint8), minlength=256)
        np.add.at(counts, _BASE_INDEX, byte_counts)
    return CountVector(BASES, counts)


def add_counts(a: CountVector, b: CountVector) -> CountVector:
    return a + b


class ColumnTally:
    """Map function counting the values of one DataFrame column.

    A class rather than a closure so it can be pickled to process workers.
    """

    def __init__(self, column: str):
        self.column = column

    def __call__(self, chunk: pd.DataFrame) -> pd.Series:
        if self.column not in chunk.columns:
            raise KeyError(f"Column '{self.column}' not in chunk columns {list(chunk.columns)}")
        return chunk[self.column].astype(str).value_counts().astype("int64")

    def __repr__(self) -> str:
        return f"ColumnTally({self.column!r})"


def tally_column(column: str) -> ColumnTally:
    return ColumnTally(column)


def empty_tally() -> pd.Series:
    return pd.Series(dtype="int64")


def combine_tallies(a: pd.Series, b: pd.Series) -> pd.Series:
    """Add two value tallies; labels missing on one side count as zero."""
    combined = a.add(b, fill_value=0).astype("int64")
    return combined.sort_index()


def count_records(chunk: Sequence[Any]) -> int:
    return len(chunk)


def add(a: int, b: int) -> int:
    return a + b
