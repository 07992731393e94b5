"""Genomic regions of interest and vectorised row restriction."""

import re
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from ..core.exceptions import InvalidConfiguration

_REGION_RE = re.compile(r"^(?P<chrom>[^:\s]+)(?::(?P<start>[\d,]+)-(?P<end>[\d,]+))?$")


@dataclass(frozen=True)
class GenomicRegion:
    """1-based closed interval on one chromosome; ``end=None`` means to the end."""

    chrom: str
    start: int = 1
    end: int | None = None

    def __post_init__(self):
        if self.start < 1:
            raise InvalidConfiguration("region start must be >= 1", config_key="region", value=str(self))
        if self.end is not None and self.start > self.end:
            raise InvalidConfiguration("region start must not exceed end", config_key="region", value=str(self))

    @classmethod
    def parse(cls, text: str) -> "GenomicRegion":
        """Parse ``chr1:1,000-2,000`` or a bare chromosome name."""
        match = _REGION_RE.match(text.strip())
        if not match:
            raise InvalidConfiguration(f"Cannot parse region '{text}'", config_key="region", value=text)
        if match.group("start") is None:
            return cls(match.group("chrom"))
        start = int(match.group("start").replace(",", ""))
        end = int(match.group("end").replace(",", ""))
        return cls(match.group("chrom"), start, end)

    def contains(self, chrom: str, pos: int) -> bool:
        if str(chrom) != self.chrom or pos < self.start:
            return False
        return self.end is None or pos <= self.end

    def __str__(self) -> str:
        if self.start == 1 and self.end is None:
            return self.chrom
        return f"{self.chrom}:{self.start}-{self.end if self.end is not None else ''}"


def as_regions(regions: Iterable[GenomicRegion | str] | None) -> list[GenomicRegion]:
    """Normalise strings and regions into a list of GenomicRegion."""
    if not regions:
        return []
    return [r if isinstance(r, GenomicRegion) else GenomicRegion.parse(r) for r in regions]


def region_mask(df: pd.DataFrame,
                regions: Iterable[GenomicRegion],
                chrom_col: str = "CHROM",
                pos_col: str = "POS") -> np.ndarray:
    """Boolean mask of rows falling in any region."""
    missing = [col for col in (chrom_col, pos_col) if col not in df.columns]
    if missing:
        raise InvalidConfiguration(
            f"Region restriction needs columns {missing}", config_key="region_columns", value=list(df.columns)
        )

    chroms = df[chrom_col].astype(str).to_numpy()
    positions = pd.to_numeric(df[pos_col], errors="coerce").to_numpy()

    mask = np.zeros(len(df), dtype=bool)
    for region in regions:
        hit = (chroms == region.chrom) & (positions >= region.start)
        if region.end is not None:
            hit &= positions <= region.end
        mask |= hit
    return mask
