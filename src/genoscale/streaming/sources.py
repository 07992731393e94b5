"""Chunked sources for large genomic inputs.

Each source hands out at most ``chunk_size`` logical records per call to
``next_chunk`` and keeps only the current chunk decoded. Sources are opened
explicitly (or as context managers) and always released with ``close``.
"""

import gzip
import itertools
import zlib
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import pandas as pd

from ..core.exceptions import DecodeError
from ..core.exceptions import InvalidConfiguration
from ..core.exceptions import SourceUnavailable
from ..core.logging_config import get_logger
from .regions import GenomicRegion
from .regions import as_regions
from .regions import region_mask

logger = get_logger(__name__)


def validate_chunk_size(chunk_size: Any) -> int:
    """Reject zero, negative and non-integer chunk sizes."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise InvalidConfiguration(
            f"chunk_size must be an integer, got {type(chunk_size).__name__}",
            config_key="chunk_size", value=chunk_size,
        )
    if chunk_size <= 0:
        raise InvalidConfiguration(
            f"chunk_size must be positive, got {chunk_size}", config_key="chunk_size", value=chunk_size
        )
    return chunk_size


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8")
    return open(path, encoding="utf-8")


class BaseChunkSource:
    """Base class for bounded-size chunk readers."""

    def __init__(self, chunk_size: int, name: str | None = None):
        self.chunk_size = chunk_size
        self.name = name or self.__class__.__name__
        self.records_read = 0
        self.chunks_read = 0
        self._opened = False
        self._exhausted = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> "BaseChunkSource":
        """Acquire the underlying handle."""
        if self._opened:
            return self
        validate_chunk_size(self.chunk_size)
        self._open()
        self._opened = True
        self._exhausted = False
        logger.debug(f"Opened {self.name} (chunk_size={self.chunk_size})")
        return self

    def next_chunk(self) -> Any | None:
        """Return the next chunk, or None once the source is exhausted."""
        if not self._opened:
            raise SourceUnavailable(f"{self.name} is not open", source=self.name)
        if self._exhausted:
            return None

        chunk = self._read_chunk()
        if chunk is None:
            self._exhausted = True
            logger.debug(f"{self.name} exhausted after {self.chunks_read} chunks")
            return None

        self.chunks_read += 1
        self.records_read += len(chunk)
        return chunk

    def close(self) -> None:
        if not self._opened:
            return
        try:
            self._close()
        finally:
            self._opened = False
            logger.debug(f"Closed {self.name}")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self) -> Iterator[Any]:
        while True:
            chunk = self.next_chunk()
            if chunk is None:
                return
            yield chunk

    # Subclass hooks

    def _open(self) -> None:
        raise NotImplementedError("Subclasses must implement _open")

    def _read_chunk(self) -> Any | None:
        raise NotImplementedError("Subclasses must implement _read_chunk")

    def _close(self) -> None:
        pass


class SequenceSource(BaseChunkSource):
    """In-memory sequence (list, array, string) served as slices."""

    def __init__(self, data: Sequence[Any], chunk_size: int, name: str | None = None):
        super().__init__(chunk_size, name or "sequence")
        self.data = data
        self._position = 0

    def _open(self) -> None:
        if self.data is None:
            raise SourceUnavailable("No data to read", source=self.name)
        self._position = 0

    def _read_chunk(self):
        if self._position >= len(self.data):
            return None
        chunk = self.data[self._position:self._position + self.chunk_size]
        self._position += self.chunk_size
        return chunk


class _FileSource(BaseChunkSource):
    """Shared open/close for text files, gzip handled by suffix."""

    def __init__(self, path: str | Path, chunk_size: int):
        self.path = Path(path)
        super().__init__(chunk_size, str(self.path))
        self._handle = None

    def _check_path(self) -> None:
        if not self.path.exists():
            raise SourceUnavailable(f"File not found: {self.path}", source=str(self.path))
        if not self.path.is_file():
            raise SourceUnavailable(f"Not a regular file: {self.path}", source=str(self.path))

    def _open(self) -> None:
        self._check_path()
        try:
            self._handle = _open_text(self.path)
        except OSError as e:
            raise SourceUnavailable(f"Cannot open {self.path}: {e}", source=str(self.path)) from e

    def _close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _readline(self) -> str:
        try:
            return self._handle.readline()
        except (UnicodeDecodeError, EOFError, gzip.BadGzipFile, zlib.error) as e:
            raise DecodeError(f"Cannot decode {self.path}: {e}", source=str(self.path),
                              chunk_index=self.chunks_read) from e


class LineSource(_FileSource):
    """Text lines, without trailing newlines, optionally skipping comments."""

    def __init__(self,
                 path: str | Path,
                 chunk_size: int,
                 comment: str | None = None,
                 skip_blank: bool = True):
        super().__init__(path, chunk_size)
        self.comment = comment
        self.skip_blank = skip_blank

    def _lines(self) -> Iterator[str]:
        while True:
            line = self._readline()
            if not line:
                return
            line = line.rstrip("\r\n")
            if self.skip_blank and not line:
                continue
            if self.comment and line.startswith(self.comment):
                continue
            yield line

    def _read_chunk(self):
        lines = list(itertools.islice(self._lines(), self.chunk_size))
        return lines or None


class FastaSource(_FileSource):
    """FASTA records as ``(header, sequence)`` tuples."""

    def __init__(self, path: str | Path, chunk_size: int):
        super().__init__(path, chunk_size)
        self._pending_header: str | None = None

    def _open(self) -> None:
        super()._open()
        self._pending_header = None

    def _next_record(self) -> tuple[str, str] | None:
        header = self._pending_header
        self._pending_header = None

        while header is None:
            line = self._readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                continue
            if not line.startswith(">"):
                raise DecodeError(
                    f"Sequence data before first FASTA header in {self.path}",
                    source=str(self.path), chunk_index=self.chunks_read,
                )
            header = line[1:]

        parts = []
        while True:
            line = self._readline()
            if not line:
                break
            line = line.strip()
            if line.startswith(">"):
                self._pending_header = line[1:]
                break
            parts.append(line)
        return header, "".join(parts)

    def _read_chunk(self):
        records = []
        while len(records) < self.chunk_size:
            record = self._next_record()
            if record is None:
                break
            records.append(record)
        return records or None


class DelimitedSource(BaseChunkSource):
    """CSV/TSV rows as DataFrame chunks, optionally restricted to regions.

    Rows outside every region are dropped from each chunk; a chunk emptied by
    the restriction is still returned so chunk boundaries follow the file.
    """

    def __init__(self,
                 path: str | Path,
                 chunk_size: int,
                 sep: str = ",",
                 regions: Iterable[GenomicRegion | str] | None = None,
                 chrom_col: str = "CHROM",
                 pos_col: str = "POS",
                 compression: str | None = "infer",
                 **read_csv_kwargs: Any):
        self.path = Path(path)
        super().__init__(chunk_size, str(self.path))
        self.sep = sep
        self.regions = as_regions(regions)
        self.chrom_col = chrom_col
        self.pos_col = pos_col
        self.compression = compression
        self.read_csv_kwargs = read_csv_kwargs
        self._reader = None

    def _check_path(self) -> None:
        if not self.path.is_file():
            raise SourceUnavailable(f"File not found: {self.path}", source=str(self.path))

    def _reader_kwargs(self) -> dict[str, Any]:
        return dict(self.read_csv_kwargs)

    def _open(self) -> None:
        self._check_path()
        try:
            self._reader = pd.read_csv(
                self.path,
                sep=self.sep,
                chunksize=self.chunk_size,
                compression=self.compression,
                low_memory=False,
                **self._reader_kwargs(),
            )
        except pd.errors.EmptyDataError:
            logger.warning(f"{self.path} has no data")
            self._reader = None
        except (pd.errors.ParserError, UnicodeDecodeError, EOFError, gzip.BadGzipFile, zlib.error) as e:
            raise DecodeError(f"Cannot parse {self.path}: {e}", source=str(self.path)) from e
        except OSError as e:
            raise SourceUnavailable(f"Cannot open {self.path}: {e}", source=str(self.path)) from e

    def _prepare(self, chunk: pd.DataFrame) -> pd.DataFrame:
        return chunk

    def _read_chunk(self):
        if self._reader is None:
            return None
        chunk = None
        while chunk is None or chunk.empty:
            try:
                chunk = next(self._reader)
            except StopIteration:
                return None
            except (pd.errors.ParserError, UnicodeDecodeError, EOFError, gzip.BadGzipFile, zlib.error) as e:
                raise DecodeError(f"Cannot parse {self.path}: {e}", source=str(self.path),
                                  chunk_index=self.chunks_read) from e

        chunk = self._prepare(chunk)
        if self.regions:
            chunk = chunk[region_mask(chunk, self.regions, self.chrom_col, self.pos_col)]
        return chunk

    def _close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class VcfSource(DelimitedSource):
    """VCF body rows; ``##`` meta lines skipped, ``#CHROM`` line is the header."""

    def __init__(self,
                 path: str | Path,
                 chunk_size: int,
                 regions: Iterable[GenomicRegion | str] | None = None,
                 **read_csv_kwargs: Any):
        super().__init__(path, chunk_size, sep="\t", regions=regions,
                         chrom_col="CHROM", pos_col="POS", **read_csv_kwargs)
        self.meta: list[str] = []

    def _find_header(self) -> int:
        self.meta = []
        try:
            with _open_text(self.path) as f:
                for i, line in enumerate(f):
                    if line.startswith("#CHROM"):
                        return i
                    if line.startswith("##"):
                        self.meta.append(line.rstrip("\n"))
                        continue
                    break
        except (UnicodeDecodeError, EOFError, gzip.BadGzipFile, zlib.error) as e:
            raise DecodeError(f"Cannot read VCF header of {self.path}: {e}", source=str(self.path)) from e
        except OSError as e:
            raise SourceUnavailable(f"Cannot open {self.path}: {e}", source=str(self.path)) from e
        raise DecodeError(f"No #CHROM header line in {self.path}", source=str(self.path))

    def _reader_kwargs(self) -> dict[str, Any]:
        kwargs = super()._reader_kwargs()
        kwargs.setdefault("skiprows", self._header_line)
        kwargs.setdefault("dtype", {"#CHROM": str})
        return kwargs

    def _open(self) -> None:
        self._check_path()
        self._header_line = self._find_header()
        super()._open()

    def _prepare(self, chunk: pd.DataFrame) -> pd.DataFrame:
        chunk.columns = [str(col).lstrip("#") for col in chunk.columns]
        return chunk


_SOURCE_SUFFIXES = {
    ".vcf": VcfSource,
    ".csv": DelimitedSource,
    ".tsv": DelimitedSource,
    ".fa": FastaSource,
    ".fasta": FastaSource,
    ".fna": FastaSource,
}


def open_source(path: str | Path, chunk_size: int, **kwargs: Any) -> BaseChunkSource:
    """Get an (unopened) source suited to the file suffix.

    Args:
        path: Input file, optionally gzip-compressed (``.gz``)
        chunk_size: Records per chunk
        **kwargs: Passed to the source constructor

    Returns:
        A source instance; unknown suffixes fall back to LineSource
    """
    path = Path(path)
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    suffix = suffixes[-1] if suffixes else ""

    source_cls = _SOURCE_SUFFIXES.get(suffix, LineSource)
    if source_cls is DelimitedSource and suffix == ".tsv":
        kwargs.setdefault("sep", "\t")
    logger.debug(f"Using {source_cls.__name__} for {path.name}")
    return source_cls(path, chunk_size, **kwargs)
