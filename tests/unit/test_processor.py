"""
Unit Tests for the chunked processor
"""

import numpy as np
import pytest

from genoscale.core.exceptions import InvalidConfiguration
from genoscale.core.exceptions import SourceUnavailable
from genoscale.monitoring import PerformanceMonitor
from genoscale.streaming.processor import Accumulator
from genoscale.streaming.processor import ChunkedProcessor
from genoscale.streaming.processor import reduce_by_yield
from genoscale.streaming.sources import BaseChunkSource
from genoscale.streaming.sources import FastaSource
from genoscale.streaming.sources import SequenceSource
from genoscale.streaming.sources import VcfSource
from genoscale.streaming.summaries import CountVector
from genoscale.streaming.summaries import add
from genoscale.streaming.summaries import add_counts
from genoscale.streaming.summaries import combine_tallies
from genoscale.streaming.summaries import count_bases
from genoscale.streaming.summaries import count_records
from genoscale.streaming.summaries import empty_tally
from genoscale.streaming.summaries import tally_column


def _add(a, b):
    return a + b


class RecordingSource(SequenceSource):
    """SequenceSource counting reads and closes."""

    def __init__(self, data, chunk_size):
        super().__init__(data, chunk_size)
        self.closed = 0
        self.reads = 0

    def _read_chunk(self):
        self.reads += 1
        return super()._read_chunk()

    def _close(self):
        self.closed += 1


class TestAccumulator:
    """Tests for the explicit accumulator"""

    def test_counts_chunks_and_records(self):
        acc = Accumulator(0, _add)
        acc.add(5, n_records=2)
        acc.add(7, n_records=3)
        assert acc.value == 12
        assert (acc.chunks, acc.records) == (2, 5)

    def test_reset_copies_mutable_identity(self):
        identity = np.zeros(3, dtype=np.int64)

        def combine(a, b):
            a += b
            return a

        acc = Accumulator(identity, combine)
        acc.add(np.ones(3, dtype=np.int64))
        acc.reset()

        assert identity.tolist() == [0, 0, 0]
        assert acc.value.tolist() == [0, 0, 0]
        assert acc.chunks == 0


class TestChunkedProcessor:
    """Tests for chunked yield-map-reduce"""

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 100, 1000])
    def test_result_independent_of_chunk_size(self, chunk_size):
        data = list(range(100))
        result = ChunkedProcessor(SequenceSource(data, chunk_size), sum, _add, 0).process()
        assert result == sum(data)

    def test_empty_source_returns_identity(self):
        processor = ChunkedProcessor(SequenceSource([], 10), sum, _add, 0)
        assert processor.process() == 0
        assert processor.accumulator.chunks == 0

    def test_empty_file_returns_identity(self, empty_file):
        result = reduce_by_yield(FastaSource(empty_file, 5), count_bases, add_counts, CountVector.zeros())
        assert result == CountVector.zeros()

    @pytest.mark.parametrize("chunk_size", [0, -5])
    def test_invalid_chunk_size_before_any_read(self, chunk_size):
        source = RecordingSource([1, 2, 3], chunk_size)
        processor = ChunkedProcessor(source, sum, _add, 0)

        with pytest.raises(InvalidConfiguration):
            processor.open()
        assert source.reads == 0

        with pytest.raises(InvalidConfiguration):
            processor.process()
        assert source.reads == 0

    def test_map_failure_aborts_and_closes_source(self):
        def explode(chunk):
            if 5 in chunk:
                raise ValueError("bad chunk")
            return sum(chunk)

        source = RecordingSource(list(range(10)), 2)
        with pytest.raises(ValueError, match="bad chunk"):
            ChunkedProcessor(source, explode, _add, 0).process()

        assert source.closed == 1
        assert not source.is_open

    def test_combine_failure_propagates(self):
        def bad_combine(a, b):
            raise TypeError("cannot combine")

        source = RecordingSource([1, 2], 1)
        with pytest.raises(TypeError):
            ChunkedProcessor(source, sum, bad_combine, 0).process()
        assert not source.is_open

    def test_missing_source_is_unavailable(self, tmp_path):
        processor = ChunkedProcessor(FastaSource(tmp_path / "none.fa", 5), count_bases, add_counts,
                                     CountVector.zeros())
        with pytest.raises(SourceUnavailable):
            processor.process()

    def test_chunks_are_folded_in_order(self):
        # String concatenation is not commutative, so order shows in the result.
        result = reduce_by_yield(SequenceSource("abcdefg", 3), lambda c: c, _add, "")
        assert result == "abcdefg"

    def test_only_one_chunk_alive(self):
        class TrackingSource(BaseChunkSource):
            def __init__(self):
                super().__init__(chunk_size=4)
                self.live = 0
                self.max_live = 0
                self.remaining = 5

            def _open(self):
                pass

            def _read_chunk(self):
                if self.remaining == 0:
                    return None
                self.remaining -= 1
                self.live += 1
                self.max_live = max(self.max_live, self.live)
                return [1, 1, 1, 1]

        source = TrackingSource()

        def consume(chunk):
            source.live -= 1
            return len(chunk)

        assert ChunkedProcessor(source, consume, _add, 0).process() == 20
        assert source.max_live == 1

    def test_base_composition_over_fasta(self, fasta_file):
        result = reduce_by_yield(FastaSource(fasta_file, 1), count_bases, add_counts, CountVector.zeros())
        assert result.as_series().to_dict() == {"A": 4, "C": 4, "G": 8, "T": 4, "N": 4}

    def test_vcf_tally(self, vcf_file):
        result = reduce_by_yield(VcfSource(vcf_file, 2), tally_column("FILTER"), combine_tallies, empty_tally())
        assert result.to_dict() == {"LowQual": 2, "PASS": 3}

    def test_process_can_run_again(self):
        processor = ChunkedProcessor(SequenceSource([1, 2, 3], 2), count_records, add, 0)
        assert processor.process() == 3
        assert processor.process() == 3

    def test_context_manager_closes(self):
        source = SequenceSource([1, 2, 3], 2)
        with ChunkedProcessor(source, sum, _add, 0) as processor:
            assert processor.next_chunk() == [1, 2]
        assert not source.is_open

    def test_monitor_records_counts(self):
        monitor = PerformanceMonitor()
        processor = ChunkedProcessor(SequenceSource(list(range(10)), 4), sum, _add, 0, monitor=monitor)
        processor.process()

        stats = monitor.get_task_stats(processor.last_run_id)
        assert stats["total_records"] == 10
        assert stats["chunk_count"] == 3
        assert stats["status"] == "completed"

    def test_monitor_records_failed_chunk(self):
        monitor = PerformanceMonitor()

        def fail(chunk):
            raise RuntimeError("boom")

        processor = ChunkedProcessor(SequenceSource([1, 2], 1), fail, _add, 0, monitor=monitor)
        with pytest.raises(RuntimeError):
            processor.process()

        stats = monitor.get_task_stats(processor.last_run_id)
        assert stats["failed_chunks"] == 1
        assert stats["chunk_count"] == 0
