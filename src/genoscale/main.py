"""
GenoScale command line entry point.
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from genoscale.core.exceptions import GenoScaleException
from genoscale.core.logging_config import PerformanceTimer
from genoscale.core.logging_config import setup_logging
from genoscale.core.settings import DispatchSettings
from genoscale.core.settings import get_settings
from genoscale.parallel.dispatcher import Dispatcher
from genoscale.parallel.reduce import reduce_by_file
from genoscale.streaming.summaries import CountVector
from genoscale.streaming.summaries import add
from genoscale.streaming.summaries import add_counts
from genoscale.streaming.summaries import combine_tallies
from genoscale.streaming.summaries import count_bases
from genoscale.streaming.summaries import count_records
from genoscale.streaming.summaries import empty_tally
from genoscale.streaming.summaries import tally_column

logger = logging.getLogger(__name__)


def _command_functions(args: argparse.Namespace):
    """Map, combine and identity for the chosen command."""
    if args.command == "bases":
        return count_bases, add_counts, CountVector.zeros()
    if args.command == "tally":
        return tally_column(args.column), combine_tallies, empty_tally()
    return count_records, add, 0


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="GenoScale - chunked and parallel summaries of large genomic files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s count reads.txt.gz                       # Count records
  %(prog)s bases genome.fa --chunk-size 1000        # Base composition
  %(prog)s tally calls.vcf --column CHROM --region chr1:1-500000
  %(prog)s tally a.vcf b.vcf --column FILTER --workers 2 --backend process
        """,
    )
    parser.add_argument("command", choices=["count", "bases", "tally"], help="Summary to compute")
    parser.add_argument("files", nargs="+", help="Input files (one task per file)")
    parser.add_argument("--column", help="Column to tally (tally command)")
    parser.add_argument("--region", action="append", default=[],
                        help="Restrict delimited/VCF input to a region, e.g. chr1:100-200 (repeatable)")
    parser.add_argument("--chunk-size", type=int, default=settings.chunks.chunk_size,
                        help="Records per chunk")
    parser.add_argument("--workers", type=int, default=settings.dispatch.workers, help="Worker count")
    parser.add_argument("--backend", default=settings.dispatch.backend,
                        choices=["serial", "thread", "process", "dask"], help="Worker back-end")
    parser.add_argument("--timeout", type=float, default=settings.dispatch.timeout,
                        help="Per-file timeout in seconds")
    parser.add_argument("--log-level", default=settings.logging.log_level,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    return parser


def main(argv=None) -> int:
    """Main entry point with CLI argument parsing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "tally" and not args.column:
        parser.error("tally requires --column")

    log_settings = get_settings().logging
    setup_logging(
        log_level=args.log_level,
        log_file=log_settings.log_file,
        enable_structured=log_settings.structured,
        enable_performance=log_settings.performance_log_enabled,
    )

    try:
        config = DispatchSettings(
            workers=args.workers, backend=args.backend, timeout=args.timeout,
        )
        map_fn, combine_fn, identity = _command_functions(args)
        source_kwargs = {"regions": args.region} if args.region else {}

        with PerformanceTimer(f"{args.command} over {len(args.files)} file(s)", logger):
            combined, results = reduce_by_file(
                args.files, map_fn, combine_fn, identity,
                chunk_size=args.chunk_size,
                dispatcher=Dispatcher(config),
                **source_kwargs,
            )
    except ValidationError as e:
        logger.error(f"Invalid dispatch settings: {e}")
        return 2
    except GenoScaleException as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 2

    for index, outcome in results.errors().items():
        print(f"FAILED {args.files[index]}: {outcome.error_type}: {outcome.message}", file=sys.stderr)

    if isinstance(combined, CountVector):
        combined = combined.as_series()
    if hasattr(combined, "to_string"):
        print(combined.to_string())
    else:
        print(combined)

    return 0 if results.all_ok else 1


if __name__ == "__main__":
    sys.exit(main())
