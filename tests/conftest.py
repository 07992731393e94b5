"""
Pytest configuration for GenoScale tests
This file configures paths and fixtures for all tests
"""
import gzip
import logging
import logging.handlers
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / "src"

sys.path.insert(0, str(SRC_DIR))


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --include-slow is given"""
    if not config.getoption("--include-slow", default=False):
        skip_slow = pytest.mark.skip(reason="Skipping slow tests")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


def pytest_addoption(parser):
    """Add custom command line options"""
    parser.addoption(
        "--include-slow",
        action="store_true",
        default=False,
        help="Include slow tests"
    )


@pytest.fixture
def sample_vcf_content():
    """Sample VCF file content for testing"""
    return """##fileformat=VCFv4.2
##contig=<ID=chr1,length=249250621>
#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tSAMPLE1
chr1\t100\t.\tA\tG\t30\tPASS\tDP=20\tGT:GQ\t0/1:99
chr1\t200\t.\tC\tT\t40\tPASS\tDP=25\tGT:GQ\t1/1:99
chr1\t300\t.\tATCG\tA\t35\tLowQual\tDP=22\tGT:GQ\t0/1:99
chr2\t150\t.\tG\tA\t50\tPASS\tDP=30\tGT:GQ\t0/1:99
chr2\t900\t.\tT\tC\t12\tLowQual\tDP=8\tGT:GQ\t0/1:40
"""


@pytest.fixture
def sample_fasta_content():
    """Sample FASTA file content for testing"""
    return """>seq1 first
ACGTACGT
ACGT
>seq2
NNNNacgt
>seq3
GGGG
"""


@pytest.fixture
def vcf_file(tmp_path, sample_vcf_content):
    path = tmp_path / "calls.vcf"
    path.write_text(sample_vcf_content)
    return path


@pytest.fixture
def vcf_gz_file(tmp_path, sample_vcf_content):
    path = tmp_path / "calls.vcf.gz"
    with gzip.open(path, "wt") as f:
        f.write(sample_vcf_content)
    return path


@pytest.fixture
def fasta_file(tmp_path, sample_fasta_content):
    path = tmp_path / "genome.fa"
    path.write_text(sample_fasta_content)
    return path


@pytest.fixture
def lines_file(tmp_path):
    path = tmp_path / "reads.txt"
    path.write_text("".join(f"read{i}\n" for i in range(10)))
    return path


@pytest.fixture
def empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("")
    return path


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by setup_logging between tests"""
    yield
    for name in ("genoscale", "genoscale.error", "genoscale.performance", "distributed"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, logging.handlers.RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
