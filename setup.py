"""
Setup configuration for GenoScale
"""
from setuptools import setup, find_packages

setup(
    name="genoscale",
    version="0.1.0",
    description="Chunked map/reduce and resumable parallel dispatch for large genomic datasets",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "pandas>=2.0.0",
        "numpy>=1.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "psutil>=5.9.0",
    ],
    extras_require={
        "dask": [
            "dask[distributed]>=2023.1.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
        "dev": [
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "genoscale=genoscale.main:main",
        ],
    },
)
