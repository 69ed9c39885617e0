#!/usr/bin/env python3
"""
DJ Catalog - Setup Configuration
Reconciles streaming, DJ software and filesystem music libraries into one catalog
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core dependencies
core_requirements = [
    "mutagen>=1.47.0",      # Audio tag reading for folder scans
    "numpy>=1.24.0",        # Median duration during canonical merge
    "tqdm>=4.66.0",         # Progress bars
    "python-dotenv>=1.0.0", # Environment variables
    "rapidfuzz>=3.0.0",     # Normalized Levenshtein similarity
]

# Development dependencies
dev_requirements = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.0.0",
    "flake8>=6.0.0",
    "mypy>=1.0.0",
]

setup(
    # Package information
    name="dj-catalog",
    version="1.0.0",
    author="RamC Venkatasamy",
    author_email="ramc46@example.com",
    description="Deduplicated music catalog reconciled from streaming, DJ software and filesystem libraries",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/ramc46/dj-catalog",

    # Package discovery
    packages=find_packages(exclude=["tests*", "test_*", "*.tests*"]),
    include_package_data=True,

    # Dependencies
    install_requires=core_requirements,
    extras_require={
        "dev": dev_requirements,
    },

    # Console entry points
    entry_points={
        "console_scripts": [
            "djcatalog=djcatalog.cli.unified_cli:main",
            "dj-catalog=djcatalog.cli.unified_cli:main",
        ],
    },

    # Python version and classifiers
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Environment :: Console",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Database",
        "Topic :: Utilities",
    ],

    keywords=[
        "dj", "music", "metadata", "rekordbox", "itunes", "apple-music",
        "music-library", "deduplication", "record-linkage", "catalog",
    ],

    zip_safe=False,
    platforms=["any"],
)
