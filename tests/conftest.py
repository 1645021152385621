"""
Shared test fixtures for the clipwindows test suite.
"""

import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# ============================================================================
# Window annotation
# ============================================================================


def make_annotation(rows):
    """Annotation DataFrame from (unique_id, chromosome, begin, end, strand, gene_id) tuples."""
    records = []
    for i, (uid, chrom, begin, end, strand, gene) in enumerate(rows):
        records.append({
            "chromosome": chrom,
            "unique_id": uid,
            "begin": begin,
            "end": end,
            "strand": strand,
            "gene_id": gene,
            "gene_name": f"{gene}_name",
            "gene_type": "protein_coding",
            "gene_region": "exon" if i % 2 == 0 else "intron",
            "Nr_of_region": 1,
            "Total_nr_of_region": 1,
            "window_number": i + 1,
        })
    return pd.DataFrame(records)


@pytest.fixture
def annotation_df():
    """Three genes; G1 holds the overlapping W1/W2 pair and the separate W3."""
    return make_annotation([
        ("W3", "chr1", 200, 250, "+", "G1"),
        ("W1", "chr1", 100, 150, "+", "G1"),
        ("W2", "chr1", 120, 170, "+", "G1"),
        ("W4", "chr1", 300, 350, "-", "G2"),
        ("W5", "chr1", 320, 370, "-", "G2"),
        ("W6", "chr2", 50, 100, "+", "G3"),
    ])


# ============================================================================
# Counts and samples
# ============================================================================


@pytest.fixture
def counts_df():
    """Tidy count table: first column is the window id."""
    return pd.DataFrame({
        "unique_id": ["W1", "W2", "W3", "W4", "W5", "W6"],
        "ip1": [40, 35, 5, 12, 9, 7],
        "ip2": [44, 30, 6, 10, 11, 8],
        "smi1": [6, 5, 7, 9, 8, 6],
    })


@pytest.fixture
def sample_table():
    return pd.DataFrame(
        {"condition": ["IP", "IP", "SMI"]},
        index=["ip1", "ip2", "smi1"],
    )


@pytest.fixture
def max_counts_df():
    """Max crosslink height per window and sample."""
    return pd.DataFrame(
        {
            "ip1": [10, 10, 1, 5, 0, 3],
            "ip2": [2, 2, 1, 5, 0, 3],
            "smi1": [6, 2, 1, 5, 0, 3],
        },
        index=["W1", "W2", "W3", "W4", "W5", "W6"],
    )


@pytest.fixture
def engine_results():
    """Regression engine output for the fixture windows."""
    return pd.DataFrame(
        {
            "baseMean": [25.0, 22.0, 6.0, 10.0, 9.0, 7.0],
            "log2FoldChange": [2.0, 1.5, -1.0, 0.2, 1.0, np.nan],
            "stat": [3.3, 3.1, -3.3, 0.7, 0.5, np.nan],
            "pvalue": [0.001, 0.002, 0.001, 0.5, 0.6, np.nan],
        },
        index=["W1", "W2", "W3", "W4", "W5", "W6"],
    )


class StubEngine:
    """Regression engine returning a fixed result table."""

    def __init__(self, results: pd.DataFrame):
        self.results = results
        self.calls = []

    def fit(self, counts, sample_table, design, contrast, size_factors=None):
        self.calls.append({
            "windows": list(counts.index),
            "samples": list(counts.columns),
            "design": design,
            "contrast": contrast,
            "size_factors": size_factors,
        })
        return self.results.loc[self.results.index.intersection(counts.index)]


@pytest.fixture
def stub_engine(engine_results):
    return StubEngine(engine_results)


# ============================================================================
# Temporary files
# ============================================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def input_files(temp_dir, annotation_df, counts_df, sample_table):
    """Annotation (gzipped), counts and sample table written as TSV files."""
    annotation_path = temp_dir / "annotation.txt.gz"
    annotation_df.to_csv(annotation_path, sep="\t", index=False, compression="gzip")

    counts_path = temp_dir / "counts.txt"
    counts_df.to_csv(counts_path, sep="\t", index=False)

    samples_path = temp_dir / "samples.txt"
    sample_table.rename_axis("sample").reset_index().to_csv(samples_path, sep="\t", index=False)

    return {"annotation": annotation_path, "counts": counts_path, "samples": samples_path}
