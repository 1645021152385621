"""
Shared genomic utilities for clipwindows.

Provides interval overlap counting using NCLS (Nested Containment List),
replacing O(n²) all-pairs comparisons within gene groups, together with
coordinate normalisation, genome ordering and the TSV/BED helpers used
by the loaders and writers.

All interval arithmetic works on 0-based half-open ``[start, end)``
coordinates.
"""

import logging
from pathlib import Path
from typing import List, Sequence, Union

import numpy as np
import pandas as pd
from ncls import NCLS

logger = logging.getLogger(__name__)

GROUP_COLS = ["chromosome", "gene_id", "strand"]
SORT_COLS = ["chromosome", "start", "end", "strand"]
BED_COLS = ["chrom", "start", "end", "name", "score", "strand"]

PathOrFrame = Union[str, Path, pd.DataFrame]


# ============================================================================
# Coordinates and ordering
# ============================================================================


def normalize_coordinates(
    df: pd.DataFrame,
    start0based: bool = True,
    begin_col: str = "begin",
    end_col: str = "end",
) -> pd.DataFrame:
    """Add 0-based half-open ``start``/``end`` columns.

    A 1-based inclusive interval ``[begin, end]`` and a 0-based half-open
    interval ``[begin - 1, end)`` describe the same bases, so only the
    start moves.
    """
    out = df.copy()
    begin = pd.to_numeric(out[begin_col], errors="coerce")
    out["start"] = begin if start0based else begin - 1
    out["end"] = pd.to_numeric(out[end_col], errors="coerce")
    return out


def genome_sort(df: pd.DataFrame) -> pd.DataFrame:
    """Sort windows by chromosome label, then start (stable on end and strand)."""
    keys = df[SORT_COLS].copy()
    keys["chromosome"] = keys["chromosome"].astype(str)
    order = keys.sort_values(SORT_COLS, kind="mergesort").index
    return df.loc[order]


# ============================================================================
# Overlap counting
# ============================================================================


def count_group_overlaps(
    df: pd.DataFrame,
    group_cols: Sequence[str] = GROUP_COLS,
    start_col: str = "start",
    end_col: str = "end",
) -> np.ndarray:
    """Count, for every interval, the intervals in its group that intersect it.

    The interval itself is included, so every count is at least 1.

    Each group is shifted into its own coordinate band so that a single
    NCLS index answers all groups at once without cross-group hits.

    Parameters
    ----------
    df : pd.DataFrame
        Intervals with grouping columns and 0-based half-open coordinates.
    group_cols : sequence of str
        Columns whose combined value defines a comparison group.
    start_col, end_col : str
        Column names for interval boundaries.

    Returns
    -------
    np.ndarray
        Array of length ``len(df)`` aligned with the row order of ``df``.
    """
    n = len(df)
    if n == 0:
        return np.zeros(0, dtype=np.int64)

    starts = df[start_col].to_numpy(dtype=np.int64)
    ends = df[end_col].to_numpy(dtype=np.int64)
    group_codes = df.groupby(list(group_cols), sort=False, dropna=False).ngroup().to_numpy(dtype=np.int64)

    # bands start at the smallest coordinate so negative starts stay in their group
    low = min(int(starts.min()), 0)
    starts = starts - low
    ends = ends - low
    band = int(ends.max()) + 1
    offsets = group_codes * band
    banded_starts = starts + offsets
    banded_ends = ends + offsets
    ids = np.arange(n, dtype=np.int64)

    index = NCLS(banded_starts, banded_ends, ids)
    query_hits, _subject_hits = index.all_overlaps_both(banded_starts, banded_ends, ids)

    counts = np.bincount(np.asarray(query_hits, dtype=np.int64), minlength=n)
    logger.debug(
        f"Counted {int(counts.sum())} overlapping pairs across "
        f"{int(group_codes.max()) + 1} groups"
    )
    return counts


# ============================================================================
# Table I/O
# ============================================================================


def read_table(source: PathOrFrame, name: str = "table") -> pd.DataFrame:
    """Read a TAB-separated table with a header row.

    Gzip-compressed files are detected from the ``.gz`` extension.
    DataFrames are returned as a copy.
    """
    if isinstance(source, pd.DataFrame):
        return source.copy()
    path = Path(source)
    logger.info(f"Reading {name} from {path}")
    return pd.read_csv(path, sep="\t", header=0, compression="infer")


def index_by_first_column(df: pd.DataFrame) -> pd.DataFrame:
    """Use the first column as a string index and drop it from the columns."""
    ids = df.iloc[:, 0].astype(str)
    out = df.iloc[:, 1:].copy()
    out.index = pd.Index(ids.to_numpy(), name=df.columns[0])
    return out


def write_table(df: pd.DataFrame, path: Union[str, Path], index: bool = False) -> Path:
    """Write a TAB-separated table with a header row."""
    path = Path(path)
    df.to_csv(path, sep="\t", index=index, na_rep="NA")
    return path


def write_bed(bed: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write a BED6 frame (see ``BED_COLS``) without header."""
    path = Path(path)
    bed[BED_COLS].to_csv(path, sep="\t", header=False, index=False)
    logger.info(f"Wrote {len(bed)} intervals to {path}")
    return path


def join_labels(values: Sequence) -> str:
    """Join distinct non-null labels, keeping first-seen order."""
    seen: List[str] = []
    for value in values:
        if pd.isna(value):
            continue
        label = str(value)
        if label not in seen:
            seen.append(label)
    return ",".join(seen)
