"""
Window count dataset.

Aligns a window-by-sample count matrix with the window annotation and
the sample table, validating everything once so downstream stages can
trust the shapes and orders they receive.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List

import numpy as np
import pandas as pd

from .annotation import read_annotation
from .exceptions import (
    EmptyIntersectionError,
    IdentifierMismatchWarning,
    OrderMismatchError,
    SchemaError,
    warn,
)
from .genomic_utils import PathOrFrame, index_by_first_column, read_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowDataset:
    """Counts, sample table and annotation for a set of windows.

    ``counts`` rows and ``annotation`` rows share the same ids in the same
    genome order; ``counts`` columns match ``sample_table`` rows in order.
    """
    counts: pd.DataFrame
    sample_table: pd.DataFrame
    annotation: pd.DataFrame
    design: str = "condition"

    @property
    def window_ids(self) -> pd.Index:
        return self.counts.index

    @property
    def samples(self) -> List[str]:
        return list(self.counts.columns)

    @property
    def n_windows(self) -> int:
        return len(self.counts)

    def __len__(self) -> int:
        return self.n_windows

    def subset(self, window_ids: Iterable) -> "WindowDataset":
        """Return a new dataset restricted to ``window_ids``, keeping genome order."""
        keep = self.counts.index.isin(pd.Index(list(window_ids)))
        return WindowDataset(
            counts=self.counts.loc[keep].copy(),
            sample_table=self.sample_table.copy(),
            annotation=self.annotation.loc[keep].copy(),
            design=self.design,
        )

    def groups(self) -> pd.Series:
        """Experimental group per sample, in count-column order."""
        return self.sample_table[self.design]


def _prepare_counts(counts: PathOrFrame, tidy: bool) -> pd.DataFrame:
    table = read_table(counts, name="count matrix")
    if tidy:
        table = index_by_first_column(table)
    elif table.index.hasnans:
        raise SchemaError("count matrix", ["row names cannot be empty"])
    table.index = table.index.astype(str)

    violations = []
    if table.shape[1] < 2:
        violations.append(f"needs more than one sample column, found {table.shape[1]}")
    if table.index.duplicated().any():
        dupes = table.index[table.index.duplicated()].unique()
        violations.append("duplicate window ids: " + ", ".join(map(str, dupes[:10])))

    numeric = table.apply(pd.to_numeric, errors="coerce")
    bad_cols = [c for c in table.columns if numeric[c].isna().any()]
    if bad_cols:
        violations.append("non-numeric or missing counts in columns: " + ", ".join(map(str, bad_cols)))
    else:
        values = numeric.to_numpy(dtype=float)
        if (values < 0).any():
            violations.append("counts must be non-negative")
        if not np.all(np.equal(np.mod(values, 1), 0)):
            violations.append("counts must be integers")

    if violations:
        raise SchemaError("count matrix", violations)
    return numeric.astype("int64")


def _align_samples(sample_table: pd.DataFrame, count_columns: List[str], design: str) -> pd.DataFrame:
    sample_table = sample_table.copy()

    if isinstance(sample_table.index, pd.RangeIndex) and len(sample_table) == len(count_columns):
        sample_table.index = pd.Index(count_columns)
    sample_table.index = sample_table.index.astype(str)

    names = list(sample_table.index)
    if sorted(names) == sorted(count_columns):
        if names != count_columns:
            raise OrderMismatchError(names, count_columns)
    else:
        violations = []
        missing = [c for c in count_columns if c not in set(names)]
        extra = [n for n in names if n not in set(count_columns)]
        if missing:
            violations.append("count columns without a sample table row: " + ", ".join(missing))
        if extra:
            violations.append("sample table rows without a count column: " + ", ".join(extra))
        if not violations:
            violations.append("duplicate sample names")
        raise SchemaError("sample table", violations)

    if design not in sample_table.columns:
        raise SchemaError(
            "sample table",
            [f"design column '{design}' not found. Available columns: {list(sample_table.columns)}"],
        )
    return sample_table


def assemble_dataset(
    counts: PathOrFrame,
    sample_table: pd.DataFrame,
    annotation: PathOrFrame,
    design: str = "condition",
    tidy: bool = True,
    start0based: bool = True,
    check_window_number: bool = False,
) -> WindowDataset:
    """
    Build a ``WindowDataset`` from raw counts, sample metadata and annotation.

    Args:
        counts: Count table (DataFrame or TSV path); first column holds window
                ids when ``tidy`` is True, otherwise the index does
        sample_table: One row per sample, with the ``design`` column
        annotation: Annotation DataFrame or path, see ``read_annotation``
        design: Sample table column holding the experimental group
        tidy: Whether the first column of ``counts`` holds window ids
        start0based: Coordinate convention of the annotation ``begin`` column
        check_window_number: Also require ``window_number`` in the annotation

    Returns:
        WindowDataset with rows in genome order
    """
    count_table = _prepare_counts(counts, tidy=tidy)
    annot = read_annotation(
        annotation,
        check_window_number=check_window_number,
        start0based=start0based,
    )

    common = annot.index.intersection(count_table.index, sort=False)
    if len(common) == 0:
        raise EmptyIntersectionError("the count matrix", "the annotation")

    no_annotation = len(count_table) - len(common)
    no_counts = len(annot) - len(common)
    if no_annotation or no_counts:
        warn(
            f"Window ids differ between count matrix and annotation: "
            f"{no_annotation} count rows have no annotation, "
            f"{no_counts} annotated windows have no counts. "
            f"Keeping the {len(common)} common windows.",
            IdentifierMismatchWarning,
            log=logger,
        )

    # ``common`` follows the annotation's genome order
    annot = annot.loc[common]
    count_table = count_table.loc[common]

    samples = _align_samples(sample_table, list(count_table.columns), design)

    logger.info(f"Assembled dataset: {len(count_table)} windows x {count_table.shape[1]} samples")
    return WindowDataset(counts=count_table, sample_table=samples, annotation=annot, design=design)
