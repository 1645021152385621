"""
Low-count window prefiltering.

Two independent policies:
- sum threshold on the raw counts (the usual ``rowSums`` prefilter)
- max-height threshold on the per-nucleotide maximum crosslink count
  matrix written alongside the window counts
"""

import logging
from typing import Union

import pandas as pd

from .dataset import WindowDataset
from .exceptions import EmptyResultError, ParameterError, validate_numeric_param
from .genomic_utils import PathOrFrame, index_by_first_column, read_table

logger = logging.getLogger(__name__)


def filter_by_sum(dataset: WindowDataset, min_count: Union[int, float]) -> WindowDataset:
    """Keep windows whose total count over all samples is >= ``min_count``."""
    validate_numeric_param(min_count, "min_count", min_val=0)

    keep = dataset.counts.sum(axis=1) >= min_count
    filtered = dataset.subset(dataset.window_ids[keep.to_numpy()])
    logger.info(
        f"Sum prefilter (>= {min_count}): kept {filtered.n_windows} of {dataset.n_windows} windows"
    )
    return filtered


def load_max_counts(max_counts: PathOrFrame) -> pd.DataFrame:
    """Load a max-height matrix keyed by window id in the first column."""
    if isinstance(max_counts, pd.DataFrame):
        table = max_counts.copy()
        table.index = table.index.astype(str)
        return table
    return index_by_first_column(read_table(max_counts, name="max count matrix"))


def filter_by_max_height(
    dataset: WindowDataset,
    max_counts: PathOrFrame,
    count_thresh: Union[int, float],
    nsamples: int,
) -> WindowDataset:
    """
    Keep windows whose max crosslink height reaches ``count_thresh`` in enough samples.

    A window is kept when ``max_counts >= count_thresh`` holds in at least
    ``nsamples`` columns of the max-height matrix.

    Args:
        dataset: Dataset to filter
        max_counts: Max-height matrix (DataFrame indexed by window id, or TSV
                    path with window ids in the first column)
        count_thresh: Max count threshold
        nsamples: Number of samples that must reach ``count_thresh``

    Returns:
        New, filtered WindowDataset

    Raises:
        ParameterError: If ``nsamples`` exceeds the number of matrix columns
        EmptyResultError: If no passing window is present in ``dataset``
    """
    validate_numeric_param(count_thresh, "count_thresh", min_val=0)
    validate_numeric_param(nsamples, "nsamples", min_val=0)

    heights = load_max_counts(max_counts)
    if nsamples > heights.shape[1]:
        raise ParameterError(
            "nsamples", nsamples, f"<= number of columns in the max count matrix ({heights.shape[1]})"
        )

    passing = heights.index[(heights >= count_thresh).sum(axis=1) >= nsamples]
    common = dataset.window_ids.intersection(passing, sort=False)
    if len(common) == 0:
        raise EmptyResultError(
            "There are no common window ids between the dataset and the windows "
            f"passing the max count filter (count_thresh={count_thresh}, nsamples={nsamples})"
        )

    filtered = dataset.subset(common)
    logger.info(
        f"Max-height prefilter (>= {count_thresh} in >= {nsamples} samples): "
        f"kept {filtered.n_windows} of {dataset.n_windows} windows"
    )
    return filtered
