"""
Binding region extraction.

Significant windows of the same gene and strand that overlap are merged
into one region spanning their union; the region keeps summary
statistics of its member windows.
"""

import logging

import numpy as np
import pandas as pd

from .exceptions import validate_dataframe, validate_numeric_param
from .genomic_utils import GROUP_COLS, genome_sort, join_labels

logger = logging.getLogger(__name__)

REGION_COLUMNS = [
    "region_id",
    "chromosome",
    "start",
    "end",
    "strand",
    "gene_id",
    "gene_name",
    "gene_type",
    "gene_region",
    "windows_in_region",
    "padj_min",
    "padj_mean",
    "padj_max",
    "log2FoldChange_min",
    "log2FoldChange_mean",
    "log2FoldChange_max",
    "unique_ids",
]


def mark_significant(
    results: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 0.5,
) -> pd.DataFrame:
    """Flag windows with ``padj < padj_threshold`` and ``log2FoldChange > lfc_threshold``."""
    validate_numeric_param(padj_threshold, "padj_threshold", min_val=0, max_val=1)
    out = results.copy()
    out["significant"] = (
        (out["padj"] < padj_threshold) & (out["log2FoldChange"] > lfc_threshold)
    ).fillna(False).astype(bool)
    return out


def _label_regions(starts: np.ndarray, ends: np.ndarray, groups: np.ndarray) -> np.ndarray:
    """Sweep windows sorted by (group, start); new label when the span is left."""
    labels = np.empty(len(starts), dtype=np.int64)
    label = -1
    current_group = None
    current_end = None
    for i in range(len(starts)):
        if groups[i] != current_group or starts[i] >= current_end:
            label += 1
            current_group = groups[i]
            current_end = ends[i]
        else:
            current_end = max(current_end, ends[i])
        labels[i] = label
    return labels


def extract_regions(
    results: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 0.5,
) -> pd.DataFrame:
    """
    Merge significant, overlapping windows of each gene into regions.

    Args:
        results: Window result table with annotation columns, ``padj`` and
                 ``log2FoldChange``
        padj_threshold: Windows need ``padj`` below this
        lfc_threshold: Windows need ``log2FoldChange`` above this

    Returns:
        One row per region (see ``REGION_COLUMNS``) in genome order. Genes
        without significant windows contribute no rows.
    """
    validate_dataframe(
        results,
        "window results",
        required_columns=GROUP_COLS + ["start", "end", "unique_id", "padj", "log2FoldChange"],
    )
    flagged = mark_significant(results, padj_threshold, lfc_threshold)
    sig = flagged[flagged["significant"]]
    if sig.empty:
        logger.info("No significant windows; no regions extracted")
        return pd.DataFrame(columns=REGION_COLUMNS)

    sig = sig.sort_values(GROUP_COLS + ["start", "end"], kind="mergesort")
    group_codes = sig.groupby(GROUP_COLS, sort=False).ngroup().to_numpy()
    sig = sig.assign(
        _region=_label_regions(
            sig["start"].to_numpy(), sig["end"].to_numpy(), group_codes
        )
    )

    regions = sig.groupby("_region", sort=False).agg(
        chromosome=("chromosome", "first"),
        start=("start", "min"),
        end=("end", "max"),
        strand=("strand", "first"),
        gene_id=("gene_id", "first"),
        gene_name=("gene_name", "first"),
        gene_type=("gene_type", "first"),
        gene_region=("gene_region", join_labels),
        windows_in_region=("unique_id", "size"),
        padj_min=("padj", "min"),
        padj_mean=("padj", "mean"),
        padj_max=("padj", "max"),
        log2FoldChange_min=("log2FoldChange", "min"),
        log2FoldChange_mean=("log2FoldChange", "mean"),
        log2FoldChange_max=("log2FoldChange", "max"),
        unique_ids=("unique_id", join_labels),
    ).reset_index(drop=True)

    regions = genome_sort(regions).reset_index(drop=True)

    # numbered per gene across strands and chromosomes so ids stay unique
    region_number = regions.groupby("gene_id", sort=False).cumcount() + 1
    regions["region_id"] = regions["gene_id"].astype(str) + "_region" + region_number.astype(str)
    logger.info(
        f"Extracted {len(regions)} regions from {len(sig)} significant windows "
        f"in {regions['gene_id'].nunique()} genes"
    )
    return regions[REGION_COLUMNS]


def regions_to_bed(regions: pd.DataFrame) -> pd.DataFrame:
    """BED6 view of regions; score is ``-log10`` of the best adjusted p-value."""
    padj = regions["padj_min"].astype(float).clip(lower=np.finfo(float).tiny)
    return pd.DataFrame({
        "chrom": regions["chromosome"].astype(str),
        "start": regions["start"].astype("int64"),
        "end": regions["end"].astype("int64"),
        "name": regions["region_id"],
        "score": (-np.log10(padj)).round(3),
        "strand": regions["strand"],
    })
