"""
One-sided enrichment test on regression engine output.

CLIP windows are only interesting when enriched in the treatment (IP)
over the control (size-matched input), so the two-sided Wald p-value
is turned into an upper-tail p-value. The Wald statistic is symmetric
about zero under the null, so the upper tail is half the two-sided
p-value when the fold change is positive. Windows with non-positive
fold change get p = 1 and stay in the table.
"""

import logging

import numpy as np
import pandas as pd

from .exceptions import UndefinedStatisticWarning, warn
from .regression import check_engine_output

logger = logging.getLogger(__name__)


def one_sided_pvalues(log2fc, pvalue) -> np.ndarray:
    """Right-tailed p-values from two-sided ones. NA in either input gives NA."""
    log2fc = np.asarray(log2fc, dtype=float)
    pvalue = np.asarray(pvalue, dtype=float)
    with np.errstate(invalid="ignore"):
        one_sided = np.where(log2fc > 0, pvalue / 2.0, 1.0)
    one_sided[np.isnan(log2fc) | np.isnan(pvalue)] = np.nan
    return one_sided


def enrichment_test(engine_results: pd.DataFrame, annotation: pd.DataFrame) -> pd.DataFrame:
    """
    Build the per-window result table with one-sided p-values.

    Args:
        engine_results: Regression engine output indexed by window id
        annotation: Window annotation in genome order

    Returns:
        DataFrame with annotation columns, engine columns and
        ``pvalue_onesided``; one row per annotated window, same order
    """
    stats = check_engine_output(engine_results, annotation.index)
    results = annotation.join(stats, how="left", rsuffix="_engine")

    undefined = results["pvalue"].isna() | results["log2FoldChange"].isna()
    if undefined.any():
        warn(
            f"{int(undefined.sum())} of {len(results)} windows have undefined "
            "regression statistics; they are kept with undefined p-values",
            UndefinedStatisticWarning,
            log=logger,
        )

    results["pvalue_onesided"] = one_sided_pvalues(results["log2FoldChange"], results["pvalue"])
    n_up = int((results["log2FoldChange"] > 0).sum())
    logger.info(f"One-sided test: {n_up} of {len(results)} windows with positive fold change")
    return results
