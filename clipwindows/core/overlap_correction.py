"""
Overlap-aware multiple testing correction.

Neighbouring sliding windows share crosslink sites, so their tests are
not independent. Each window's one-sided p-value is first multiplied by
the number of windows of the same gene it overlaps (itself included),
a local Bonferroni correction that needs no model of the correlation.
A single FDR adjustment over all corrected p-values follows.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from .exceptions import ParameterError, validate_numeric_param
from .genomic_utils import GROUP_COLS, count_group_overlaps

logger = logging.getLogger(__name__)

FDR_METHODS = ("BH", "independent_filtering")

# Quantile grid for the baseMean filter, as in DESeq2's results()
_N_THETA = 50


def overlap_correct(pvalues, n_overlaps) -> np.ndarray:
    """Local Bonferroni: ``min(1, p * k)``. NA stays NA."""
    pvalues = np.asarray(pvalues, dtype=float)
    n_overlaps = np.asarray(n_overlaps, dtype=float)
    return np.minimum(1.0, pvalues * n_overlaps)


def benjamini_hochberg(pvalues, order_key=None) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    NA p-values are left out of the ranking and come back as NA. Equal
    p-values are ranked by ``order_key`` (genomic order by default), so
    the result does not depend on input row order.
    """
    pvalues = np.asarray(pvalues, dtype=float)
    adjusted = np.full(pvalues.shape, np.nan)
    defined = ~np.isnan(pvalues)
    m = int(defined.sum())
    if m == 0:
        return adjusted

    key = np.arange(len(pvalues)) if order_key is None else np.asarray(order_key)
    p = pvalues[defined]
    order = np.lexsort((key[defined], p))

    ranked = p[order] * m / np.arange(1, m + 1)
    ranked = np.minimum.accumulate(ranked[::-1])[::-1]

    result = np.empty(m)
    result[order] = np.clip(ranked, 0.0, 1.0)
    adjusted[defined] = result
    return adjusted


def independent_filtering(pvalues, covariate, alpha: float = 0.1, order_key=None) -> np.ndarray:
    """
    BH adjustment restricted to windows above a mean-expression cutoff.

    Tries cutoffs on a quantile grid of ``covariate`` (usually baseMean)
    and keeps the one giving the most rejections at ``alpha``; ties go to
    the lowest cutoff. Windows below the chosen cutoff get NA.
    """
    pvalues = np.asarray(pvalues, dtype=float)
    covariate = np.asarray(covariate, dtype=float)
    defined = ~np.isnan(pvalues) & ~np.isnan(covariate)
    if not defined.any():
        return np.full(pvalues.shape, np.nan)

    lower = float(np.mean(covariate[defined] == 0))
    upper = 0.95 if lower < 0.95 else 1.0
    thetas = np.linspace(lower, upper, _N_THETA)
    cutoffs = np.quantile(covariate[defined], thetas)

    best = None
    best_rejections = -1
    best_theta = thetas[0]
    for theta, cutoff in zip(thetas, cutoffs):
        use = defined & (covariate >= cutoff)
        candidate = benjamini_hochberg(np.where(use, pvalues, np.nan), order_key=order_key)
        rejections = int(np.sum(candidate < alpha))
        if rejections > best_rejections:
            best, best_rejections, best_theta = candidate, rejections, theta

    logger.info(
        f"Independent filtering: baseMean quantile {best_theta:.3f} gives {best_rejections} "
        f"rejections at alpha={alpha}"
    )
    return best


def adjust_pvalues(
    pvalues,
    method: str = "BH",
    order_key=None,
    covariate=None,
    alpha: float = 0.1,
) -> np.ndarray:
    """Global FDR adjustment with the given method."""
    if method == "BH":
        return benjamini_hochberg(pvalues, order_key=order_key)
    if method == "independent_filtering":
        if covariate is None:
            raise ParameterError("covariate", None, "mean expression values for independent filtering")
        return independent_filtering(pvalues, covariate, alpha=alpha, order_key=order_key)
    raise ParameterError("method", method, " or ".join(FDR_METHODS))


def correct_windows(
    results: pd.DataFrame,
    fdr_method: str = "BH",
    alpha: float = 0.1,
    pvalue_col: str = "pvalue_onesided",
) -> pd.DataFrame:
    """
    Add ``n_overlaps``, ``pvalue_corrected`` and ``padj`` to a window result table.

    Args:
        results: Window results in genome order with ``start``/``end`` and
                 the gene grouping columns
        fdr_method: "BH" or "independent_filtering" (uses ``baseMean``)
        alpha: Target FDR used to choose the independent filtering cutoff
        pvalue_col: Column holding the p-values to correct

    Returns:
        New DataFrame with the added columns
    """
    validate_numeric_param(alpha, "alpha", min_val=0, max_val=1)
    out = results.copy()

    out["n_overlaps"] = count_group_overlaps(out, group_cols=GROUP_COLS)
    out["pvalue_corrected"] = overlap_correct(out[pvalue_col], out["n_overlaps"])

    covariate: Optional[np.ndarray] = None
    if fdr_method == "independent_filtering":
        covariate = out["baseMean"].to_numpy(dtype=float)

    # Rows are in genome order, so position is the genomic tie-break
    out["padj"] = adjust_pvalues(
        out["pvalue_corrected"],
        method=fdr_method,
        order_key=np.arange(len(out)),
        covariate=covariate,
        alpha=alpha,
    )

    median_k = float(np.median(out["n_overlaps"])) if len(out) else 0.0
    logger.info(
        f"Overlap correction: median overlap count {median_k:.1f}, "
        f"{int((out['padj'] < alpha).sum())} windows with padj < {alpha}"
    )
    return out
