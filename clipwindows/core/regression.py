"""
Regression engine contract and PyDESeq2 adapter.

The window pipeline never fits a model itself. It hands the counts,
sample table and design to a ``RegressionEngine`` and reads back, per
window, the log2 fold change, Wald statistic, raw p-value and mean
normalised expression for one treatment-vs-control contrast.

``PyDESeq2Engine`` is the default engine. The dispersion trend it fits
is a policy: ``"parametric"``, ``"mean"``, or ``"auto"`` which fits
both and keeps the one whose gene-wise dispersions sit closer to the
trend (smaller median absolute log residual).
"""

import logging
from typing import Iterable, Optional, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from .exceptions import NormalizationError, ParameterError, RegressionEngineError

logger = logging.getLogger(__name__)

ENGINE_COLUMNS = ["baseMean", "log2FoldChange", "stat", "pvalue"]
FIT_TYPES = ("auto", "parametric", "mean")

Contrast = Tuple[str, str, str]


class RegressionEngine(Protocol):
    """What the window pipeline needs from a negative-binomial GLM engine."""

    def fit(
        self,
        counts: pd.DataFrame,
        sample_table: pd.DataFrame,
        design: str,
        contrast: Contrast,
        size_factors: Optional[pd.Series] = None,
    ) -> pd.DataFrame:
        """Return a frame indexed by window id with ``ENGINE_COLUMNS``."""
        ...


def estimate_size_factors(
    counts: pd.DataFrame,
    window_ids: Optional[Iterable] = None,
) -> pd.Series:
    """
    Median-of-ratios (DESeq2) size factors.

    Args:
        counts: Raw count matrix (windows x samples)
        window_ids: Estimate from these windows only, e.g. to leave strongly
                    bound windows out of the normalisation

    Returns:
        Series of size factors indexed by sample
    """
    if window_ids is not None:
        counts = counts.loc[counts.index.intersection(pd.Index(list(window_ids)), sort=False)]

    # Geometric mean per window over windows expressed in every sample
    usable = counts[(counts > 0).all(axis=1)]
    if usable.empty:
        raise NormalizationError(
            "No window has non-zero counts in every sample; cannot estimate size factors"
        )
    log_counts = np.log(usable.astype(float))
    geo_means = log_counts.mean(axis=1)

    size_factors = np.exp(log_counts.sub(geo_means, axis=0).median(axis=0))
    logger.info(
        f"Size factors from {len(usable)} windows: "
        + ", ".join(f"{s}={v:.3f}" for s, v in size_factors.items())
    )
    return size_factors


def check_engine_output(results: pd.DataFrame, window_ids: pd.Index) -> pd.DataFrame:
    """Validate engine output and align it to ``window_ids``."""
    missing = [c for c in ENGINE_COLUMNS if c not in results.columns]
    if missing:
        raise RegressionEngineError(f"Regression engine output lacks columns: {', '.join(missing)}")
    results = results.copy()
    results.index = results.index.astype(str)
    absent = window_ids.difference(results.index)
    if len(absent):
        raise RegressionEngineError(
            f"Regression engine returned no result for {len(absent)} windows"
        )
    return results.loc[window_ids]


class PyDESeq2Engine:
    """Negative-binomial GLM fitting via PyDESeq2."""

    def __init__(
        self,
        fit_type: str = "auto",
        n_cpus: Optional[int] = None,
        refit_cooks: bool = True,
        quiet: bool = True,
    ):
        if fit_type not in FIT_TYPES:
            raise ParameterError("fit_type", fit_type, " or ".join(FIT_TYPES))
        self.fit_type = fit_type
        self.n_cpus = n_cpus
        self.inference = DefaultInference(n_cpus=n_cpus)
        self.refit_cooks = refit_cooks
        self.quiet = quiet
        self.chosen_fit_type: Optional[str] = None
        self.fit_residuals: dict = {}

    def _dataset(self, counts, sample_table, design, fit_type) -> DeseqDataSet:
        # PyDESeq2 expects samples x genes
        return DeseqDataSet(
            counts=counts.T,
            metadata=sample_table[[design]],
            design_factors=design,
            fit_type=fit_type,
            refit_cooks=self.refit_cooks,
            inference=self.inference,
            quiet=self.quiet,
        )

    @staticmethod
    def _set_size_factors(dds: DeseqDataSet, size_factors: Optional[pd.Series], samples: Sequence[str]):
        if size_factors is None:
            dds.fit_size_factors()
            return
        sf = size_factors.reindex(list(samples)).to_numpy(dtype=float)
        if np.isnan(sf).any() or (sf <= 0).any():
            raise NormalizationError("Size factors must be positive and given for every sample")
        dds.obsm["size_factors"] = sf
        dds.layers["normed_counts"] = dds.X / sf[:, None]

    def _median_residual(self, counts, sample_table, design, fit_type, size_factors) -> float:
        dds = self._dataset(counts, sample_table, design, fit_type)
        self._set_size_factors(dds, size_factors, counts.columns)
        dds.fit_genewise_dispersions()
        dds.fit_dispersion_trend()
        genewise = np.asarray(dds.varm["genewise_dispersions"], dtype=float)
        fitted = np.asarray(dds.varm["fitted_dispersions"], dtype=float)
        ok = np.isfinite(genewise) & np.isfinite(fitted) & (genewise > 0) & (fitted > 0)
        return float(np.median(np.abs(np.log(genewise[ok]) - np.log(fitted[ok]))))

    def choose_fit_type(self, counts, sample_table, design, size_factors=None) -> str:
        """Pick the dispersion trend with the smaller median absolute log residual."""
        if self.fit_type != "auto":
            return self.fit_type
        self.fit_residuals = {
            fit_type: self._median_residual(counts, sample_table, design, fit_type, size_factors)
            for fit_type in ("parametric", "mean")
        }
        chosen = min(self.fit_residuals, key=self.fit_residuals.get)
        logger.info(
            "Dispersion trend residuals: "
            + ", ".join(f"{k}={v:.4f}" for k, v in self.fit_residuals.items())
            + f"; using {chosen} fit"
        )
        return chosen

    def fit(
        self,
        counts: pd.DataFrame,
        sample_table: pd.DataFrame,
        design: str,
        contrast: Contrast,
        size_factors: Optional[pd.Series] = None,
    ) -> pd.DataFrame:
        """
        Fit the GLM and extract Wald test results for ``contrast``.

        Args:
            counts: Count matrix (windows x samples)
            sample_table: Sample metadata indexed like ``counts.columns``
            design: Sample table column used as the design factor
            contrast: ``(factor, treatment, control)``
            size_factors: Precomputed size factors; estimated by PyDESeq2 if None

        Returns:
            DataFrame indexed by window id with baseMean, log2FoldChange, lfcSE, stat, pvalue
        """
        factor, treatment, control = contrast
        levels = set(sample_table[factor].astype(str))
        for level in (treatment, control):
            if level not in levels:
                raise ParameterError("contrast", level, f"one of {sorted(levels)}")

        fit_type = self.choose_fit_type(counts, sample_table, design, size_factors)
        self.chosen_fit_type = fit_type

        logger.info(f"Fitting {counts.shape[0]} windows with PyDESeq2 ({fit_type} dispersion trend)")
        try:
            dds = self._dataset(counts, sample_table, design, fit_type)
            self._set_size_factors(dds, size_factors, counts.columns)
            dds.fit_genewise_dispersions()
            dds.fit_dispersion_trend()
            dds.fit_dispersion_prior()
            dds.fit_MAP_dispersions()
            dds.fit_LFC()
            dds.calculate_cooks()
            if dds.refit_cooks:
                dds.refit()

            stat_res = DeseqStats(
                dds,
                contrast=[factor, treatment, control],
                inference=self.inference,
                quiet=self.quiet,
            )
            stat_res.summary()
        except (ValueError, np.linalg.LinAlgError) as e:
            raise RegressionEngineError(f"PyDESeq2 fit failed: {e}") from e

        results = stat_res.results_df.copy()
        results.index = results.index.astype(str)
        keep = [c for c in ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue"] if c in results.columns]
        return results[keep]
