"""
Unit tests for the regression engine adapter and size factors.
"""

import numpy as np
import pandas as pd
import pytest

from clipwindows.core.exceptions import NormalizationError, ParameterError, RegressionEngineError
from clipwindows.core.regression import (
    ENGINE_COLUMNS,
    PyDESeq2Engine,
    check_engine_output,
    estimate_size_factors,
)


class TestEstimateSizeFactors:

    def test_doubled_library(self):
        counts = pd.DataFrame(
            {"s1": [10, 20, 30, 40], "s2": [20, 40, 60, 80]},
            index=["w1", "w2", "w3", "w4"],
        )
        sf = estimate_size_factors(counts)
        assert sf["s2"] / sf["s1"] == pytest.approx(2.0)
        assert sf["s1"] * sf["s2"] == pytest.approx(1.0)

    def test_window_subset(self):
        counts = pd.DataFrame(
            {"s1": [10, 20, 500], "s2": [10, 20, 5]},
            index=["w1", "w2", "bound"],
        )
        sf = estimate_size_factors(counts, window_ids=["w1", "w2"])
        np.testing.assert_allclose(sf.to_numpy(), [1.0, 1.0])

    def test_zero_rows_skipped(self):
        counts = pd.DataFrame({"s1": [0, 10], "s2": [5, 10]}, index=["w1", "w2"])
        sf = estimate_size_factors(counts)
        np.testing.assert_allclose(sf.to_numpy(), [1.0, 1.0])

    def test_no_usable_window(self):
        counts = pd.DataFrame({"s1": [0, 10], "s2": [5, 0]}, index=["w1", "w2"])
        with pytest.raises(NormalizationError):
            estimate_size_factors(counts)


class TestCheckEngineOutput:

    def test_aligns_to_window_order(self, engine_results):
        ids = pd.Index(["W3", "W1"])
        aligned = check_engine_output(engine_results, ids)
        assert list(aligned.index) == ["W3", "W1"]
        assert set(ENGINE_COLUMNS) <= set(aligned.columns)

    def test_missing_column(self, engine_results):
        with pytest.raises(RegressionEngineError, match="baseMean"):
            check_engine_output(engine_results.drop(columns=["baseMean"]), engine_results.index)


def simulated_windows(seed=0):
    """Six samples, 200 windows, the first 20 enriched fourfold in IP."""
    rng = np.random.default_rng(seed)
    n_windows = 200
    means = rng.uniform(20, 200, n_windows)
    enriched = np.zeros(n_windows, dtype=bool)
    enriched[:20] = True

    samples = ["ip1", "ip2", "ip3", "smi1", "smi2", "smi3"]
    data = {}
    for s in samples:
        mu = means.copy()
        if s.startswith("ip"):
            mu[enriched] *= 4.0
        data[s] = rng.negative_binomial(10, 10 / (10 + mu))
    counts = pd.DataFrame(data, index=[f"w{i}" for i in range(n_windows)])
    sample_table = pd.DataFrame({"condition": ["IP"] * 3 + ["SMI"] * 3}, index=samples)
    return counts, sample_table


class TestPyDESeq2Engine:

    def test_invalid_fit_type(self):
        with pytest.raises(ParameterError, match="fit_type"):
            PyDESeq2Engine(fit_type="local")

    def test_unknown_contrast_level(self, counts_df, sample_table):
        engine = PyDESeq2Engine(fit_type="parametric")
        counts = counts_df.set_index("unique_id")
        with pytest.raises(ParameterError, match="contrast"):
            engine.fit(counts, sample_table, "condition", ("condition", "IP", "input"))

    def test_fit_on_simulated_windows(self):
        counts, sample_table = simulated_windows()
        engine = PyDESeq2Engine(fit_type="parametric")
        results = engine.fit(counts, sample_table, "condition", ("condition", "IP", "SMI"))

        assert set(ENGINE_COLUMNS) <= set(results.columns)
        assert list(results.index) == list(counts.index)
        assert engine.chosen_fit_type == "parametric"
        lfc = results["log2FoldChange"]
        assert lfc.iloc[:20].mean() > lfc.iloc[20:].mean() + 1.0

    def test_auto_fit_with_cpu_limit(self):
        counts, sample_table = simulated_windows(seed=1)
        engine = PyDESeq2Engine(fit_type="auto", n_cpus=1)
        results = engine.fit(counts, sample_table, "condition", ("condition", "IP", "SMI"))

        assert engine.chosen_fit_type in ("parametric", "mean")
        assert set(engine.fit_residuals) == {"parametric", "mean"}
        assert results["pvalue"].notna().any()
