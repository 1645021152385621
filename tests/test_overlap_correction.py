"""
Unit tests for overlap counting, local Bonferroni correction and FDR.
"""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import false_discovery_control

from clipwindows.core.annotation import read_annotation
from clipwindows.core.enrichment import enrichment_test
from clipwindows.core.exceptions import ParameterError, UndefinedStatisticWarning
from clipwindows.core.genomic_utils import count_group_overlaps
from clipwindows.core.overlap_correction import (
    adjust_pvalues,
    benjamini_hochberg,
    correct_windows,
    independent_filtering,
    overlap_correct,
)


def brute_force_overlaps(df):
    counts = []
    for _, w in df.iterrows():
        same = df[(df["chromosome"] == w["chromosome"]) & (df["gene_id"] == w["gene_id"]) & (df["strand"] == w["strand"])]
        counts.append(int(((same["start"] < w["end"]) & (same["end"] > w["start"])).sum()))
    return np.array(counts)


class TestCountGroupOverlaps:
    """Overlap counts within gene/strand groups."""

    def test_fixture_counts(self, annotation_df):
        annot = read_annotation(annotation_df)
        counts = dict(zip(annot.index, count_group_overlaps(annot)))
        assert counts == {"W1": 2, "W2": 2, "W3": 1, "W4": 2, "W5": 2, "W6": 1}

    def test_book_ended_windows_do_not_overlap(self):
        df = pd.DataFrame({
            "chromosome": ["chr1", "chr1"],
            "gene_id": ["G", "G"],
            "strand": ["+", "+"],
            "start": [100, 150],
            "end": [150, 200],
        })
        assert list(count_group_overlaps(df)) == [1, 1]

    def test_other_groups_ignored(self):
        df = pd.DataFrame({
            "chromosome": ["chr1", "chr1", "chr1"],
            "gene_id": ["G", "G", "H"],
            "strand": ["+", "-", "+"],
            "start": [100, 100, 100],
            "end": [150, 150, 150],
        })
        assert list(count_group_overlaps(df)) == [1, 1, 1]

    def test_negative_start_stays_in_group(self):
        df = pd.DataFrame({
            "chromosome": ["chr1", "chr1"],
            "gene_id": ["G", "H"],
            "strand": ["+", "+"],
            "start": [0, -5],
            "end": [10, 3],
        })
        assert list(count_group_overlaps(df)) == [1, 1]

    def test_matches_brute_force(self):
        rng = np.random.default_rng(7)
        n = 300
        starts = rng.integers(0, 2000, n)
        df = pd.DataFrame({
            "chromosome": rng.choice(["chr1", "chr2"], n),
            "gene_id": rng.choice(["G1", "G2", "G3"], n),
            "strand": rng.choice(["+", "-"], n),
            "start": starts,
            "end": starts + rng.integers(1, 120, n),
        })
        counts = count_group_overlaps(df)
        assert (counts >= 1).all()
        np.testing.assert_array_equal(counts, brute_force_overlaps(df))

    def test_empty(self):
        df = pd.DataFrame(columns=["chromosome", "gene_id", "strand", "start", "end"])
        assert len(count_group_overlaps(df)) == 0


class TestOverlapCorrect:

    def test_multiplies_and_caps(self):
        result = overlap_correct([0.01, 0.4, 0.2], [3, 3, 5])
        np.testing.assert_allclose(result, [0.03, 1.0, 1.0])

    def test_never_below_input(self):
        rng = np.random.default_rng(1)
        p = rng.uniform(0, 1, 100)
        k = rng.integers(1, 10, 100)
        corrected = overlap_correct(p, k)
        assert (corrected >= p).all()
        assert (corrected <= 1).all()

    def test_na_kept(self):
        assert np.isnan(overlap_correct([np.nan], [2])[0])


class TestBenjaminiHochberg:

    def test_matches_scipy(self):
        rng = np.random.default_rng(3)
        p = rng.uniform(0, 0.2, 50)
        np.testing.assert_allclose(benjamini_hochberg(p), false_discovery_control(p))

    def test_na_excluded_from_ranking(self):
        p = np.array([0.01, np.nan, 0.04])
        adjusted = benjamini_hochberg(p)
        assert np.isnan(adjusted[1])
        np.testing.assert_allclose(adjusted[[0, 2]], [0.02, 0.04])

    def test_all_na(self):
        assert np.isnan(benjamini_hochberg([np.nan, np.nan])).all()

    def test_ties_deterministic(self):
        p = np.array([0.03, 0.01, 0.03, 0.01])
        forward = benjamini_hochberg(p, order_key=[0, 1, 2, 3])
        again = benjamini_hochberg(p, order_key=[0, 1, 2, 3])
        np.testing.assert_array_equal(forward, again)
        assert forward[0] == forward[2]
        assert forward[1] == forward[3]

    def test_unknown_method(self):
        with pytest.raises(ParameterError):
            adjust_pvalues([0.1], method="holm")


class TestIndependentFiltering:

    def test_low_expression_windows_filtered(self):
        base_mean = np.array([0.0] * 10 + [50.0] * 10)
        p = np.array([0.9] * 10 + [0.001] * 10)
        adjusted = independent_filtering(p, base_mean, alpha=0.1)
        assert np.isnan(adjusted[:10]).all()
        assert (adjusted[10:] < 0.1).all()

    def test_requires_covariate(self):
        with pytest.raises(ParameterError, match="covariate"):
            adjust_pvalues([0.1], method="independent_filtering")


class TestCorrectWindows:

    @pytest.fixture
    def tested(self, annotation_df, engine_results):
        with pytest.warns(UndefinedStatisticWarning):
            return enrichment_test(engine_results, read_annotation(annotation_df))

    def test_columns_added(self, tested):
        corrected = correct_windows(tested)
        for col in ["n_overlaps", "pvalue_corrected", "padj"]:
            assert col in corrected.columns
        assert "padj" not in tested.columns

    def test_values(self, tested):
        corrected = correct_windows(tested)
        assert corrected.loc["W1", "n_overlaps"] == 2
        assert corrected.loc["W1", "pvalue_corrected"] == pytest.approx(0.001)
        assert corrected.loc["W2", "pvalue_corrected"] == pytest.approx(0.002)
        assert corrected.loc["W1", "padj"] == pytest.approx(0.005)
        assert corrected.loc["W2", "padj"] == pytest.approx(0.005)
        assert corrected.loc["W4", "padj"] == pytest.approx(0.75)
        assert corrected.loc["W3", "padj"] == 1.0
        assert np.isnan(corrected.loc["W6", "padj"])

    def test_corrected_bounds(self, tested):
        corrected = correct_windows(tested).dropna(subset=["pvalue_onesided"])
        assert (corrected["pvalue_corrected"] >= corrected["pvalue_onesided"]).all()
        assert (corrected["pvalue_corrected"] <= 1).all()
