"""
Window Enrichment Pipeline

Runs the complete sliding-window analysis for one treatment-vs-control
contrast:
1. Prefilter low-count windows (count sum or max-height matrix)
2. Optionally estimate size factors from a subset of windows
3. Fit the regression engine (PyDESeq2 by default)
4. One-sided enrichment test
5. Overlap correction and global FDR
6. Flag significant windows and merge them into regions
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from ..config import settings
from .dataset import WindowDataset, assemble_dataset
from .enrichment import enrichment_test
from .genomic_utils import PathOrFrame, read_table, write_bed, write_table
from .overlap_correction import correct_windows
from .prefilter import filter_by_max_height, filter_by_sum
from .regions import extract_regions, mark_significant, regions_to_bed
from .regression import PyDESeq2Engine, RegressionEngine, estimate_size_factors

logger = logging.getLogger(__name__)


@dataclass
class WindowAnalysisConfig:
    """Configuration for one window enrichment analysis."""
    treatment: str  # e.g. IP
    control: str  # e.g. SMI
    design: str = field(default_factory=lambda: settings.design)

    # Prefilter; max-height filtering replaces the sum filter when given
    min_count: Optional[int] = field(default_factory=lambda: settings.min_count)
    max_counts: Optional[PathOrFrame] = None
    count_thresh: int = 2
    nsamples: int = 1

    # Size factors from these windows only (None = all windows)
    size_factor_windows: Optional[Iterable] = None

    # Multiple testing and significance
    fdr_method: str = field(default_factory=lambda: settings.fdr_method)
    fdr_alpha: float = field(default_factory=lambda: settings.fdr_alpha)
    padj_threshold: float = field(default_factory=lambda: settings.padj_threshold)
    lfc_threshold: float = field(default_factory=lambda: settings.lfc_threshold)

    # Output
    output_dir: Optional[str] = None

    @property
    def contrast(self):
        return (self.design, self.treatment, self.control)


@dataclass
class WindowAnalysisResults:
    """Results from a window enrichment analysis."""
    contrast: str
    total_windows: int
    tested_windows: int
    significant_windows: int
    regions_found: int

    windows: pd.DataFrame = field(default_factory=pd.DataFrame)
    regions: pd.DataFrame = field(default_factory=pd.DataFrame)

    output_dir: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "contrast": self.contrast,
            "total_windows": self.total_windows,
            "tested_windows": self.tested_windows,
            "significant_windows": self.significant_windows,
            "regions_found": self.regions_found,
        }


class WindowAnalyzer:
    """
    Sliding-window enrichment analysis.

    The regression engine is pluggable; anything following the
    ``RegressionEngine`` protocol can replace PyDESeq2.
    """

    def __init__(self, engine: Optional[RegressionEngine] = None):
        self.engine = engine if engine is not None else PyDESeq2Engine(
            fit_type=settings.fit_type, n_cpus=settings.n_cpus
        )

    def prefilter(self, dataset: WindowDataset, config: WindowAnalysisConfig) -> WindowDataset:
        if config.max_counts is not None:
            return filter_by_max_height(
                dataset, config.max_counts, config.count_thresh, config.nsamples
            )
        if config.min_count is not None:
            return filter_by_sum(dataset, config.min_count)
        return dataset

    def run(self, dataset: WindowDataset, config: WindowAnalysisConfig) -> WindowAnalysisResults:
        """
        Run the window analysis on an assembled dataset.

        Args:
            dataset: Output of ``assemble_dataset``
            config: Analysis configuration

        Returns:
            WindowAnalysisResults object
        """
        contrast_name = f"{config.treatment}_vs_{config.control}"
        logger.info(f"Starting window analysis: {contrast_name}")

        # Step 1: Prefilter
        filtered = self.prefilter(dataset, config)

        # Step 2: Size factors
        size_factors = None
        if config.size_factor_windows is not None:
            size_factors = estimate_size_factors(filtered.counts, config.size_factor_windows)

        # Step 3: Regression engine
        logger.info("Running regression engine...")
        engine_results = self.engine.fit(
            filtered.counts,
            filtered.sample_table,
            filtered.design,
            config.contrast,
            size_factors=size_factors,
        )

        # Step 4-5: One-sided test, overlap correction, FDR
        windows = enrichment_test(engine_results, filtered.annotation)
        windows = correct_windows(windows, fdr_method=config.fdr_method, alpha=config.fdr_alpha)

        # Step 6: Significance and regions
        windows = mark_significant(windows, config.padj_threshold, config.lfc_threshold)
        regions = extract_regions(windows, config.padj_threshold, config.lfc_threshold)

        results = WindowAnalysisResults(
            contrast=contrast_name,
            total_windows=dataset.n_windows,
            tested_windows=len(windows),
            significant_windows=int(windows["significant"].sum()),
            regions_found=len(regions),
            windows=windows,
            regions=regions,
            output_dir=config.output_dir,
        )

        if config.output_dir:
            self.save(results, config.output_dir)

        logger.info(
            f"Finished {contrast_name}: {results.significant_windows} significant windows, "
            f"{results.regions_found} regions"
        )
        return results

    @staticmethod
    def save(results: WindowAnalysisResults, output_dir) -> Path:
        """Write window and region tables, region BED track and summary."""
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        write_table(results.windows, output_path / "window_results.tsv")
        write_table(results.regions, output_path / "regions.tsv")
        write_bed(regions_to_bed(results.regions), output_path / "regions.bed")
        with open(output_path / "summary.json", "w") as f:
            json.dump(results.to_dict(), f, indent=2)

        logger.info(f"Results saved to {output_path}")
        return output_path


# Convenience function
def run_window_analysis(
    counts: PathOrFrame,
    samples: PathOrFrame,
    annotation: PathOrFrame,
    treatment: str,
    control: str,
    engine: Optional[RegressionEngine] = None,
    start0based: Optional[bool] = None,
    **kwargs,
) -> WindowAnalysisResults:
    """
    Convenience function to run a window analysis from tables or paths.

    Args:
        counts: Count table, first column = window id
        samples: Sample table; when read from a file its first column is
                 the sample name
        annotation: Window annotation
        treatment: Treatment group (e.g. IP)
        control: Control group (e.g. SMI)
        engine: Regression engine (PyDESeq2 by default)
        start0based: Coordinate convention of the annotation
        **kwargs: Additional WindowAnalysisConfig options

    Returns:
        WindowAnalysisResults
    """
    config = WindowAnalysisConfig(treatment=treatment, control=control, **kwargs)

    sample_table = read_table(samples, name="sample table")
    if not isinstance(samples, pd.DataFrame):
        sample_table = sample_table.set_index(sample_table.columns[0])

    dataset = assemble_dataset(
        counts,
        sample_table,
        annotation,
        design=config.design,
        start0based=settings.start0based if start0based is None else start0based,
        check_window_number=settings.check_window_number,
    )

    analyzer = WindowAnalyzer(engine)
    return analyzer.run(dataset, config)
