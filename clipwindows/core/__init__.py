"""
Core analysis modules for clipwindows.

Includes:
- Window annotation loading and validation
- Count dataset assembly and prefiltering
- Regression engine contract (PyDESeq2 adapter)
- One-sided enrichment test and overlap correction
- Binding region extraction
"""

# Annotation and dataset
from .annotation import REQUIRED_COLUMNS, read_annotation, validate_annotation
from .dataset import WindowDataset, assemble_dataset

# Prefilter
from .prefilter import filter_by_max_height, filter_by_sum

# Statistics
from .regression import PyDESeq2Engine, RegressionEngine, estimate_size_factors
from .enrichment import enrichment_test, one_sided_pvalues
from .overlap_correction import adjust_pvalues, benjamini_hochberg, correct_windows, overlap_correct

# Regions
from .regions import extract_regions, mark_significant, regions_to_bed

# Pipeline
from .pipeline import WindowAnalysisConfig, WindowAnalysisResults, WindowAnalyzer, run_window_analysis

__all__ = [
    # Annotation and dataset
    "REQUIRED_COLUMNS",
    "read_annotation",
    "validate_annotation",
    "WindowDataset",
    "assemble_dataset",

    # Prefilter
    "filter_by_sum",
    "filter_by_max_height",

    # Statistics
    "RegressionEngine",
    "PyDESeq2Engine",
    "estimate_size_factors",
    "enrichment_test",
    "one_sided_pvalues",
    "overlap_correct",
    "benjamini_hochberg",
    "adjust_pvalues",
    "correct_windows",

    # Regions
    "mark_significant",
    "extract_regions",
    "regions_to_bed",

    # Pipeline
    "WindowAnalysisConfig",
    "WindowAnalysisResults",
    "WindowAnalyzer",
    "run_window_analysis",
]
