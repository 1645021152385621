import argparse
import logging
import sys

from clipwindows.config import settings
from clipwindows.core.exceptions import ClipWindowsError
from clipwindows.core.overlap_correction import FDR_METHODS
from clipwindows.core.pipeline import run_window_analysis
from clipwindows.core.regression import FIT_TYPES, PyDESeq2Engine

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="clipwindows",
        description="Differential enrichment of CLIP sliding windows and binding region extraction.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
 Examples:
   # IP vs size-matched input, default sum prefilter
   clipwindows annotation.txt.gz counts.txt.gz samples.txt \\
     --treatment IP --control SMI --output-dir results/

   # Prefilter on the max crosslink height matrix instead
   clipwindows annotation.txt.gz counts.txt.gz samples.txt \\
     --treatment IP --control SMI --max-counts max_counts.txt.gz \\
     --count-thresh 2 --nsamples 2 --output-dir results/
         """,
    )
    parser.add_argument("annotation", help="Window annotation file (TAB-separated, may be gzipped).")
    parser.add_argument("counts", help="Window count matrix; first column is the window id.")
    parser.add_argument("samples", help="Sample table; first column is the sample name.")

    contrast_group = parser.add_argument_group("Contrast Options")
    contrast_group.add_argument("--design", default=settings.design,
                                help="Sample table column with the experimental group. (default: %(default)s)")
    contrast_group.add_argument("--treatment", required=True, help="Treatment group, e.g. IP.")
    contrast_group.add_argument("--control", required=True, help="Control group, e.g. SMI.")

    filter_group = parser.add_argument_group("Prefilter Options")
    filter_group.add_argument("--min-count", type=int, default=settings.min_count,
                              help="Minimum total count per window. (default: %(default)s)")
    filter_group.add_argument("--max-counts", default=None,
                              help="Max crosslink height matrix; replaces the total count filter.")
    filter_group.add_argument("--count-thresh", type=int, default=2,
                              help="Max height threshold. (default: %(default)s)")
    filter_group.add_argument("--nsamples", type=int, default=1,
                              help="Samples that must reach --count-thresh. (default: %(default)s)")

    stats_group = parser.add_argument_group("Statistics Options")
    stats_group.add_argument("--fit-type", choices=FIT_TYPES, default=settings.fit_type,
                             help="Dispersion trend fit. (default: %(default)s)")
    stats_group.add_argument("--fdr-method", choices=FDR_METHODS, default=settings.fdr_method,
                             help="Global FDR adjustment. (default: %(default)s)")
    stats_group.add_argument("--padj", type=float, default=settings.padj_threshold,
                             help="Adjusted p-value threshold for significant windows. (default: %(default)s)")
    stats_group.add_argument("--lfc", type=float, default=settings.lfc_threshold,
                             help="log2 fold change threshold for significant windows. (default: %(default)s)")

    technical_group = parser.add_argument_group("Technical Options")
    technical_group.add_argument("--one-based", action="store_true",
                                 help="Annotation start coordinates are 1-based.")
    technical_group.add_argument("--cpus", type=int, default=settings.n_cpus,
                                 help="CPUs for the regression engine.")
    technical_group.add_argument("--output-dir", default=settings.output_dir,
                                 help="Directory for result tables. (default: %(default)s)")
    technical_group.add_argument("-v", "--verbose", action="store_true",
                                 help="Enable verbose logging.")
    return parser


def main(argv=None) -> int:
    parser = create_arg_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    engine = PyDESeq2Engine(fit_type=args.fit_type, n_cpus=args.cpus)
    try:
        results = run_window_analysis(
            args.counts,
            args.samples,
            args.annotation,
            treatment=args.treatment,
            control=args.control,
            engine=engine,
            start0based=not args.one_based,
            design=args.design,
            min_count=args.min_count,
            max_counts=args.max_counts,
            count_thresh=args.count_thresh,
            nsamples=args.nsamples,
            fdr_method=args.fdr_method,
            padj_threshold=args.padj,
            lfc_threshold=args.lfc,
            output_dir=str(args.output_dir) if args.output_dir else None,
        )
    except ClipWindowsError as e:
        logger.error(str(e))
        return 1

    for key, value in results.to_dict().items():
        print(f"{key}\t{value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
