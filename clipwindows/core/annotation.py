"""
Sliding-window annotation loader.

Reads the per-window annotation table produced by the windowing step
(one row per window with its gene context), validates it once at
ingestion and returns it genome-sorted with normalised coordinates.

Required columns:
    chromosome          chromosome name
    unique_id           unique id of the window
    begin               window start co-ordinate (0- or 1-based)
    end                 window end co-ordinate
    strand              strand, ``+`` or ``-``
    gene_id             gene id
    gene_name           gene name
    gene_type           gene type annotation
    gene_region         gene region
    Nr_of_region        number of the current region
    Total_nr_of_region  total number of regions
    window_number       window number (only with ``check_window_number``)
"""

import logging
from typing import Iterable, List, Optional

import pandas as pd

from .exceptions import EmptyIntersectionError, SchemaError, missing_columns
from .genomic_utils import PathOrFrame, genome_sort, normalize_coordinates, read_table

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = [
    "chromosome",
    "unique_id",
    "begin",
    "end",
    "strand",
    "gene_id",
    "gene_name",
    "gene_type",
    "gene_region",
    "Nr_of_region",
    "Total_nr_of_region",
]
WINDOW_NUMBER_COLUMN = "window_number"
VALID_STRANDS = {"+", "-"}

# Number of offending ids quoted in an error message
_MAX_REPORTED = 10


def required_columns(check_window_number: bool = False) -> List[str]:
    cols = list(REQUIRED_COLUMNS)
    if check_window_number:
        cols.append(WINDOW_NUMBER_COLUMN)
    return cols


def _preview(values) -> str:
    values = [str(v) for v in values]
    shown = ", ".join(values[:_MAX_REPORTED])
    if len(values) > _MAX_REPORTED:
        shown += f", ... ({len(values)} total)"
    return shown


def validate_annotation(
    df: pd.DataFrame,
    check_window_number: bool = False,
    start0based: bool = True,
) -> None:
    """Check schema and window invariants of an annotation table.

    Every problem found is collected into a single ``SchemaError``.
    Missing columns short-circuit the value checks, since those rely on
    the columns being present.
    """
    if not isinstance(df, pd.DataFrame):
        raise SchemaError("annotation", [f"expected a DataFrame, got {type(df).__name__}"])

    missing = missing_columns(df, required_columns(check_window_number))
    if missing:
        raise SchemaError("annotation", ["missing required columns: " + ", ".join(missing)])

    violations = []

    ids = df["unique_id"].astype(str)
    duplicated = ids[ids.duplicated(keep=False)].unique()
    if len(duplicated):
        violations.append("duplicate unique_id values: " + _preview(duplicated))

    bad_strand = ~df["strand"].isin(VALID_STRANDS)
    if bad_strand.any():
        violations.append(
            "strand must be '+' or '-' for windows: " + _preview(ids[bad_strand])
        )

    coords = normalize_coordinates(df, start0based=start0based)
    non_numeric = coords["start"].isna() | coords["end"].isna()
    if non_numeric.any():
        violations.append("non-numeric coordinates for windows: " + _preview(ids[non_numeric]))
    empty = ~non_numeric & (coords["start"] >= coords["end"])
    if empty.any():
        violations.append("start must be < end for windows: " + _preview(ids[empty]))
    negative = ~non_numeric & (coords["start"] < 0)
    if negative.any():
        violations.append("start must be >= 0 for windows: " + _preview(ids[negative]))

    if violations:
        raise SchemaError("annotation", violations)


def read_annotation(
    source: PathOrFrame,
    unique_ids: Optional[Iterable] = None,
    sort: bool = True,
    check_window_number: bool = False,
    start0based: bool = True,
) -> pd.DataFrame:
    """Load and validate window annotation.

    Args:
        source: Path to a TAB-separated (optionally gzipped) file, or a DataFrame
        unique_ids: Keep only these windows; must share at least one id
        sort: If True, normalise coordinates to 0-based half-open ``start``/``end``
              and sort by genome position. If False, return the validated
              table as read.
        check_window_number: Also require the ``window_number`` column
        start0based: Whether ``begin`` is 0-based (True) or 1-based (False)

    Returns:
        DataFrame indexed by ``unique_id``
    """
    annotation = read_table(source, name="annotation")
    validate_annotation(annotation, check_window_number=check_window_number, start0based=start0based)

    annotation["unique_id"] = annotation["unique_id"].astype(str)
    annotation["chromosome"] = annotation["chromosome"].astype(str)
    annotation.index = pd.Index(annotation["unique_id"].to_numpy(), name="unique_id")

    if unique_ids is not None:
        wanted = pd.Index([str(i) for i in unique_ids])
        common = annotation.index.intersection(wanted, sort=False)
        if len(common) == 0:
            raise EmptyIntersectionError("the annotation", "the requested unique ids")
        logger.info(f"Keeping {len(common)} of {len(annotation)} annotated windows")
        annotation = annotation.loc[common]

    if not sort:
        return annotation

    annotation = normalize_coordinates(annotation, start0based=start0based)
    annotation["start"] = annotation["start"].astype("int64")
    annotation["end"] = annotation["end"].astype("int64")
    annotation = genome_sort(annotation)
    logger.info(
        f"Loaded {len(annotation)} windows on {annotation['chromosome'].nunique()} chromosomes "
        f"covering {annotation['gene_id'].nunique()} genes"
    )
    return annotation
