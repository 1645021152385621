"""
Custom exception and warning classes for clipwindows.

Fatal conditions raise a ``ClipWindowsError`` subclass and abort the
current pipeline stage. Non-fatal conditions are emitted as
``ClipWindowsWarning`` subclasses and the pipeline carries on.
"""

import logging
import warnings
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class ClipWindowsError(Exception):
    """Base exception for all clipwindows errors."""
    pass


# ============================================================================
# Data validation errors
# ============================================================================

class ValidationError(ClipWindowsError):
    """Raised when input data fails validation checks."""
    pass


class SchemaError(ValidationError):
    """Raised when a table is missing required columns or holds malformed values.

    All violations found are reported together rather than stopping at
    the first one.
    """

    def __init__(self, table_name: str, violations: List[str]):
        self.table_name = table_name
        self.violations = list(violations)
        details = "\n  - ".join(self.violations)
        super().__init__(f"Invalid {table_name}:\n  - {details}")


class EmptyIntersectionError(ValidationError):
    """Raised when two keyed inputs share no identifiers."""

    def __init__(self, left: str, right: str):
        super().__init__(
            f"There are no common unique ids between {left} and {right}. "
            "Please check your data sets!"
        )
        self.left = left
        self.right = right


class EmptyResultError(ValidationError):
    """Raised when a filtering step would leave no windows."""
    pass


class OrderMismatchError(ValidationError):
    """Raised when sample table rows and count columns are a reordered copy of each other."""

    def __init__(self, sample_names: List[str], count_columns: List[str]):
        super().__init__(
            "Row names of the sample table:\n  "
            + ",".join(sample_names)
            + "\nare not in the same order as the columns of the count matrix:\n  "
            + ",".join(count_columns)
        )
        self.sample_names = list(sample_names)
        self.count_columns = list(count_columns)


class ParameterError(ValidationError):
    """Raised when a parameter value violates a precondition."""

    def __init__(self, param: str, value, valid_range: str = ""):
        msg = f"Invalid value for '{param}': {value}"
        if valid_range:
            msg += f". Expected: {valid_range}"
        super().__init__(msg)
        self.param = param
        self.value = value


# ============================================================================
# Analysis errors
# ============================================================================

class AnalysisError(ClipWindowsError):
    """Base class for analysis-specific errors."""
    pass


class RegressionEngineError(AnalysisError):
    """Raised when the regression engine fails or returns unusable output."""
    pass


class NormalizationError(AnalysisError):
    """Raised when size factors cannot be estimated."""
    pass


# ============================================================================
# Warnings
# ============================================================================

class ClipWindowsWarning(UserWarning):
    """Base class for non-fatal clipwindows conditions."""
    pass


class UndefinedStatisticWarning(ClipWindowsWarning):
    """Emitted when regression output for some windows is NA."""
    pass


class IdentifierMismatchWarning(ClipWindowsWarning):
    """Emitted when keyed inputs only partially share identifiers."""
    pass


def warn(message: str, category=ClipWindowsWarning, log: Optional[logging.Logger] = None) -> None:
    """Emit ``message`` as a Python warning and through the given logger."""
    (log or logger).warning(message)
    warnings.warn(message, category, stacklevel=3)


# ============================================================================
# Validation helpers
# ============================================================================

def missing_columns(df, required: Iterable[str]) -> List[str]:
    """Return required columns absent from ``df``, in the order given."""
    present = set(df.columns)
    return [col for col in required if col not in present]


def validate_dataframe(
    df,
    name: str = "DataFrame",
    required_columns: list = None,
    min_rows: int = 0,
) -> None:
    """Validate a DataFrame has expected shape and columns.

    Parameters
    ----------
    df : pd.DataFrame
        The DataFrame to validate.
    name : str
        Human-readable name for error messages.
    required_columns : list, optional
        Columns that must be present. Every missing column is reported.
    min_rows : int
        Minimum number of rows required.

    Raises
    ------
    SchemaError
        If df is not a DataFrame, is too short, or lacks required columns.
    """
    import pandas as pd

    if df is None or not isinstance(df, pd.DataFrame):
        got = "None" if df is None else type(df).__name__
        raise SchemaError(name, [f"expected a DataFrame, got {got}"])

    violations = []
    if required_columns:
        missing = missing_columns(df, required_columns)
        if missing:
            violations.append("missing required columns: " + ", ".join(missing))

    if min_rows > 0 and len(df) < min_rows:
        violations.append(f"has {len(df)} rows but at least {min_rows} are required")

    if violations:
        raise SchemaError(name, violations)


def validate_numeric_param(value, name: str, min_val=None, max_val=None) -> None:
    """Validate a numeric parameter is within acceptable bounds.

    Raises
    ------
    ParameterError
        If the value is out of range.
    """
    if min_val is not None and value < min_val:
        raise ParameterError(name, value, f">= {min_val}")
    if max_val is not None and value > max_val:
        raise ParameterError(name, value, f"<= {max_val}")
