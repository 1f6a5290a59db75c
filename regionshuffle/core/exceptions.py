"""
Custom exception classes for RegionShuffle.

Every stage of an enrichment run (input loading, background construction,
sampling, metric computation) raises a specific error type so callers can
tell which stage failed.
"""


class RegionShuffleError(Exception):
    """Base exception for all RegionShuffle errors."""
    pass


# ============================================================================
# Input / File errors
# ============================================================================

class FileFormatError(RegionShuffleError):
    """Raised when an input file has an unexpected or invalid format."""
    pass


class BedFileFormatError(FileFormatError):
    """Raised when a BED regions file is malformed."""
    pass


class CoverageFileFormatError(FileFormatError):
    """Raised when a coverage (chromosome, offset) table is malformed."""
    pass


class ChromSizesFormatError(FileFormatError):
    """Raised when a chrom.sizes file cannot be parsed."""
    pass


# ============================================================================
# Data validation errors
# ============================================================================

class ValidationError(RegionShuffleError):
    """Raised when input data fails validation checks."""
    pass


class MissingColumnError(ValidationError):
    """Raised when a required column is missing from a DataFrame."""

    def __init__(self, column: str, dataframe_name: str = "DataFrame", available: list = None):
        available_str = f" Available columns: {available}" if available else ""
        super().__init__(
            f"Required column '{column}' not found in {dataframe_name}.{available_str}"
        )
        self.column = column
        self.available = available


class EmptyDataError(ValidationError):
    """Raised when data is empty where it should not be."""

    def __init__(self, data_name: str = "data"):
        super().__init__(f"Empty {data_name} provided where non-empty data is required")
        self.data_name = data_name


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is out of valid range."""

    def __init__(self, param: str, value, valid_range: str = ""):
        msg = f"Invalid value for '{param}': {value}"
        if valid_range:
            msg += f". Expected: {valid_range}"
        super().__init__(msg)
        self.param = param
        self.value = value


class UnknownChromosomeError(ValidationError):
    """Raised when a chromosome is not part of the genome."""

    def __init__(self, chrom: str, genome_name: str = "genome"):
        super().__init__(f"Unknown chromosome '{chrom}' for {genome_name}")
        self.chrom = chrom


class InvalidLocationError(ValidationError):
    """Raised when a 'chromosome:start-end' range string is malformed or out of bounds."""
    pass


class BackgroundMismatchError(ValidationError):
    """Raised when the background does not include or cover an input region."""

    def __init__(self, region, background_name: str = "background", reason: str = "include"):
        super().__init__(
            f"Background {background_name} is required to {reason} all input regions, "
            f"but the region is missing in background: {region}"
        )
        self.region = region


# ============================================================================
# Analysis errors
# ============================================================================

class AnalysisError(RegionShuffleError):
    """Base class for analysis-specific errors."""
    pass


class SamplingExhaustedError(AnalysisError):
    """Raised when a whole region set cannot be sampled in the allowed attempts.

    Signals that the background cannot physically support the requested
    sampling constraints (e.g. too few covered positions for the region
    weights).
    """

    def __init__(self, max_retries: int, regions_number: int = None):
        details = f" for a set of {regions_number} regions" if regions_number is not None else ""
        super().__init__(
            f"Too many shuffle attempts{details}, max limit is: {max_retries}. "
            f"Background cannot support the required sampling constraints."
        )
        self.max_retries = max_retries


class MetricOverflowError(AnalysisError):
    """Raised when a metric value does not fit into a 32-bit histogram index."""

    def __init__(self, value: int, label: str = None):
        where = f" for LOI '{label}'" if label else ""
        super().__init__(
            f"Metric value{where} exceeds supported 32-bit range: {value} > {2 ** 31 - 1}"
        )
        self.value = value
        self.label = label


class SimulationConsistencyError(AnalysisError):
    """Raised when accumulated statistics disagree with the requested simulations number."""
    pass


# ============================================================================
# Validation helpers
# ============================================================================

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
        Columns that must be present.
    min_rows : int
        Minimum number of rows required.

    Raises
    ------
    EmptyDataError
        If df is None or empty and min_rows > 0.
    MissingColumnError
        If a required column is missing.
    """
    import pandas as pd

    if df is None:
        raise EmptyDataError(name)

    if not isinstance(df, pd.DataFrame):
        raise ValidationError(f"Expected DataFrame for {name}, got {type(df).__name__}")

    if min_rows > 0 and len(df) < min_rows:
        if len(df) == 0:
            raise EmptyDataError(name)
        raise ValidationError(
            f"{name} has {len(df)} rows but at least {min_rows} are required"
        )

    if required_columns:
        for col in required_columns:
            if col not in df.columns:
                raise MissingColumnError(col, name, available=list(df.columns))


def validate_numeric_param(value, name: str, min_val=None, max_val=None) -> None:
    """Validate a numeric parameter is within acceptable bounds.

    Raises
    ------
    InvalidParameterError
        If the value is out of range.
    """
    if value is None:
        raise InvalidParameterError(name, value, "a number")
    if min_val is not None and value < min_val:
        raise InvalidParameterError(name, value, f">= {min_val}")
    if max_val is not None and value > max_val:
        raise InvalidParameterError(name, value, f"<= {max_val}")
