"""
Unit tests for custom exception classes and validation helpers.
"""

import pandas as pd
import pytest

from regionshuffle.core.exceptions import (
    RegionShuffleError,
    FileFormatError,
    BedFileFormatError,
    CoverageFileFormatError,
    ChromSizesFormatError,
    ValidationError,
    MissingColumnError,
    EmptyDataError,
    InvalidParameterError,
    UnknownChromosomeError,
    InvalidLocationError,
    BackgroundMismatchError,
    AnalysisError,
    SamplingExhaustedError,
    MetricOverflowError,
    SimulationConsistencyError,
    validate_dataframe,
    validate_numeric_param,
)


# ============================================================================
# Exception hierarchy
# ============================================================================


class TestExceptionHierarchy:
    """Verify the exception inheritance chain."""

    def test_base_exception(self):
        with pytest.raises(RegionShuffleError):
            raise RegionShuffleError("base error")

    @pytest.mark.parametrize("exc", [BedFileFormatError, CoverageFileFormatError, ChromSizesFormatError])
    def test_file_errors_are_file_format(self, exc):
        with pytest.raises(FileFormatError):
            raise exc("bad file")

    def test_file_format_is_base(self):
        with pytest.raises(RegionShuffleError):
            raise FileFormatError("bad file")

    def test_validation_is_base(self):
        with pytest.raises(RegionShuffleError):
            raise ValidationError("invalid")

    def test_location_is_validation(self):
        with pytest.raises(ValidationError):
            raise InvalidLocationError("chr1:a-b")

    def test_analysis_errors(self):
        with pytest.raises(AnalysisError):
            raise SamplingExhaustedError(3)
        with pytest.raises(AnalysisError):
            raise MetricOverflowError(2 ** 31)
        with pytest.raises(AnalysisError):
            raise SimulationConsistencyError("mismatch")


# ============================================================================
# Exception messages
# ============================================================================


class TestExceptionMessages:

    def test_missing_column(self):
        err = MissingColumnError("chr", "regions", available=["a", "b"])
        assert "chr" in str(err)
        assert "regions" in str(err)
        assert err.column == "chr"
        assert err.available == ["a", "b"]

    def test_empty_data(self):
        err = EmptyDataError("input regions")
        assert "input regions" in str(err)
        assert err.data_name == "input regions"

    def test_invalid_parameter(self):
        err = InvalidParameterError("flank", -1, ">= 0")
        assert "flank" in str(err)
        assert ">= 0" in str(err)
        assert err.value == -1

    def test_unknown_chromosome(self):
        err = UnknownChromosomeError("chrZ", "genome 'toy'")
        assert "chrZ" in str(err)
        assert err.chrom == "chrZ"

    def test_background_mismatch_names_region(self):
        err = BackgroundMismatchError("chr1:10-20", "bg.bed", reason="cover")
        assert "chr1:10-20" in str(err)
        assert "cover" in str(err)
        assert err.region == "chr1:10-20"

    def test_sampling_exhausted(self):
        err = SamplingExhaustedError(3, regions_number=2)
        assert "3" in str(err)
        assert "2 regions" in str(err)
        assert err.max_retries == 3

    def test_metric_overflow_label(self):
        err = MetricOverflowError(2 ** 31, label="enhancers.bed")
        assert "enhancers.bed" in str(err)
        assert err.label == "enhancers.bed"


# ============================================================================
# validate_dataframe
# ============================================================================


class TestValidateDataframe:

    def test_none_raises_empty(self):
        with pytest.raises(EmptyDataError):
            validate_dataframe(None)

    def test_not_dataframe(self):
        with pytest.raises(ValidationError, match="Expected DataFrame"):
            validate_dataframe([1, 2, 3])

    def test_empty_with_min_rows(self):
        with pytest.raises(EmptyDataError):
            validate_dataframe(pd.DataFrame({"a": []}), min_rows=1)

    def test_too_few_rows(self):
        with pytest.raises(ValidationError, match="at least 5"):
            validate_dataframe(pd.DataFrame({"a": [1, 2]}), min_rows=5)

    def test_missing_column(self):
        with pytest.raises(MissingColumnError):
            validate_dataframe(pd.DataFrame({"chr": ["chr1"]}), required_columns=["chr", "start"])

    def test_valid(self):
        validate_dataframe(pd.DataFrame({"chr": ["chr1"], "start": [1]}), required_columns=["chr", "start"], min_rows=1)


# ============================================================================
# validate_numeric_param
# ============================================================================


class TestValidateNumericParam:

    def test_none(self):
        with pytest.raises(InvalidParameterError):
            validate_numeric_param(None, "x")

    def test_below_min(self):
        with pytest.raises(InvalidParameterError, match=">= 1"):
            validate_numeric_param(0, "simulations", min_val=1)

    def test_above_max(self):
        with pytest.raises(InvalidParameterError, match="<= 10"):
            validate_numeric_param(11, "x", max_val=10)

    def test_within_range(self):
        validate_numeric_param(5, "x", min_val=1, max_val=10)
