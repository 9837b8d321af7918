"""Exception and warning types raised across the tidy_rnaseq workflow."""

from __future__ import annotations


class TidyRnaseqError(Exception):
    """Base class for all tidy_rnaseq errors."""


class SchemaError(TidyRnaseqError, ValueError):
    """A required column, assay or key is missing, duplicated or mismatched.

    Raised for ingestion/join problems between counts and sample metadata and
    for malformed long tables. Unrecoverable.
    """


class ConfigurationError(TidyRnaseqError, ValueError):
    """Invalid grouping factor, design, contrast or parameter choice."""


class NumericDegeneracyError(TidyRnaseqError, ArithmeticError):
    """A quantity is undefined for the given data (e.g. a TMM factor)."""

    def __init__(self, message: str, sample: str | None = None) -> None:
        super().__init__(message)
        self.sample = sample


class NumericDegeneracyWarning(UserWarning):
    """Isolated numeric problem for a subset of features; the run continues."""


class ExportError(TidyRnaseqError, OSError):
    """Writing a result table failed."""
