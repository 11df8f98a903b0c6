#!/usr/bin/env python3
"""covgrid.covariates.errors

Failure modes of covariate resolution.

Every error here is fatal at this layer: inputs are in-memory and
deterministic, so retrying cannot help. The caller has to fix the data.
The one advisory condition is CovariateScaleWarning, which is emitted
through `warnings` and never interrupts a resolution call.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence


class CovariateError(ValueError):
    """Base class for all covariate resolution failures."""


class InputShapeError(CovariateError):
    """Missing required columns, empty inputs or unusable coordinates."""


class MissingYearCoverage(CovariateError):
    """A year inside the YearSet has neither yearly nor static records."""

    def __init__(self, year: int):
        self.year = int(year)
        super().__init__(
            f"Year {self.year} not found in `covariate_data`; "
            "please specify covariate values for all years (or static rows with Year=NA)"
        )


class EmptyReferenceSet(CovariateError):
    """The nearest-neighbor matcher was given no reference points."""


class UnresolvedObservation(CovariateError):
    """One or more sample locations never received a match."""

    def __init__(self, positions: Sequence[int]):
        self.positions = [int(p) for p in positions]
        shown = self.positions[:10]
        more = "" if len(self.positions) <= 10 else f" (+{len(self.positions) - 10} more)"
        super().__init__(
            f"{len(self.positions)} sample location(s) were never matched: {shown}{more}. "
            "Their Year must fall inside the resolved year range."
        )


class FormulaExpansionError(CovariateError):
    """The design expander rejected the formula (syntax, unknown names, no terms)."""


class UnsupportedNAInExpansion(CovariateError):
    """The expanded design matrix contains non-finite values."""

    def __init__(self, predictors: Iterable[str], n_cells: Optional[int] = None):
        self.predictors = list(predictors)
        count = "" if n_cells is None else f"{n_cells} "
        super().__init__(
            f"Design input has {count}missing or non-finite value(s) in {self.predictors}. "
            "Check `covariate_data` for missing covariate values."
        )


class GridBlockSizeMismatch(CovariateError):
    """A per-year block of grid rows does not hold exactly one row per grid cell."""


class IncompleteAssembly(CovariateError):
    """An assembled tensor holds non-finite values (a row that was never matched)."""


class CovariateScaleWarning(UserWarning):
    """Advisory: some predictor varies widely across locations within a year."""
