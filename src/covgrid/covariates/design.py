#!/usr/bin/env python3
"""covgrid.covariates.design

Expand matched covariate tables into a numeric design matrix.

Formula parsing and model-matrix construction are delegated to an
expander: any callable

    expander(table, formula) -> (matrix, predictor_names)

returning one row per table row and one column per expanded term. The
default is PatsyExpander, which uses patsy's R-style formulas.

Two rules hold whatever the expander:
- Samples are stacked before grid rows and expanded in ONE call, so that
  categorical levels and the column set are identical for both partitions.
- No implicit intercept: the predictors are the formula terms only.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import patsy

from covgrid.covariates.errors import FormulaExpansionError, UnsupportedNAInExpansion


logger = logging.getLogger(__name__)

Expander = Callable[[pd.DataFrame, str], Tuple[np.ndarray, List[str]]]


class PatsyExpander:
    """Design expander backed by patsy.dmatrix.

    The formula may be given as "~ depth + temp", "depth + temp", or with a
    response ("y ~ depth"); the response is dropped and so is the intercept,
    even when written explicitly ("~ depth + 1").
    """

    def __init__(self, eval_env: Optional[patsy.EvalEnvironment] = None):
        # Names formulas may call besides patsy builtins; pass an env for custom transforms
        if eval_env is None:
            eval_env = patsy.EvalEnvironment([{"np": np}])
        self.eval_env = eval_env

    @staticmethod
    def model_desc(formula: str) -> patsy.ModelDesc:
        """Parse `formula` into a right-hand-side-only, intercept-free ModelDesc."""
        try:
            desc = patsy.ModelDesc.from_formula(formula)
        except patsy.PatsyError as e:
            raise FormulaExpansionError(f"Could not parse formula {formula!r}: {e}") from e
        terms = [t for t in desc.rhs_termlist if t != patsy.INTERCEPT]
        if not terms:
            raise FormulaExpansionError(f"Formula {formula!r} has no predictor terms")
        return patsy.ModelDesc([], terms)

    def __call__(self, table: pd.DataFrame, formula: str) -> Tuple[np.ndarray, List[str]]:
        desc = self.model_desc(formula)
        # Missing values are kept so the caller can report them
        keep_na = patsy.NAAction(NA_types=[])
        try:
            matrix = patsy.dmatrix(
                desc,
                table,
                eval_env=self.eval_env,
                NA_action=keep_na,
                return_type="dataframe",
            )
        except (patsy.PatsyError, NameError) as e:
            raise FormulaExpansionError(f"Could not expand formula {formula!r}: {e}") from e
        return matrix.to_numpy(dtype=float), [str(c) for c in matrix.columns]


def referenced_columns(formula: str, columns: Iterable[str]) -> List[str]:
    """Columns of `columns` whose names appear as identifiers in `formula`, in column order."""
    names = set(re.findall(r"[A-Za-z_][A-Za-z_0-9]*", str(formula)))
    return [c for c in columns if c in names]


def expand_design(
    samples: pd.DataFrame,
    grid: pd.DataFrame,
    formula: str,
    expander: Expander,
) -> Tuple[np.ndarray, np.ndarray, List[str]]:
    """Expand samples and grid rows together, then split them back.

    Returns (x_samples, x_grid, predictor_names).

    Raises:
        FormulaExpansionError: the expander rejected the formula, or returned
            a matrix of the wrong size.
        UnsupportedNAInExpansion: a covariate used by the formula has missing
            values, or any expanded cell is NaN or infinite.
    """
    combined = pd.concat([samples, grid], ignore_index=True)

    # Categorical NA would otherwise become a level of its own
    used = referenced_columns(formula, combined.columns)
    missing = [c for c in used if combined[c].isna().any()]
    if missing:
        n_missing = int(combined[missing].isna().to_numpy().sum())
        raise UnsupportedNAInExpansion(missing, n_missing)

    matrix, names = expander(combined, formula)
    matrix = np.asarray(matrix, dtype=float)
    names = list(names)

    if matrix.ndim != 2 or matrix.shape[0] != len(combined):
        raise FormulaExpansionError(
            f"Expander returned shape {matrix.shape}; expected {len(combined)} rows"
        )
    if matrix.shape[1] == 0:
        raise FormulaExpansionError(f"Formula {formula!r} expanded to zero predictors")
    if len(names) != matrix.shape[1]:
        raise FormulaExpansionError(
            f"Expander returned {len(names)} names for {matrix.shape[1]} columns"
        )

    finite = np.isfinite(matrix)
    if not finite.all():
        bad_cols = np.flatnonzero(~finite.all(axis=0))
        raise UnsupportedNAInExpansion([names[j] for j in bad_cols], int((~finite).sum()))

    n = len(samples)
    logger.debug("Expanded %d rows into %d predictors: %s", len(combined), len(names), names)
    return matrix[:n], matrix[n:], names
