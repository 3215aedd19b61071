"""
Sparse coding of HOG windows against the HOG side of a paired dictionary.

Every window column j is coded independently as a non-negative LASSO over
the rows its mask allows:

    minimize: (1/2)||m_j ⊙ (x_j - D a_j)||² + λ_j||a_j||₁   subject to a_j ≥ 0

with λ_j = λ · ||m_j||₀ / n_rows, so a column weighs its penalty by the
share of rows it actually fits. Together with ``scaled_lambda`` this makes
the effective weight equal to the dictionary λ whether or not consistency
rows are present, and independent of how many windows share a batch.

Two interchangeable backends solve it:

- ``"fista"``: all columns at once with masked batch FISTA (``fista_batch``).
- ``"lasso"``: scikit-learn coordinate descent per column, restricted to the
  column's active rows, fanned out over column chunks with joblib.

A column whose solve fails (non-finite or negative code, numerical error,
coordinate descent not converging) is replaced by zeros and reported at
WARNING level. No single window can abort the batch.
"""

from __future__ import annotations
import logging
import warnings
from typing import List, Optional

import numpy as np
from joblib import Parallel, delayed
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso

from .config import InversionConfig
from .constraints import mask_row_indices
from .dictionary import PairedDictionary
from .fista_batch import fista_batch

logger = logging.getLogger(__name__)

_NEG_TOL = 1e-10


def scaled_lambda(pd: PairedDictionary, n_rows: int, prevnum: int) -> float:
    """λ for a problem with ``n_rows`` rows after ``prevnum`` consistency passes."""
    return pd.lam * n_rows / (pd.ny * pd.nx * pd.n_features + prevnum)


def column_lambdas(lam: float, mask: np.ndarray) -> np.ndarray:
    """Per-column L1 weights ``λ · (active rows of column j) / n_rows``."""
    mask = np.asarray(mask, dtype=bool)
    return lam * mask.sum(axis=0) / mask.shape[0]


def _invalid_columns(A: np.ndarray) -> np.ndarray:
    return ~np.all(np.isfinite(A), axis=0) | np.any(A < -_NEG_TOL, axis=0)


def _lasso_column(x: np.ndarray, D: np.ndarray, lam: float, max_iter: int, tol: float):
    """Solve one masked column; returns ``None`` on failure."""
    n = x.shape[0]
    if n == 0 or not np.any(x):
        return np.zeros(D.shape[1])
    model = Lasso(alpha=lam / n, positive=True, fit_intercept=False,
                  max_iter=max_iter, tol=tol)
    with warnings.catch_warnings():
        warnings.simplefilter("error", ConvergenceWarning)
        try:
            model.fit(D, x)
        except (ConvergenceWarning, ValueError, FloatingPointError, np.linalg.LinAlgError):
            return None
    return model.coef_


def _lasso_chunk(X: np.ndarray, D: np.ndarray, rows: List[np.ndarray], lams: np.ndarray,
                 max_iter: int, tol: float):
    return [_lasso_column(X[r, j], D[r], lams[j], max_iter, tol) for j, r in enumerate(rows)]


def _solve_lasso(X, D, mask, lams, config: InversionConfig) -> np.ndarray:
    N = X.shape[1]
    rows = mask_row_indices(mask)
    chunk = config.chunk_size
    chunk_results = Parallel(n_jobs=config.n_jobs)(
        delayed(_lasso_chunk)(X[:, s:s + chunk], D, rows[s:s + chunk], lams[s:s + chunk],
                              config.max_iter, config.tol)
        for s in range(0, N, chunk)
    )
    A = np.zeros((D.shape[1], N))
    failed = []
    for s, codes in zip(range(0, N, chunk), chunk_results):
        for offset, code in enumerate(codes):
            if code is None:
                failed.append(s + offset)
            else:
                A[:, s + offset] = code
    if failed:
        logger.warning("lasso did not converge for %d of %d windows; using zero codes for %s",
                       len(failed), N, failed[:10])
    return A


def _solve_fista(X, D, mask, lams, config: InversionConfig) -> np.ndarray:
    full = mask is None or bool(np.all(mask))
    A, n_iter = fista_batch(D, X, lams[np.newaxis, :], mask=None if full else mask,
                            max_iter=config.max_iter, tol=config.tol)
    if n_iter >= config.max_iter:
        logger.debug("fista stopped at max_iter=%d before reaching tol=%g",
                     config.max_iter, config.tol)
    return A


_BACKENDS = {
    "fista": _solve_fista,
    "lasso": _solve_lasso,
}


def solve_codes(windows: np.ndarray,
                dhog: np.ndarray,
                mask: Optional[np.ndarray],
                lam: float,
                config: Optional[InversionConfig] = None) -> np.ndarray:
    """
    Non-negative sparse codes for every window column.

    Args:
        windows: Window matrix (n_rows, n_windows), consistency rows included
        dhog: HOG dictionary (n_rows, n_atoms), consistency rows included
        mask: Boolean (n_rows, n_windows) or None for all rows active
        lam: Already scaled L1 weight (see ``scaled_lambda``); column j uses
            ``column_lambdas(lam, mask)[j]``
        config: Solver settings

    Returns:
        Codes (n_atoms, n_windows), every column finite and non-negative.
    """
    config = config or InversionConfig()
    windows = np.asarray(windows, dtype=float)
    dhog = np.asarray(dhog, dtype=float)
    if mask is None:
        mask = np.ones(windows.shape, dtype=bool)

    with np.errstate(over="ignore", invalid="ignore"):
        A = _BACKENDS[config.solver](windows, dhog, mask, column_lambdas(lam, mask), config)

    bad = _invalid_columns(A)
    if np.any(bad):
        idx = np.flatnonzero(bad)
        logger.warning("solver returned invalid codes for %d of %d windows; zeroing %s",
                       idx.size, A.shape[1], idx[:10].tolist())
        A[:, bad] = 0.0
    return np.maximum(A, 0.0)
