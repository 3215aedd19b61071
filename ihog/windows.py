"""
Window extraction over a padded HOG feature grid.

Every ``ny x nx`` window of the grid becomes one column of the window matrix.
The column order is fixed by ``window_positions``: batch index outermost,
then rows, then columns. The renderer places patches with the same function,
so column ``c`` of the codes always lands at position ``window_positions(...)[c]``.
"""

from __future__ import annotations
import logging

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .errors import ShapeError

logger = logging.getLogger(__name__)


def as_batch(feat) -> np.ndarray:
    """Return ``feat`` as a 4-D ``(H, W, C, K)`` float array."""
    feat = np.asarray(feat, dtype=float)
    if feat.ndim == 3:
        feat = feat[..., np.newaxis]
    if feat.ndim != 4:
        raise ShapeError(f"feature grid must be (H, W, C) or (H, W, C, K), got {feat.ndim}-D")
    if not np.all(np.isfinite(feat)):
        raise ShapeError("feature grid contains non-finite values (inf/nan)")
    return feat


def pad_features(feat: np.ndarray, pad: int) -> np.ndarray:
    """Zero-pad ``pad`` cells on every spatial side."""
    return np.pad(feat, ((pad, pad), (pad, pad), (0, 0), (0, 0)), mode="constant")


def complete_channels(feat: np.ndarray, n_features: int) -> np.ndarray:
    """Append the zero occlusion channel when it is the only one missing."""
    C = feat.shape[2]
    if C == n_features:
        return feat
    if C == n_features - 1:
        return np.concatenate([feat, np.zeros(feat.shape[:2] + (1,) + feat.shape[3:])], axis=2)
    raise ShapeError(f"feature grid has {C} channels, dictionary expects {n_features}")


def window_positions(height: int, width: int, ny: int, nx: int, batch: int) -> np.ndarray:
    """
    Top-left ``(k, i, j)`` of every window, one row per window.

    Shared by extraction and rendering; the row order is the column order of
    the window and code matrices.
    """
    n_i, n_j = height - ny + 1, width - nx + 1
    if n_i <= 0 or n_j <= 0:
        raise ShapeError(f"window {ny}x{nx} does not fit a {height}x{width} grid")
    k, i, j = np.meshgrid(np.arange(batch), np.arange(n_i), np.arange(n_j), indexing="ij")
    return np.stack([k.ravel(), i.ravel(), j.ravel()], axis=1)


def normalize_windows(X: np.ndarray, eps: float) -> np.ndarray:
    """Zero-mean, unit-norm columns; ``eps`` keeps all-zero columns at zero."""
    X = X - X.mean(axis=0, keepdims=True)
    return X / np.sqrt(np.sum(X * X, axis=0, keepdims=True) + eps)


def extract_windows(feat: np.ndarray, ny: int, nx: int, eps: float) -> np.ndarray:
    """
    Window matrix of a padded ``(H, W, C, K)`` grid.

    Returns:
        Array ``(ny * nx * C, n_windows)`` with columns flattened in C order over
        ``(y, x, channel)`` and normalized by ``normalize_windows``.
    """
    H, W, C, K = feat.shape
    positions = window_positions(H, W, ny, nx, K)
    # views: (H-ny+1, W-nx+1, C, K, ny, nx)
    views = sliding_window_view(feat, (ny, nx), axis=(0, 1))
    k, i, j = positions.T
    X = views[i, j, :, k]                       # (n, C, ny, nx)
    X = X.transpose(0, 2, 3, 1).reshape(len(positions), ny * nx * C).T
    logger.debug("extracted %d windows of length %d", X.shape[1], X.shape[0])
    return normalize_windows(X, eps)
