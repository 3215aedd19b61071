"""
Rendering of sparse codes back into pixels.

Each code column is mapped through the gray dictionary to a patch of
``(ny+2)*sbin x (nx+2)*sbin`` pixels, tapered with a fixed Gaussian window and
added into the output at ``(i*sbin, j*sbin)`` of its batch item. The taper is
also accumulated into a weight buffer, and the final image is the pointwise
ratio, so every pixel is the weighted mean of the patches covering it, edges
and corners included.
"""

from __future__ import annotations
import logging
from typing import Tuple

import numpy as np

from .dictionary import PairedDictionary

logger = logging.getLogger(__name__)


def gaussian_window(shape: Tuple[int, int], sigma: float) -> np.ndarray:
    """Centered 2-D Gaussian of the given size, normalized to sum to one."""
    h, w = shape
    y = np.arange(h) - (h - 1) / 2.0
    x = np.arange(w) - (w - 1) / 2.0
    g = np.exp(-(y[:, None] ** 2 + x[None, :] ** 2) / (2.0 * sigma * sigma))
    g[g < np.finfo(float).eps * g.max()] = 0.0
    return g / g.sum()


def blend_patches(recon: np.ndarray,
                  positions: np.ndarray,
                  out_shape: Tuple[int, int, int],
                  patch_shape: Tuple[int, int],
                  sbin: int,
                  window: np.ndarray) -> np.ndarray:
    """
    Overlap-average flat patches into an image stack.

    Args:
        recon: Flat patches (py * px, n_windows), C order over (y, x)
        positions: ``(k, i, j)`` per column, from ``windows.window_positions``
        out_shape: (height, width, batch) of the pixel buffer
        patch_shape: (py, px)
        sbin: Pixels per HOG cell
        window: Taper (py, px)

    Returns:
        Blended image (height, width, batch); uncovered pixels are zero.
    """
    py, px = patch_shape
    im = np.zeros(out_shape)
    weights = np.zeros(out_shape)
    patches = recon.T.reshape(-1, py, px) * window
    for patch, (k, i, j) in zip(patches, positions):
        y0, x0 = i * sbin, j * sbin
        im[y0:y0 + py, x0:x0 + px, k] += patch
        weights[y0:y0 + py, x0:x0 + px, k] += window
    return np.divide(im, weights, out=np.zeros_like(im), where=weights > 0)


def minmax_normalize(im: np.ndarray) -> np.ndarray:
    """Scale every batch item (last axis) to [0, 1]; flat items become zero."""
    lo = im.min(axis=(0, 1), keepdims=True)
    span = im.max(axis=(0, 1), keepdims=True) - lo
    return np.divide(im - lo, span, out=np.zeros_like(im), where=span > 0)


def crop_margin(im: np.ndarray, pad: int, sbin: int) -> np.ndarray:
    m = pad * sbin
    return im[m:im.shape[0] - m, m:im.shape[1] - m]


def to_rgb(im: np.ndarray) -> np.ndarray:
    """(H, W, K) gray stack -> (H, W, 3, K)."""
    return np.repeat(im[:, :, np.newaxis, :], 3, axis=2)


def render(codes: np.ndarray,
           pd: PairedDictionary,
           positions: np.ndarray,
           grid_shape: Tuple[int, int, int],
           pad: int,
           filter_sigma: float) -> np.ndarray:
    """
    Full rendering of the codes of a padded ``(H, W, K)`` grid.

    Returns:
        Image (H - 2*pad + 2) * sbin by (W - 2*pad + 2) * sbin, 3 channels, K items,
        values in [0, 1].
    """
    H, W, K = grid_shape
    sbin = pd.sbin
    recon = pd.dgray @ codes
    window = gaussian_window(pd.patch_shape, filter_sigma)
    im = blend_patches(recon, positions, ((H + 2) * sbin, (W + 2) * sbin, K),
                       pd.patch_shape, sbin, window)
    im = crop_margin(minmax_normalize(im), pad, sbin)
    logger.debug("rendered %d patches into %s", codes.shape[1], im.shape)
    return to_rgb(im)
