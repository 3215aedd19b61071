"""
HOG inversion pipeline.

Recovers a natural image that may have produced a HOG feature grid:

    >>> pd = load_paired_dictionary("pd.npz")
    >>> image, prev = invert_hog(feat, pd)

A 4-D grid ``(H, W, C, K)`` inverts K features in one call, which is much
faster than K separate calls. The returned state carries this pass's codes;
hand it back as ``prev`` to get a further inversion that is pushed away from
the earlier ones by the consistency term.

Stages: pad and extract windows, add consistency constraints, solve the
sparse codes, render and blend the gray patches.
"""

from __future__ import annotations
import logging
from typing import Callable, NamedTuple, Optional

import numpy as np

from .config import InversionConfig
from .constraints import ConsistencyState, build_constraints
from .dictionary import PairedDictionary, blurred_dictionary
from .errors import MissingDictionaryError, ShapeError
from .render import render
from .sparse_coder import scaled_lambda, solve_codes
from .windows import (as_batch, complete_channels, extract_windows, pad_features,
                      window_positions)

logger = logging.getLogger(__name__)


class InversionResult(NamedTuple):
    image: np.ndarray
    prev: ConsistencyState


def _resolve_dictionary(pd: Optional[PairedDictionary],
                        provider: Optional[Callable[[], PairedDictionary]]) -> PairedDictionary:
    if pd is not None:
        return pd
    if provider is None:
        raise MissingDictionaryError(
            "no paired dictionary given; pass pd= or a DictionaryProvider as provider="
        )
    return provider()


def output_shape(grid_height: int, grid_width: int, sbin: int):
    """Pixel size of the inversion of an unpadded ``grid_height x grid_width`` grid."""
    return (grid_height + 2) * sbin, (grid_width + 2) * sbin


def invert_hog(feat,
               pd: Optional[PairedDictionary] = None,
               prev: Optional[ConsistencyState] = None,
               config: Optional[InversionConfig] = None,
               provider: Optional[Callable[[], PairedDictionary]] = None) -> InversionResult:
    """
    Invert a HOG feature grid.

    Args:
        feat: HOG grid (H, W, C) or (H, W, C, K). C may lack the occlusion channel.
        pd: Paired dictionary; if None, ``provider()`` is called
        prev: Codes of earlier passes (default: empty, gam=10, sig=1)
        config: Pipeline constants
        provider: Lazy source of a default dictionary

    Returns:
        ``InversionResult(image, prev)`` where image is ((H+2)*sbin, (W+2)*sbin, 3, K)
        in [0, 1] and prev has this pass's codes appended.

    Raises:
        ShapeError: grid, dictionary or state shapes are incompatible
        MissingDictionaryError: neither ``pd`` nor ``provider`` yields a dictionary
    """
    config = config or InversionConfig()
    prev = prev if prev is not None else ConsistencyState.empty()
    pd = _resolve_dictionary(pd, provider)

    feat = pad_features(as_batch(feat), config.pad)
    feat = complete_channels(feat, pd.n_features)
    H, W, _, K = feat.shape
    positions = window_positions(H, W, pd.ny, pd.nx, K)
    if prev.prevnum > 0 and prev.prevnuma != len(positions):
        raise ShapeError(
            f"consistency state covers {prev.prevnuma} windows, this grid has {len(positions)}"
        )
    if prev.prevnum > 0 and prev.a.shape[0] != pd.n_atoms:
        raise ShapeError(
            f"consistency state has {prev.a.shape[0]} atoms, dictionary has {pd.n_atoms}"
        )

    windows = extract_windows(feat, pd.ny, pd.nx, config.eps)

    constrained = prev.prevnum > 0 and prev.sig != 0
    dblur = blurred_dictionary(pd, prev.sig) if constrained else None
    windows, dhog, mask = build_constraints(windows, pd.dhog, prev, dblur)

    lam = scaled_lambda(pd, windows.shape[0], prev.prevnum if constrained else 0)
    logger.debug("coding %d windows against %d atoms (lambda=%g, solver=%s)",
                 windows.shape[1], pd.n_atoms, lam, config.solver)
    a = solve_codes(windows, dhog, mask, lam, config)

    image = render(a, pd, positions, (H, W, K), config.pad, config.filter_sigma)
    return InversionResult(image, prev.append(a))
