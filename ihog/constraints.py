"""
Consistency constraints between successive inversions.

When a feature is inverted more than once, the codes of earlier passes are
folded into the current problem as extra rows. For every earlier pass ``i``
and window ``m`` one row is added to the HOG dictionary,

    sqrt(gam) * a_i[:, m].T @ dblur.T @ dblur

with a zero target, and that row is switched on only for window column ``m``.
``dblur`` is the Gaussian-filtered gray dictionary (see
``dictionary.blurred_dictionary``); the sign of ``sig`` picks low- or
high-pass filtering and ``sig == 0`` turns the term off.
"""

from __future__ import annotations
import logging
import zipfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .errors import ShapeError, StateFileError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ConsistencyState:
    """Codes of earlier passes, threaded explicitly from call to call.

    ``a`` has shape ``(n_atoms, n_windows, n_passes)``.
    """
    a: np.ndarray = field(default_factory=lambda: np.zeros((0, 0, 0)))
    gam: float = 10.0
    sig: float = 1.0

    def __post_init__(self):
        a = np.asarray(self.a, dtype=float)
        if a.ndim == 2:
            a = a[..., np.newaxis]
        if a.ndim != 3:
            raise ShapeError(f"consistency codes must be 3-D (atoms, windows, passes), got {a.ndim}-D")
        object.__setattr__(self, "a", a)

    @classmethod
    def empty(cls, gam: float = 10.0, sig: float = 1.0) -> "ConsistencyState":
        return cls(gam=gam, sig=sig)

    @property
    def prevnum(self) -> int:
        """Number of earlier passes."""
        return self.a.shape[2]

    @property
    def prevnuma(self) -> int:
        """Windows per earlier pass."""
        return self.a.shape[1]

    def append(self, codes: np.ndarray) -> "ConsistencyState":
        """New state with ``codes`` stacked as the latest pass."""
        codes = np.asarray(codes, dtype=float)
        if self.prevnum == 0:
            return replace(self, a=codes[..., np.newaxis])
        if codes.shape != self.a.shape[:2]:
            raise ShapeError(
                f"codes of shape {codes.shape} cannot extend passes of shape {self.a.shape[:2]}"
            )
        return replace(self, a=np.concatenate([self.a, codes[..., np.newaxis]], axis=2))

    def save(self, path: Union[str, Path]) -> None:
        """Write the state to exactly ``path`` (no suffix is appended)."""
        with open(path, "wb") as fh:
            np.savez(fh, a=self.a, gam=self.gam, sig=self.sig)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ConsistencyState":
        path = Path(path)
        if not path.is_file():
            raise StateFileError(f"consistency state not found: {path}")
        try:
            data = np.load(path, allow_pickle=False)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise StateFileError(f"cannot read consistency state {path}: {e}") from e
        if isinstance(data, np.ndarray):
            raise StateFileError(f"consistency state {path} is not an .npz archive")
        with data:
            missing = [k for k in ("a", "gam", "sig") if k not in data.files]
            if missing:
                raise StateFileError(f"{path} lacks state fields: {', '.join(missing)}")
            return cls(a=data["a"], gam=float(data["gam"]), sig=float(data["sig"]))


def consistency_rows(prev: ConsistencyState, dblur: np.ndarray) -> np.ndarray:
    """The ``prevnum * prevnuma`` extra HOG dictionary rows, pass-major."""
    if prev.a.shape[0] != dblur.shape[1]:
        raise ShapeError(
            f"consistency codes have {prev.a.shape[0]} atoms, dictionary has {dblur.shape[1]}"
        )
    gram = dblur.T @ dblur
    blocks = [np.sqrt(prev.gam) * prev.a[:, :, i].T @ gram for i in range(prev.prevnum)]
    return np.concatenate(blocks, axis=0)


def consistency_mask(prevnum: int, prevnuma: int, n_windows: int) -> np.ndarray:
    """Row ``i * prevnuma + m`` is active for window column ``m`` only."""
    return np.tile(np.eye(prevnuma, n_windows, dtype=bool), (prevnum, 1))


def build_constraints(windows: np.ndarray,
                      dhog: np.ndarray,
                      prev: ConsistencyState,
                      dblur: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Extend the coding problem with the consistency rows of ``prev``.

    Args:
        windows: Window matrix (hog_dim, n_windows)
        dhog: HOG dictionary (hog_dim, n_atoms)
        prev: Earlier passes
        dblur: Blurred gray dictionary, required when ``prev`` has passes and ``sig != 0``

    Returns:
        ``(windows, dhog, mask)`` with ``mask`` boolean and shaped like ``windows``.
    """
    if prev.prevnum == 0 or prev.sig == 0:
        return windows, dhog, np.ones(windows.shape, dtype=bool)
    if dblur is None:
        raise ValueError("a blurred dictionary is required when earlier passes are present")

    n_extra = prev.prevnum * prev.prevnuma
    n_windows = windows.shape[1]
    windows = np.concatenate([windows, np.zeros((n_extra, n_windows))], axis=0)
    dhog = np.concatenate([dhog, consistency_rows(prev, dblur)], axis=0)
    mask = np.concatenate([np.ones((dhog.shape[0] - n_extra, n_windows), dtype=bool),
                           consistency_mask(prev.prevnum, prev.prevnuma, n_windows)], axis=0)
    logger.debug("added %d consistency rows from %d passes (gam=%g, sig=%g)",
                 n_extra, prev.prevnum, prev.gam, prev.sig)
    return windows, dhog, mask


def mask_row_indices(mask: np.ndarray) -> List[np.ndarray]:
    """Active row indices of every column of ``mask``."""
    return [np.flatnonzero(mask[:, j]) for j in range(mask.shape[1])]
