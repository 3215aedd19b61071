"""
Paired HOG/grayscale dictionary.

A paired dictionary holds two aligned atom sets: column ``i`` of ``dhog`` is a
HOG window and column ``i`` of ``dgray`` is the grayscale patch it was
computed from. Inversion codes a HOG window against ``dhog`` and renders the
same code through ``dgray``, so the two matrices must always keep the same
column count and order.

Layout:
    dhog:  (ny * nx * n_features, n_atoms), rows in C order over (y, x, channel)
    dgray: ((ny + 2) * sbin * (nx + 2) * sbin, n_atoms), rows in C order over (y, x)

The dictionary is learned elsewhere. This module only validates it, derives
the blurred copy used by the consistency term, and offers a small loader plus
a lazy provider for callers that want a process-wide default.
"""

from __future__ import annotations
import logging
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import numpy as np
from scipy import io as sio
from scipy.io.matlab import MatReadError
from scipy.ndimage import gaussian_filter

from .errors import MissingDictionaryError, ShapeError

logger = logging.getLogger(__name__)

_REQUIRED_KEYS = ("dhog", "dgray", "ny", "nx", "sbin", "lambda")


@dataclass(frozen=True, eq=False)
class PairedDictionary:
    dhog: np.ndarray
    dgray: np.ndarray
    ny: int
    nx: int
    sbin: int
    lam: float

    def __post_init__(self):
        dhog = np.asarray(self.dhog, dtype=float)
        dgray = np.asarray(self.dgray, dtype=float)
        if dhog.ndim != 2 or dgray.ndim != 2:
            raise ShapeError("dhog and dgray must be 2-D (rows x atoms)")
        if dhog.shape[1] != dgray.shape[1]:
            raise ShapeError(
                f"paired dictionary has {dhog.shape[1]} HOG atoms but {dgray.shape[1]} gray atoms"
            )
        if min(self.ny, self.nx, self.sbin) <= 0:
            raise ShapeError("ny, nx and sbin must be positive")
        if dhog.shape[0] % (self.ny * self.nx) != 0:
            raise ShapeError(
                f"dhog has {dhog.shape[0]} rows, not a multiple of ny*nx={self.ny * self.nx}"
            )
        py, px = self.patch_shape
        if dgray.shape[0] != py * px:
            raise ShapeError(f"dgray has {dgray.shape[0]} rows, expected {py}*{px}={py * px}")
        object.__setattr__(self, "dhog", dhog)
        object.__setattr__(self, "dgray", dgray)
        object.__setattr__(self, "ny", int(self.ny))
        object.__setattr__(self, "nx", int(self.nx))
        object.__setattr__(self, "sbin", int(self.sbin))
        object.__setattr__(self, "lam", float(self.lam))

    @property
    def n_atoms(self) -> int:
        return self.dhog.shape[1]

    @property
    def n_features(self) -> int:
        """Channels per HOG cell."""
        return self.dhog.shape[0] // (self.ny * self.nx)

    @property
    def patch_shape(self) -> Tuple[int, int]:
        """Pixel size of one rendered patch (one cell of context on every side)."""
        return (self.ny + 2) * self.sbin, (self.nx + 2) * self.sbin


def blurred_dictionary(pd: PairedDictionary, sig: float) -> np.ndarray:
    """
    Gaussian-filtered copy of the gray atoms used by the consistency term.

    Each atom is reshaped to its patch and filtered with bandwidth ``|sig|``.
    Positive ``sig`` keeps the low-pass result; negative ``sig`` returns the
    high-pass residual ``atom - lowpass(atom)``.

    Returns:
        Array with the same shape as ``pd.dgray``.
    """
    if sig == 0:
        raise ValueError("sig must be non-zero to build a blurred dictionary")
    py, px = pd.patch_shape
    atoms = pd.dgray.T.reshape(pd.n_atoms, py, px)
    low = gaussian_filter(atoms, sigma=(0.0, abs(sig), abs(sig)), mode="constant")
    out = low if sig > 0 else atoms - low
    return out.reshape(pd.n_atoms, py * px).T


def _scalar(value) -> float:
    return float(np.asarray(value).squeeze())


def load_paired_dictionary(path: Union[str, Path]) -> PairedDictionary:
    """
    Read a paired dictionary from ``.npz`` or a MATLAB ``.mat`` file.

    ``.npz`` files are expected in the row layout of this module. ``.mat``
    files written by the MATLAB learner store atoms column-major; they are
    reordered on load.
    """
    path = Path(path)
    if not path.exists():
        raise MissingDictionaryError(f"paired dictionary not found: {path}")

    try:
        data = sio.loadmat(str(path)) if path.suffix == ".mat" else np.load(path, allow_pickle=False)
    except (OSError, ValueError, MatReadError, zipfile.BadZipFile) as e:
        raise MissingDictionaryError(f"cannot read paired dictionary {path}: {e}") from e
    if isinstance(data, np.ndarray):
        raise MissingDictionaryError(f"paired dictionary {path} is not an .npz archive")
    if not isinstance(data, dict):
        with data as npz:
            data = {k: npz[k] for k in npz.files}

    missing = [k for k in _REQUIRED_KEYS if k not in data]
    if missing:
        raise MissingDictionaryError(f"{path} lacks dictionary fields: {', '.join(missing)}")

    ny, nx, sbin = int(_scalar(data["ny"])), int(_scalar(data["nx"])), int(_scalar(data["sbin"]))
    dhog = np.asarray(data["dhog"], dtype=float)
    dgray = np.asarray(data["dgray"], dtype=float)

    if path.suffix == ".mat":
        n_atoms = dhog.shape[1]
        n_features = dhog.shape[0] // (ny * nx)
        py, px = (ny + 2) * sbin, (nx + 2) * sbin
        dhog = dhog.reshape(ny, nx, n_features, n_atoms, order="F").reshape(-1, n_atoms)
        dgray = dgray.reshape(py, px, n_atoms, order="F").reshape(-1, n_atoms)

    pd = PairedDictionary(dhog=dhog, dgray=dgray, ny=ny, nx=nx, sbin=sbin,
                          lam=_scalar(data["lambda"]))
    logger.debug("loaded paired dictionary %s: %d atoms, window %dx%d, sbin %d",
                 path, pd.n_atoms, pd.ny, pd.nx, pd.sbin)
    return pd


def save_paired_dictionary(pd: PairedDictionary, path: Union[str, Path]) -> None:
    with open(path, "wb") as fh:
        np.savez(fh, dhog=pd.dhog, dgray=pd.dgray, ny=pd.ny, nx=pd.nx,
                 sbin=pd.sbin, **{"lambda": pd.lam})


class DictionaryProvider:
    """
    Lazily built default dictionary.

    The factory runs on the first call only; later calls return the cached
    dictionary. Owned by the caller and passed to the pipeline explicitly.

    Example:
        >>> provider = DictionaryProvider(lambda: load_paired_dictionary("pd.npz"))
        >>> result = invert_hog(feat, provider=provider)
    """

    def __init__(self, factory: Callable[[], PairedDictionary]):
        self._factory = factory
        self._pd: Optional[PairedDictionary] = None
        self._lock = threading.Lock()

    def __call__(self) -> PairedDictionary:
        with self._lock:
            if self._pd is None:
                pd = self._factory()
                if pd is None:
                    raise MissingDictionaryError("dictionary factory returned nothing")
                self._pd = pd
            return self._pd

    @property
    def loaded(self) -> bool:
        return self._pd is not None

    def reset(self) -> None:
        with self._lock:
            self._pd = None
