"""
Test configuration and fixtures for HOG inversion tests.

Provides synthetic paired dictionaries and feature grids shared by all test modules.
"""

import numpy as np
import pytest
from ihog import PairedDictionary, InversionConfig


def make_paired_dictionary(ny=5, nx=5, sbin=4, n_atoms=40, n_features=32, lam=0.005, seed=0):
    """Random paired dictionary with unit-norm atoms on both sides."""
    rng = np.random.default_rng(seed)
    dhog = rng.random((ny * nx * n_features, n_atoms))
    dhog -= dhog.mean(axis=0, keepdims=True)
    dhog /= np.linalg.norm(dhog, axis=0, keepdims=True)
    py, px = (ny + 2) * sbin, (nx + 2) * sbin
    dgray = rng.standard_normal((py * px, n_atoms))
    dgray /= np.linalg.norm(dgray, axis=0, keepdims=True)
    return PairedDictionary(dhog=dhog, dgray=dgray, ny=ny, nx=nx, sbin=sbin, lam=lam)


@pytest.fixture
def random_seed():
    """Fixed random seed for reproducible tests."""
    return 42


@pytest.fixture
def paired_dictionary():
    """5x5 window, 4 pixel cells, 32 channels per cell."""
    return make_paired_dictionary()


@pytest.fixture
def small_dictionary():
    """Tiny dictionary for fast unit tests: 2x2 window, 2 pixel cells, 4 channels."""
    return make_paired_dictionary(ny=2, nx=2, sbin=2, n_atoms=12, n_features=4, lam=0.01, seed=1)


@pytest.fixture
def hog_grid(random_seed):
    """Non-negative 12x12 HOG grid without the occlusion channel."""
    rng = np.random.default_rng(random_seed)
    return rng.random((12, 12, 31, 1))


@pytest.fixture
def fast_config():
    """Fewer iterations for quick pipeline runs."""
    return InversionConfig(max_iter=200, tol=1e-5)


def assert_unit_columns(X, tolerance=1e-8):
    """Assert that every non-zero column has unit L2 norm."""
    norms = np.linalg.norm(X, axis=0)
    nonzero = norms > 0
    np.testing.assert_allclose(norms[nonzero], 1.0, atol=tolerance,
                               err_msg="Window columns must be unit normalized")


def consistency_penalty(codes, prev_codes, dblur):
    """Sum over windows of (a_prev_m^T G a_m)^2 with G = dblur^T dblur."""
    gram = dblur.T @ dblur
    return float(np.sum(np.einsum("km,kl,lm->m", prev_codes, gram, codes) ** 2))
