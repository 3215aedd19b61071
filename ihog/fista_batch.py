"""
Masked non-negative FISTA for batches of LASSO problems.

Solves, independently for every column j of X:

    minimize: (1/2)||m_j * (x_j - D a_j)||² + λ||a_j||₁   subject to a_j ≥ 0

Where:
    X: Data matrix (n_features, n_samples)
    D: Dictionary matrix (n_features, n_atoms)
    M: Boolean mask (n_features, n_samples); rows with m_j = 0 do not enter column j
    A: Non-negative sparse codes (n_atoms, n_samples)

All columns share one Lipschitz bound ||D||₂², which dominates every masked
column's ||diag(m_j) D||₂², so the whole batch iterates with a single step.

References:
    Beck & Teboulle (2009). A Fast Iterative Shrinkage-Thresholding Algorithm
    for Linear Inverse Problems. SIAM Journal on Imaging Sciences.
"""

import numpy as np


def nonneg_soft_thresh(X, t):
    """
    Proximal operator of t||·||₁ plus the indicator of the non-negative orthant.

    prox(x) = max(x - t, 0)
    """
    return np.maximum(X - t, 0.0)


def power_iter_L(D, n_iter=50, tol=1e-7, rng=None):
    """
    Lipschitz constant L = ||D^T D||₂ by power iteration.

    Args:
        D: Dictionary matrix (n_features, n_atoms)
        n_iter: Maximum power iterations (default: 50)
        tol: Relative convergence tolerance (default: 1e-7)
        rng: Seed or generator for the start vector; fixed by default so
            repeated calls give identical step sizes

    Returns:
        Lipschitz constant, at least 1e-12
    """
    rng = np.random.default_rng(0 if rng is None else rng)
    K = D.shape[1]
    v = rng.normal(size=(K,))
    v /= (np.linalg.norm(v) + 1e-12)
    last = 0.0
    lam = 0.0
    DtD = D.T @ D
    for _ in range(n_iter):
        v = DtD @ v
        nrm = np.linalg.norm(v) + 1e-12
        v = v / nrm
        lam = float(v @ (DtD @ v))
        if abs(lam - last) < tol * max(1.0, last):
            break
        last = lam
    # power iteration approaches from below; pad so the step stays stable
    return max(1.01 * lam, 1e-12)


def fista_batch(D, X, lam, mask=None, L=None, max_iter=500, tol=1e-6):
    """
    Batch masked non-negative FISTA.

    Args:
        D: Dictionary matrix (n_features, n_atoms)
        X: Data matrix (n_features, n_samples)
        lam: L1 regularization parameter λ ≥ 0, a scalar or a (1, n_samples) row
            giving each column its own weight
        mask: Boolean (n_features, n_samples) or None for all rows active
        L: Lipschitz constant (auto-computed if None)
        max_iter: Maximum iterations (default: 500)
        tol: Relative change tolerance (default: 1e-6)

    Returns:
        (A, n_iter): codes (n_atoms, n_samples) and the iterations used.

    Algorithm Steps:
        1. Initialize: A₀ = 0, Y₀ = A₀, t₀ = 1
        2. Gradient: G = Dᵀ(M ⊙ (D Y_k - X))
        3. Prox step: A_{k+1} = max(Y_k - G/L - λ/L, 0)
        4. Acceleration: Y_{k+1} = A_{k+1} + ((t_k-1)/t_{k+1})(A_{k+1} - A_k)
    """
    D = np.asarray(D, float); X = np.asarray(X, float)
    p, K = D.shape; N = X.shape[1]
    W = None if mask is None else np.asarray(mask, dtype=float)
    if W is not None:
        X = X * W
    if L is None:
        L = power_iter_L(D)
    A = np.zeros((K, N)); Y = np.zeros_like(A); t = 1.0
    for it in range(max_iter):
        R = D @ Y - X
        if W is not None:
            R *= W
        G = D.T @ R
        A_next = nonneg_soft_thresh(Y - G / L, lam / L)
        t_next = (1 + np.sqrt(1 + 4*t*t)) / 2.0
        Y = A_next + ((t - 1) / t_next) * (A_next - A)
        if np.linalg.norm(A_next - A) <= tol * max(1.0, np.linalg.norm(A)):
            return A_next, it + 1
        A, t = A_next, t_next
    return A, max_iter
