"""
Unit tests for window extraction and the shared window enumeration.
"""

import numpy as np
import pytest
from ihog import ShapeError, extract_windows, normalize_windows, window_positions
from ihog.windows import as_batch, complete_channels, pad_features
from tests.conftest import assert_unit_columns


class TestWindowPositions:

    def test_batch_outermost_then_rows_then_columns(self):
        positions = window_positions(3, 4, 2, 2, 2)

        assert positions.shape == (2 * 2 * 3, 3)
        np.testing.assert_array_equal(positions[:4], [[0, 0, 0], [0, 0, 1], [0, 0, 2], [0, 1, 0]])
        assert tuple(positions[6]) == (1, 0, 0)
        assert tuple(positions[-1]) == (1, 1, 2)

    def test_window_larger_than_grid(self):
        with pytest.raises(ShapeError):
            window_positions(3, 3, 4, 2, 1)


class TestExtractWindows:

    @pytest.mark.parametrize("H,W,K,ny,nx", [(6, 7, 1, 2, 3), (9, 9, 3, 5, 5), (4, 4, 2, 4, 4)])
    def test_window_count(self, H, W, K, ny, nx):
        feat = np.random.default_rng(0).random((H, W, 4, K))
        X = extract_windows(feat, ny, nx, eps=1e-16)

        assert X.shape == (ny * nx * 4, (H - ny + 1) * (W - nx + 1) * K)

    def test_columns_are_zero_mean_unit_norm(self):
        feat = np.random.default_rng(1).random((8, 8, 5, 2))
        X = extract_windows(feat, 3, 3, eps=1e-16)

        np.testing.assert_allclose(X.mean(axis=0), 0.0, atol=1e-12)
        assert_unit_columns(X)

    def test_zero_grid_gives_zero_windows(self):
        X = extract_windows(np.zeros((6, 6, 4, 1)), 2, 2, eps=np.finfo(float).eps)

        assert np.all(np.isfinite(X))
        assert np.all(X == 0)

    def test_column_matches_enumerated_slice(self):
        feat = np.random.default_rng(2).random((5, 6, 3, 2))
        X = extract_windows(feat, 2, 3, eps=0.0)
        positions = window_positions(5, 6, 2, 3, 2)

        for c in [0, 5, len(positions) - 1]:
            k, i, j = positions[c]
            expected = feat[i:i + 2, j:j + 3, :, k].reshape(-1)
            expected = expected - expected.mean()
            expected /= np.linalg.norm(expected)
            np.testing.assert_allclose(X[:, c], expected, atol=1e-12)

    def test_normalize_windows_constant_column(self):
        X = np.ones((10, 2))
        X[:, 1] = np.arange(10)
        Y = normalize_windows(X, eps=1e-16)

        assert np.all(Y[:, 0] == 0)
        assert np.linalg.norm(Y[:, 1]) == pytest.approx(1.0)


class TestGridPreparation:

    def test_pad_features(self):
        feat = np.ones((3, 4, 2, 1))
        padded = pad_features(feat, 5)

        assert padded.shape == (13, 14, 2, 1)
        assert padded[:5].sum() == 0 and padded[:, -5:].sum() == 0
        assert padded[5:8, 5:9].sum() == feat.sum()

    def test_occlusion_channel_appended(self):
        feat = np.ones((4, 4, 31, 2))
        full = complete_channels(feat, 32)

        assert full.shape == (4, 4, 32, 2)
        assert np.all(full[:, :, -1] == 0)
        assert complete_channels(full, 32) is full

    def test_channel_mismatch_raises(self):
        with pytest.raises(ShapeError):
            complete_channels(np.ones((4, 4, 20, 1)), 32)

    def test_as_batch(self):
        assert as_batch(np.zeros((4, 5, 6))).shape == (4, 5, 6, 1)
        with pytest.raises(ShapeError):
            as_batch(np.zeros((4, 5)))
        bad = np.zeros((4, 4, 2))
        bad[0, 0, 0] = np.nan
        with pytest.raises(ShapeError):
            as_batch(bad)
