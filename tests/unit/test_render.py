"""
Unit tests for patch rendering and overlap averaging.
"""

import numpy as np
import pytest
from ihog import blend_patches, gaussian_window, render, window_positions
from ihog.render import crop_margin, minmax_normalize, to_rgb


class TestGaussianWindow:

    def test_normalized_and_centered(self):
        g = gaussian_window((28, 20), 9.0)

        assert g.shape == (28, 20)
        assert g.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(g, g[::-1, ::-1])
        assert g[13:15, 9:11].min() == pytest.approx(g.max())

    def test_sigma_controls_spread(self):
        narrow = gaussian_window((21, 21), 1.0)
        wide = gaussian_window((21, 21), 9.0)

        assert narrow[10, 10] > wide[10, 10]
        assert narrow[0, 0] < wide[0, 0]


class TestBlendPatches:

    @pytest.mark.parametrize("value", [0.25, -3.0])
    def test_constant_patches_blend_to_constant(self, value):
        ny, nx, sbin, H, W, K = 3, 2, 4, 9, 8, 2
        py, px = (ny + 2) * sbin, (nx + 2) * sbin
        positions = window_positions(H, W, ny, nx, K)
        recon = np.full((py * px, len(positions)), value)

        im = blend_patches(recon, positions, ((H + 2) * sbin, (W + 2) * sbin, K),
                           (py, px), sbin, gaussian_window((py, px), 9.0))

        np.testing.assert_allclose(im, value)

    def test_single_patch_is_reproduced(self):
        patch = np.arange(16.0).reshape(4, 4)
        positions = np.array([[0, 1, 1]])
        im = blend_patches(patch.reshape(-1, 1), positions, (8, 8, 1), (4, 4), 2,
                           gaussian_window((4, 4), 2.0))

        np.testing.assert_allclose(im[2:6, 2:6, 0], patch)
        assert np.all(im[:2] == 0) and np.all(im[6:] == 0)

    def test_overlap_is_averaged(self):
        positions = np.array([[0, 0, 0], [0, 0, 1]])
        recon = np.stack([np.full(4, 1.0), np.full(4, 3.0)], axis=1)
        im = blend_patches(recon, positions, (2, 3, 1), (2, 2), 1, np.full((2, 2), 0.25))

        np.testing.assert_allclose(im[:, :, 0], [[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]])


class TestPostProcessing:

    def test_minmax_per_item(self):
        im = np.random.default_rng(0).standard_normal((5, 6, 3)) * [1.0, 10.0, 0.1]
        out = minmax_normalize(im)

        for k in range(3):
            assert out[:, :, k].min() == pytest.approx(0.0)
            assert out[:, :, k].max() == pytest.approx(1.0)

    def test_minmax_constant_item_is_zero(self):
        out = minmax_normalize(np.full((4, 4, 1), 7.0))

        assert np.all(out == 0)

    def test_crop_and_rgb(self):
        im = np.random.default_rng(1).random((30, 26, 2))
        cropped = crop_margin(im, 2, 3)
        rgb = to_rgb(cropped)

        assert cropped.shape == (18, 14, 2)
        np.testing.assert_array_equal(cropped, im[6:24, 6:20])
        assert rgb.shape == (18, 14, 3, 2)
        np.testing.assert_array_equal(rgb[:, :, 0], rgb[:, :, 2])


class TestRender:

    def test_output_shape_and_range(self, small_dictionary):
        H, W, K, pad = 8, 9, 2, 2
        positions = window_positions(H, W, small_dictionary.ny, small_dictionary.nx, K)
        codes = np.random.default_rng(2).random((small_dictionary.n_atoms, len(positions)))

        im = render(codes, small_dictionary, positions, (H, W, K), pad, 9.0)

        sbin = small_dictionary.sbin
        assert im.shape == ((H - 2 * pad + 2) * sbin, (W - 2 * pad + 2) * sbin, 3, K)
        assert im.min() >= 0.0 and im.max() <= 1.0

