"""Tests for quizparse.image_preprocess."""

from __future__ import annotations

import unittest

from PIL import Image

from quizparse.image_preprocess import (
    PreprocessOptions,
    _effective_scale,
    adjust_options,
    analyze_image,
    apply_gamma,
    binarize,
    enhance_edges,
    otsu_threshold,
    preprocess_image,
)


def _split_image(size: tuple[int, int] = (1000, 800), dark: int = 0, light: int = 255) -> Image.Image:
    img = Image.new("L", size, light)
    img.paste(dark, (0, 0, size[0] // 2, size[1]))
    return img


class TestAnalyzeImage(unittest.TestCase):
    def test_dark_small_flat_image(self) -> None:
        a = analyze_image(Image.new("RGB", (100, 50), (30, 30, 30)))
        self.assertTrue(a.is_dark)
        self.assertTrue(a.is_low_contrast)
        self.assertTrue(a.is_low_resolution)
        self.assertFalse(a.is_bright)
        self.assertEqual(a.contrast, 0)

    def test_high_contrast_large_image(self) -> None:
        a = analyze_image(_split_image())
        self.assertEqual(a.contrast, 255)
        self.assertAlmostEqual(a.brightness, 127.5)
        self.assertFalse(a.is_low_resolution)
        self.assertFalse(a.is_low_contrast)


class TestAdjustOptions(unittest.TestCase):
    def test_dark_low_res_image(self) -> None:
        a = analyze_image(Image.new("L", (100, 50), 30))
        opts = adjust_options(a)
        self.assertEqual(opts.scale, 3.0)
        self.assertEqual(opts.brightness, 130)
        self.assertEqual(opts.gamma, 0.8)
        self.assertEqual(opts.contrast, 180)
        self.assertTrue(opts.sharpen)

    def test_bright_image(self) -> None:
        a = analyze_image(Image.new("L", (1000, 800), 220))
        opts = adjust_options(a, PreprocessOptions(scale=1.0))
        self.assertEqual(opts.brightness, 90)
        self.assertEqual(opts.gamma, 1.2)
        self.assertEqual(opts.scale, 1.0)

    def test_good_image_is_unchanged(self) -> None:
        base = PreprocessOptions()
        self.assertIs(adjust_options(analyze_image(_split_image()), base), base)


class TestSteps(unittest.TestCase):
    def test_gamma_identity_and_curve(self) -> None:
        img = Image.new("L", (4, 4), 64)
        self.assertIs(apply_gamma(img, 1.0), img)
        self.assertEqual(apply_gamma(img, 2.0).getpixel((0, 0)), 128)

    def test_otsu_and_binarize(self) -> None:
        img = _split_image((20, 10), dark=10, light=200)
        cut = otsu_threshold(img)
        self.assertTrue(10 <= cut < 200)
        out = binarize(img, threshold=None)
        self.assertEqual(set(out.getdata()), {0, 255})

    def test_fixed_threshold(self) -> None:
        out = binarize(Image.new("L", (2, 2), 100), threshold=128)
        self.assertEqual(set(out.getdata()), {0})

    def test_edges(self) -> None:
        self.assertEqual(enhance_edges(Image.new("L", (10, 10), 90)).getextrema(), (0, 0))
        self.assertGreaterEqual(enhance_edges(_split_image((20, 20))).getextrema()[1], 254)

    def test_scale_is_capped_for_huge_images(self) -> None:
        self.assertEqual(_effective_scale(Image.new("L", (10000, 5000)), 2.0), 1.0)
        self.assertEqual(_effective_scale(Image.new("L", (100, 100)), 2.0), 2.0)
        self.assertEqual(_effective_scale(Image.new("L", (100, 100)), 0), 1.0)


class TestPreprocessImage(unittest.TestCase):
    def test_chain_upscales_and_grays(self) -> None:
        out = preprocess_image(Image.new("RGB", (100, 50), (200, 200, 200)))
        self.assertEqual(out.mode, "L")
        self.assertEqual(out.size, (300, 150))

    def test_non_adaptive_binarized(self) -> None:
        opts = PreprocessOptions(scale=1.0, binarize=True, threshold=None, denoise=False)
        out = preprocess_image(_split_image((40, 20)), opts, adaptive=False)
        self.assertEqual(out.size, (40, 20))
        self.assertTrue(set(out.getdata()) <= {0, 255})


if __name__ == "__main__":
    unittest.main()
