"""Adaptive image enhancement ahead of optical recognition.

The image is analysed first (brightness, contrast, resolution) and the
requested options are nudged to suit it. Steps then run in a fixed order:
filter pass (contrast/brightness/saturation/blur + scale), gamma, grayscale,
sharpen, denoise, binarize.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import cv2
import numpy as np
from PIL import Image, ImageEnhance, ImageFilter

logger = logging.getLogger(__name__)

LOW_CONTRAST_RANGE = 100
DARK_BRIGHTNESS = 100
BRIGHT_BRIGHTNESS = 180
MIN_WIDTH = 800
MIN_HEIGHT = 600
DEFAULT_THRESHOLD = 128
# Upscaling stops growing the image past this many pixels.
MAX_SCALED_PIXELS = 40_000_000

SHARPEN_KERNEL = np.array(
    [[0, -1, 0],
     [-1, 5, -1],
     [0, -1, 0]],
    dtype=np.float32,
)


@dataclass(frozen=True)
class ImageAnalysis:
    brightness: float
    contrast: int
    width: int
    height: int
    is_low_contrast: bool
    is_dark: bool
    is_bright: bool
    is_low_resolution: bool


@dataclass(frozen=True)
class PreprocessOptions:
    """Enhancement parameters; percentages are relative to 100 (unchanged)."""

    scale: float = 2.0
    contrast: int = 150
    brightness: int = 110
    saturation: int = 100
    gamma: float = 1.0
    blur: float = 0.0
    grayscale: bool = True
    sharpen: bool = True
    denoise: bool = True
    binarize: bool = False
    threshold: int | None = DEFAULT_THRESHOLD  # None -> Otsu


def analyze_image(image: Image.Image) -> ImageAnalysis:
    """Measure mean luma, luma range and size."""

    gray = np.asarray(image.convert("L"), dtype=np.uint8)
    if gray.size == 0:
        brightness, contrast = 0.0, 0
    else:
        brightness = float(gray.mean())
        contrast = int(gray.max()) - int(gray.min())
    width, height = image.size
    return ImageAnalysis(
        brightness=brightness,
        contrast=contrast,
        width=width,
        height=height,
        is_low_contrast=contrast < LOW_CONTRAST_RANGE,
        is_dark=brightness < DARK_BRIGHTNESS,
        is_bright=brightness > BRIGHT_BRIGHTNESS,
        is_low_resolution=width < MIN_WIDTH or height < MIN_HEIGHT,
    )


def adjust_options(
    analysis: ImageAnalysis, options: PreprocessOptions | None = None,
) -> PreprocessOptions:
    """Derive parameters suited to the analysed image."""

    opts = options or PreprocessOptions()
    changes: dict = {}
    if analysis.is_low_resolution:
        changes["scale"] = max(opts.scale or 2.0, 3.0)
    if analysis.is_dark:
        changes["brightness"] = max(opts.brightness, 130)
        changes["gamma"] = min(opts.gamma, 0.8)
    elif analysis.is_bright:
        changes["brightness"] = min(opts.brightness, 90)
        changes["gamma"] = max(opts.gamma, 1.2)
    if analysis.is_low_contrast:
        changes["contrast"] = max(opts.contrast, 180)
        changes["sharpen"] = True
    return replace(opts, **changes) if changes else opts


def _effective_scale(image: Image.Image, scale: float) -> float:
    width, height = image.size
    if scale <= 0:
        return 1.0
    if width * height * scale * scale > MAX_SCALED_PIXELS:
        capped = (MAX_SCALED_PIXELS / max(width * height, 1)) ** 0.5
        return max(1.0, capped)
    return scale


def _filter_pass(image: Image.Image, opts: PreprocessOptions) -> Image.Image:
    img = image
    if opts.contrast != 100:
        img = ImageEnhance.Contrast(img).enhance(opts.contrast / 100)
    if opts.brightness != 100:
        img = ImageEnhance.Brightness(img).enhance(opts.brightness / 100)
    if opts.saturation != 100 and img.mode == "RGB":
        img = ImageEnhance.Color(img).enhance(opts.saturation / 100)
    if opts.blur > 0:
        img = img.filter(ImageFilter.GaussianBlur(radius=opts.blur))
    scale = _effective_scale(img, opts.scale)
    if scale != 1.0:
        width, height = img.size
        img = img.resize(
            (max(1, int(width * scale)), max(1, int(height * scale))),
            Image.Resampling.LANCZOS,
        )
    return img


def apply_gamma(image: Image.Image, gamma: float) -> Image.Image:
    """Apply ``out = (in/255) ** (1/gamma) * 255`` through a lookup table."""

    if gamma <= 0 or gamma == 1.0:
        return image
    levels = np.arange(256, dtype=np.float64) / 255.0
    lut = np.clip(np.power(levels, 1.0 / gamma) * 255.0 + 0.5, 0, 255).astype(np.uint8)
    return image.point(lut.tolist() * len(image.getbands()))


def sharpen(image: Image.Image) -> Image.Image:
    arr = np.asarray(image)
    out = cv2.filter2D(arr, -1, SHARPEN_KERNEL)
    return Image.fromarray(out)


def otsu_threshold(gray: Image.Image) -> int:
    """Otsu threshold of a grayscale image (between-class variance maximum)."""

    hist = np.asarray(gray.convert("L").histogram(), dtype=np.float64)
    total = hist.sum()
    if total == 0:
        return DEFAULT_THRESHOLD
    levels = np.arange(256, dtype=np.float64)
    weight_bg = np.cumsum(hist)
    weight_fg = total - weight_bg
    sum_bg = np.cumsum(hist * levels)
    sum_total = sum_bg[-1]
    valid = (weight_bg > 0) & (weight_fg > 0)
    if not valid.any():
        return DEFAULT_THRESHOLD
    mean_bg = np.where(valid, sum_bg / np.maximum(weight_bg, 1), 0.0)
    mean_fg = np.where(valid, (sum_total - sum_bg) / np.maximum(weight_fg, 1), 0.0)
    variance = np.where(valid, weight_bg * weight_fg * (mean_bg - mean_fg) ** 2, -1.0)
    return int(np.argmax(variance))


def binarize(gray: Image.Image, threshold: int | None = DEFAULT_THRESHOLD) -> Image.Image:
    gray = gray.convert("L")
    cut = otsu_threshold(gray) if threshold is None else threshold
    return gray.point(lambda x: 255 if x > cut else 0)


def enhance_edges(image: Image.Image) -> Image.Image:
    """Sobel gradient magnitude, rescaled to 0..255."""

    gray = np.asarray(image.convert("L"), dtype=np.float64)
    dx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    dy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(dx, dy)
    peak = magnitude.max()
    if peak > 0:
        magnitude = magnitude * (255.0 / peak)
    return Image.fromarray(magnitude.astype(np.uint8))


def preprocess_image(
    image: Image.Image,
    options: PreprocessOptions | None = None,
    adaptive: bool = True,
) -> Image.Image:
    """Run the enhancement chain and return a new image."""

    opts = options or PreprocessOptions()
    if adaptive:
        analysis = analyze_image(image)
        opts = adjust_options(analysis, opts)
        logger.debug("Image analysis %s -> options %s", analysis, opts)

    img = image.convert("L") if image.mode in ("1", "L", "LA", "I", "F") else image.convert("RGB")
    img = _filter_pass(img, opts)
    img = apply_gamma(img, opts.gamma)
    if opts.grayscale:
        img = img.convert("L")
    if opts.sharpen:
        img = sharpen(img)
    if opts.denoise:
        img = img.filter(ImageFilter.MedianFilter(size=3))
    if opts.binarize:
        img = binarize(img, opts.threshold)
    return img
