"""
Filter Effects - the per-frame visual catalog

Each effect is a plain function (buffer, width, height) -> None that
mutates the PixelBuffer in place. Effects keep no state between frames:
gradients, block sizes and kernels are fixed constants or recomputed.

Effects are keyed by their display name ("Black & White", "Pixel Art", ...)
because that is what the filter catalog stores.
"""

from enum import Enum
from typing import Callable, Dict, Optional

import numpy as np

from filtercam.convolution import gaussian_blur
from filtercam.edges import SobelEdgeDetector
from filtercam.pixel_buffer import PixelBuffer, check_geometry, to_channel


EffectFn = Callable[[PixelBuffer, int, int], None]


class EffectId(str, Enum):
    """Stable effect identifiers. Values are the catalog names, case- and punctuation-exact."""
    NORMAL = "Normal"
    BLACK_AND_WHITE = "Black & White"
    BRIGHTNESS = "Brightness"
    CONTRAST = "Contrast"
    DISNEY = "Disney"
    ANIME = "Anime"
    COMIC_HERO = "Comic Hero"
    PIXAR = "Pixar"
    VINTAGE = "Vintage"
    RAINBOW = "Rainbow"
    PIXEL_ART = "Pixel Art"
    CARTOON = "Cartoon"
    OIL_PAINTING = "Oil Painting"
    COMIC_BOOK = "Comic Book"
    NEON = "Neon"


# ============================================================================
# Tuning constants
# ============================================================================

BOOST_FACTOR = 1.5
CONTRAST_LEVEL = 1.5
CONTRAST_FACTOR = (259 * (CONTRAST_LEVEL + 255)) / (255 * (259 - CONTRAST_LEVEL))

SEPIA_MATRIX = np.array([
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
])

RAINBOW_OPACITY = 0.2
RAINBOW_STOPS = np.array([0.0, 0.2, 0.4, 0.6, 0.8, 1.0])
RAINBOW_COLORS = np.array([
    [255, 0, 0],      # red
    [255, 165, 0],    # orange
    [255, 255, 0],    # yellow
    [0, 128, 0],      # green
    [0, 0, 255],      # blue
    [238, 130, 238],  # violet
], dtype=np.float64)

PIXEL_ART_BLOCK = 10

CARTOON_STEP = 32
CARTOON_EDGE_THRESHOLD = 30

OIL_PAINTING_RADIUS = 3

COMIC_BOOK_STEP = 64

NEON_GLOW_THRESHOLD = 200

ANIME_EDGE_THRESHOLD = 50
ANIME_STEP = 32

DISNEY_BOOST = 1.2
DISNEY_SKIN_FACTORS = np.array([0.9, 1.1, 1.1])
DISNEY_BLUR_RADIUS = 1

HALFTONE_EVERY = 4
HALFTONE_BOOST = 1.2

PIXAR_FACTORS = np.array([1.1, 1.15, 1.1])
PIXAR_SHADOW_LEVEL = 100
PIXAR_SHADOW_BOOST = 1.2
PIXAR_BLUR_RADIUS = 0.5


# ============================================================================
# Helpers
# ============================================================================

def _rgb(buffer: PixelBuffer) -> np.ndarray:
    """Float copy of the colour channels."""
    return buffer.data[:, :, :3].astype(np.float64)


def _quantize(values: np.ndarray, step: int) -> np.ndarray:
    """Round to the nearest multiple of step (half up). Not yet clamped."""
    return np.floor(values / step + 0.5) * step


def _brightness(rgb: np.ndarray) -> np.ndarray:
    return rgb.sum(axis=2) / 3


def _contrast(rgb: np.ndarray) -> np.ndarray:
    return CONTRAST_FACTOR * (rgb - 128) + 128


# ============================================================================
# Per-pixel effects
# ============================================================================

def normal(buffer: PixelBuffer, width: int, height: int) -> None:
    check_geometry(buffer, width, height)


def black_and_white(buffer: PixelBuffer, width: int, height: int) -> None:
    check_geometry(buffer, width, height)
    gray = to_channel(_brightness(_rgb(buffer)))
    buffer.data[:, :, :3] = gray[:, :, np.newaxis]


def brightness(buffer: PixelBuffer, width: int, height: int) -> None:
    check_geometry(buffer, width, height)
    buffer.data[:, :, :3] = to_channel(_rgb(buffer) * BOOST_FACTOR)


def contrast(buffer: PixelBuffer, width: int, height: int) -> None:
    check_geometry(buffer, width, height)
    buffer.data[:, :, :3] = to_channel(_contrast(_rgb(buffer)))


def vintage(buffer: PixelBuffer, width: int, height: int) -> None:
    """Classic sepia tone via a fixed 3x3 colour matrix."""
    check_geometry(buffer, width, height)
    buffer.data[:, :, :3] = to_channel(_rgb(buffer) @ SEPIA_MATRIX.T)


def neon(buffer: PixelBuffer, width: int, height: int) -> None:
    """Boost colours, then blow out anything already bright to pure white."""
    check_geometry(buffer, width, height)
    boosted = to_channel(_rgb(buffer) * BOOST_FACTOR)
    glow = _brightness(boosted.astype(np.float64)) > NEON_GLOW_THRESHOLD
    boosted[glow] = 255
    buffer.data[:, :, :3] = boosted


def comic_book(buffer: PixelBuffer, width: int, height: int) -> None:
    """Posterize to steps of 64, then threshold to black / white."""
    check_geometry(buffer, width, height)
    posterized = np.clip(_quantize(_rgb(buffer), COMIC_BOOK_STEP), 0, 255)
    white = _brightness(posterized) >= 128
    buffer.data[:, :, :3] = np.where(white[:, :, np.newaxis], 255, 0).astype(np.uint8)


def cartoon(buffer: PixelBuffer, width: int, height: int) -> None:
    """
    Quantize to steps of 32 and draw cheap horizontal edges.

    A pixel turns black when its quantized red differs from the quantized
    red of its left neighbour in the same row by more than 30. The first
    column has no left neighbour and is never an edge.
    """
    check_geometry(buffer, width, height)
    quantized = to_channel(_quantize(_rgb(buffer), CARTOON_STEP))

    red = quantized[:, :, 0].astype(np.int16)
    edges = np.zeros((height, width), dtype=bool)
    edges[:, 1:] = np.abs(red[:, 1:] - red[:, :-1]) > CARTOON_EDGE_THRESHOLD
    quantized[edges] = 0

    buffer.data[:, :, :3] = quantized


def rainbow(buffer: PixelBuffer, width: int, height: int) -> None:
    """
    Wash a horizontal rainbow gradient over the frame at 20% opacity.

    The gradient is sampled at pixel centres and composited source-over,
    so opaque frames stay opaque.
    """
    check_geometry(buffer, width, height)
    if width == 0 or height == 0:
        return

    positions = (np.arange(width, dtype=np.float64) + 0.5) / width
    gradient = np.stack(
        [np.interp(positions, RAINBOW_STOPS, RAINBOW_COLORS[:, c]) for c in range(3)],
        axis=1,
    )  # (width, 3)

    src_alpha = RAINBOW_OPACITY
    dst_alpha = buffer.data[:, :, 3].astype(np.float64) / 255
    out_alpha = src_alpha + dst_alpha * (1 - src_alpha)

    colour = (
        gradient[np.newaxis, :, :] * src_alpha
        + _rgb(buffer) * (dst_alpha * (1 - src_alpha))[:, :, np.newaxis]
    ) / out_alpha[:, :, np.newaxis]

    buffer.data[:, :, :3] = to_channel(colour)
    buffer.data[:, :, 3] = to_channel(out_alpha * 255)


# ============================================================================
# Neighbourhood effects
# ============================================================================

def pixel_art(buffer: PixelBuffer, width: int, height: int) -> None:
    """Mosaic: every 10x10 block takes the colour of its top-left pixel."""
    check_geometry(buffer, width, height)
    n = PIXEL_ART_BLOCK
    samples = buffer.data[::n, ::n]
    mosaic = np.repeat(np.repeat(samples, n, axis=0), n, axis=1)
    buffer.data[...] = mosaic[:height, :width]


def oil_painting(buffer: PixelBuffer, width: int, height: int) -> None:
    """
    Box-average each colour channel over a (2r+1)^2 neighbourhood.

    Only interior pixels (at least r from every edge) are written, so the
    window never leaves the frame. Averages are taken from the unmodified
    source, not from already-painted neighbours.
    """
    check_geometry(buffer, width, height)
    r = OIL_PAINTING_RADIUS
    if width <= 2 * r or height <= 2 * r:
        return

    rgb = buffer.data[:, :, :3].astype(np.int64)
    integral = np.zeros((height + 1, width + 1, 3), dtype=np.int64)
    integral[1:, 1:] = rgb.cumsum(axis=0).cumsum(axis=1)

    d = 2 * r + 1
    totals = (
        integral[d:, d:]
        - integral[:-d, d:]
        - integral[d:, :-d]
        + integral[:-d, :-d]
    )
    buffer.data[r:height - r, r:width - r, :3] = to_channel(totals / (d * d))


_anime_edges = SobelEdgeDetector(threshold=ANIME_EDGE_THRESHOLD, channel=0)


def anime(buffer: PixelBuffer, width: int, height: int) -> None:
    """
    Cel shading: black Sobel edges over flat quantized colour.

    Edges come from the red channel. The 1-pixel border keeps its source
    colour.
    """
    check_geometry(buffer, width, height)
    interior = SobelEdgeDetector.interior_mask(width, height)
    edges = _anime_edges.edge_mask(buffer)

    quantized = to_channel(_quantize(_rgb(buffer), ANIME_STEP))
    quantized[edges] = 0

    buffer.data[:, :, :3][interior] = quantized[interior]


def disney(buffer: PixelBuffer, width: int, height: int) -> None:
    """Brighter colours, softened skin tones, light blur."""
    check_geometry(buffer, width, height)
    rgb = _rgb(buffer)
    r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]

    skin = (r > 95) & (g > 40) & (b > 20) & (r > g) & (r > b)
    out = np.where(skin[:, :, np.newaxis], rgb * DISNEY_SKIN_FACTORS, rgb * DISNEY_BOOST)

    buffer.data[:, :, :3] = to_channel(out)
    gaussian_blur(buffer, DISNEY_BLUR_RADIUS)


def comic_hero(buffer: PixelBuffer, width: int, height: int) -> None:
    """
    Contrast boost with a halftone dot on every 4th pixel (by flat index).

    Halftone pixels go black when dark (< 128) or get a 1.2x boost when light.
    """
    check_geometry(buffer, width, height)
    rgb = _rgb(buffer)
    out = _contrast(rgb)

    flat_index = np.arange(width * height).reshape(height, width)
    halftone = flat_index % HALFTONE_EVERY == 0
    light = _brightness(rgb) >= 128

    out = np.where((halftone & light)[:, :, np.newaxis], rgb * HALFTONE_BOOST, out)
    out[halftone & ~light] = 0

    buffer.data[:, :, :3] = to_channel(out)


def pixar(buffer: PixelBuffer, width: int, height: int) -> None:
    """Vibrant colours with lifted shadows, then a very light blur."""
    check_geometry(buffer, width, height)
    rgb = _rgb(buffer)
    shadow = _brightness(rgb) < PIXAR_SHADOW_LEVEL
    out = np.where(shadow[:, :, np.newaxis], rgb * PIXAR_SHADOW_BOOST, rgb * PIXAR_FACTORS)

    buffer.data[:, :, :3] = to_channel(out)
    gaussian_blur(buffer, PIXAR_BLUR_RADIUS)


# ============================================================================
# Catalog
# ============================================================================

EFFECTS: Dict[EffectId, EffectFn] = {
    EffectId.NORMAL: normal,
    EffectId.BLACK_AND_WHITE: black_and_white,
    EffectId.BRIGHTNESS: brightness,
    EffectId.CONTRAST: contrast,
    EffectId.DISNEY: disney,
    EffectId.ANIME: anime,
    EffectId.COMIC_HERO: comic_hero,
    EffectId.PIXAR: pixar,
    EffectId.VINTAGE: vintage,
    EffectId.RAINBOW: rainbow,
    EffectId.PIXEL_ART: pixel_art,
    EffectId.CARTOON: cartoon,
    EffectId.OIL_PAINTING: oil_painting,
    EffectId.COMIC_BOOK: comic_book,
    EffectId.NEON: neon,
}

_BY_NAME: Dict[str, EffectId] = {effect_id.value: effect_id for effect_id in EffectId}


def effect_id_for_name(name: Optional[str]) -> EffectId:
    """Exact name match. Anything unknown is Normal."""
    if name is None:
        return EffectId.NORMAL
    return _BY_NAME.get(name, EffectId.NORMAL)


def effect_for_name(name: Optional[str]) -> EffectFn:
    return EFFECTS[effect_id_for_name(name)]


def apply_effect(buffer: PixelBuffer, name: Optional[str]) -> None:
    """Run the named effect on the buffer in place."""
    effect_for_name(name)(buffer, buffer.width, buffer.height)
