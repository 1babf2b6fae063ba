"""
Test script for the mask engine.

Run with: python -m pytest tests/test_core.py -v
Or simply: python tests/test_core.py
"""

import sys
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
from PIL import Image

from photomask.core import (
    Color, ConfigError, CoordinateIter, FontBundle, FontNotFoundError, MaskConfig, NamedPreset,
    RenderError, StripesContent, TextContent, RectElement, TextElement, VectorDocument,
    apply_mask, apply_presets, build_mask_document, composite_over, generate_mask,
    mask_to_array, render_document, PixelFormat,
)
from photomask.core.raster import MAX_FONT_CACHE_SIZE
from photomask.core.vector import SVG_NAMESPACE


RED = Color(255, 0, 0)
GREEN = Color(0, 255, 0)
BLUE = Color(0, 0, 255)
WHITE = Color(255, 255, 255)


def create_test_image(width: int = 64, height: int = 48) -> Image.Image:
    """Create a simple in-memory RGB test image with a gradient."""
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    arr[..., 0] = (np.arange(width) * 255 // max(1, width - 1))[None, :]
    arr[..., 1] = (np.arange(height) * 255 // max(1, height - 1))[:, None]
    arr[..., 2] = 128
    return Image.fromarray(arr)


def stripes_mask(alpha: int, color1: Color = RED, color2: Color = BLUE, count: int = 1) -> MaskConfig:
    return MaskConfig(alpha=alpha, content=StripesContent(color1, color2, count))


def text_mask(alpha: int = 32, **overrides) -> MaskConfig:
    params = dict(
        text="PhotoMask",
        font="DejaVu Sans",
        color=WHITE,
        size_percent=5.0,
        rotation=45.0,
        row_slide_percent=1.0,
        offset_x_percent=-30.0,
        stride_x_percent=30.0,
        offset_y_percent=-20.0,
        stride_y_percent=20.0,
    )
    params.update(overrides)
    return MaskConfig(alpha=alpha, content=TextContent(**params))


# ===== Mask configuration =====

def test_color_from_hex():
    assert Color.from_hex("#ffffff") == Color(255, 255, 255)
    assert Color.from_hex("ffffff") == Color(255, 255, 255)
    assert Color.from_hex("#1A2b3C") == Color(0x1A, 0x2B, 0x3C)


@pytest.mark.parametrize("value", ["abc", "ggffff", "#fffffff", "", "#", "12345g", "##ffffff"])
def test_color_rejects_malformed(value):
    with pytest.raises(ConfigError):
        Color.from_hex(value)


def test_hex_with_alpha():
    assert RED.hex_with_alpha(0x20) == "#ff000020"
    assert Color(1, 2, 3).hex_with_alpha(255) == "#010203ff"


def test_mask_from_dict_stripes():
    mask = MaskConfig.from_dict({
        "alpha": 32,
        "content": {"type": "Stripes", "color1": "#ff0000", "color2": "00ff00", "stripe_count": 10},
    })

    assert mask.alpha == 32
    assert mask.content == StripesContent(RED, GREEN, 10)


def test_mask_from_dict_text():
    mask = MaskConfig.from_dict({
        "alpha": 64,
        "content": {
            "type": "Text", "text": "hello", "font": "DejaVu Sans", "color": "#ffffff",
            "size_percent": 5, "rotation": 45.0, "row_slide_percent": 1.0,
            "offset_x_percent": -30.0, "stride_x_percent": 30.0,
            "offset_y_percent": -20.0, "stride_y_percent": 20.0,
        },
    })

    assert isinstance(mask.content, TextContent)
    assert mask.content.size_percent == 5.0
    assert mask.content.color == WHITE


@pytest.mark.parametrize("content", [
    {"type": "Circles", "color": "#ffffff"},
    {"color1": "#ff0000", "color2": "#00ff00", "stripe_count": 2},
    {"type": "Stripes", "color1": "#ff0000", "stripe_count": 2},
    {"type": "Stripes", "color1": "#ff0000", "color2": "#00ff0", "stripe_count": 2},
    {"type": "Stripes", "color1": "#ff0000", "color2": "#00ff00", "stripe_count": 0},
    {"type": "Stripes", "color1": "#ff0000", "color2": "#00ff00", "stripe_count": "2"},
    {"type": "Text", "text": "x", "font": "DejaVu Sans", "color": "#ffffff"},
])
def test_mask_from_dict_rejects_bad_content(content):
    with pytest.raises(ConfigError):
        MaskConfig.from_dict({"alpha": 32, "content": content})


@pytest.mark.parametrize("alpha", [-1, 256, 1.5, True])
def test_mask_rejects_bad_alpha(alpha):
    with pytest.raises(ConfigError):
        MaskConfig(alpha=alpha, content=StripesContent(RED, BLUE, 1))


def test_text_content_requires_positive_strides():
    with pytest.raises(ConfigError):
        text_mask(stride_x_percent=0.0)
    with pytest.raises(ConfigError):
        text_mask(stride_y_percent=-5.0)
    with pytest.raises(ConfigError):
        text_mask(size_percent=0.0)


def test_named_preset_from_dict():
    flat = NamedPreset.from_dict({
        "name": "Flat",
        "alpha": 10,
        "content": {"type": "Stripes", "color1": "ff0000", "color2": "0000ff", "stripe_count": 2},
    })
    nested = NamedPreset.from_dict({
        "name": "Nested",
        "preset": {
            "alpha": 10,
            "content": {"type": "Stripes", "color1": "ff0000", "color2": "0000ff", "stripe_count": 2},
        },
    })

    assert flat.preset == nested.preset
    assert nested.name == "Nested"

    with pytest.raises(ConfigError, match="Broken"):
        NamedPreset.from_dict({"name": "Broken", "alpha": 10, "content": {"type": "Nope"}})


# ===== Coordinates =====

def test_coordinate_iter_includes_boundary():
    assert list(CoordinateIter(-10, 5, 20)) == [-10, -5, 0, 5, 10, 15, 20]


def test_coordinate_iter_empty_when_start_past_size():
    assert list(CoordinateIter(5, 10, 4)) == []


def test_coordinate_iter_restarts_by_reconstruction():
    first = list(CoordinateIter(0, 3, 9))
    second = list(CoordinateIter(0, 3, 9))
    assert first == second == [0, 3, 6, 9]


def test_coordinate_iter_rejects_zero_stride():
    with pytest.raises(ValueError):
        CoordinateIter(0, 0, 10)


# ===== Vector documents =====

def test_stripe_document_bands():
    document = build_mask_document(stripes_mask(32, RED, BLUE, 4), 10, 100)

    assert [e.y for e in document.elements] == [0, 25, 50, 75]
    assert all(e.height == 25 and e.width == 10 and e.x == 0 for e in document.elements)
    assert [e.color for e in document.elements] == [RED, BLUE, RED, BLUE]
    assert all(e.alpha == 32 for e in document.elements)


def test_stripe_document_truncates_band_height():
    document = build_mask_document(stripes_mask(32, RED, BLUE, 3), 10, 100)

    assert [(e.y, e.height) for e in document.elements] == [(0, 33), (33, 33), (66, 33)]


def test_text_document_staggered_grid():
    document = build_mask_document(text_mask(), 100, 100)

    assert all(isinstance(e, TextElement) for e in document.elements)
    # rows at y = -20, 0, ..., 100; five columns each
    assert len(document.elements) == 35

    rows: dict[int, list[int]] = {}
    for element in document.elements:
        rows.setdefault(element.y, []).append(element.x)

    assert sorted(rows) == [-20, 0, 20, 40, 60, 80, 100]
    assert rows[-20] == [-30, 0, 30, 60, 90]
    assert rows[0] == [-29, 1, 31, 61, 91]
    assert rows[100] == [-24, 6, 36, 66, 96]

    first = document.elements[0]
    assert first.font_size == 5.0
    assert first.rotation == 45.0
    assert first.text == "PhotoMask"


def test_text_document_saturates_tiny_strides():
    document = build_mask_document(text_mask(), 2, 2)

    # 30% and 20% of a 0.02 px base unit truncate to 0, saturated to 1 px
    assert len(document.elements) == 9
    assert sorted({e.x for e in document.elements}) == [0, 1, 2]


def test_text_document_uses_single_precision_strides():
    mask = text_mask(
        offset_x_percent=0.0, row_slide_percent=0.0,
        offset_y_percent=0.0, stride_y_percent=100.0,
    )
    document = build_mask_document(mask, 120, 50)

    # 1.2 px * 30 is 35.999998 in float32, truncated to a 35 px stride
    assert [e.x for e in document.elements] == [0, 35, 70, 105]
    assert {e.y for e in document.elements} == {0}


def test_document_to_svg():
    document = build_mask_document(stripes_mask(0x20, RED, BLUE, 3), 30, 90)
    root = ET.fromstring(document.to_svg())

    rects = root.findall(f"{{{SVG_NAMESPACE}}}rect")
    assert len(rects) == 3
    assert rects[0].get("fill") == "#ff000020"
    assert rects[1].get("fill") == "#0000ff20"
    assert root.get("viewBox") == "0 0 30 90"

    text_root = ET.fromstring(build_mask_document(text_mask(), 100, 100).to_svg())
    texts = text_root.findall(f"{{{SVG_NAMESPACE}}}text")
    assert len(texts) == 35
    assert texts[0].text == "PhotoMask"
    assert texts[0].get("transform") == "rotate(45 -30 -20)"
    assert texts[0].get("font-size") == "5.00"


# ===== Rasterizer =====

def test_generate_mask_opaque_stripe():
    mask = generate_mask(stripes_mask(255, Color(12, 34, 56), BLUE, 1), 4, 3)

    assert mask.mode == "RGBa"
    assert mask.size == (4, 3)
    pixels = mask_to_array(mask)
    assert (pixels == [12, 34, 56, 255]).all()


def test_generate_mask_stripe_colors():
    pixels = mask_to_array(generate_mask(stripes_mask(255, RED, BLUE, 4), 8, 100))

    assert tuple(pixels[10, 3]) == (255, 0, 0, 255)
    assert tuple(pixels[30, 3]) == (0, 0, 255, 255)
    assert tuple(pixels[60, 3]) == (255, 0, 0, 255)
    assert tuple(pixels[99, 3]) == (0, 0, 255, 255)


def test_generate_mask_leaves_truncated_strip_uncovered():
    pixels = mask_to_array(generate_mask(stripes_mask(255, RED, BLUE, 3), 8, 100))

    assert pixels[98, 0, 3] == 255
    assert pixels[99, 0, 3] == 0


@pytest.mark.parametrize("size", [(37, 23), (1, 1), (200, 120)])
def test_generate_mask_keeps_size(size):
    width, height = size
    for mask in (text_mask(), stripes_mask(100, RED, BLUE, 7)):
        rendered = generate_mask(mask, width, height)
        assert rendered.size == (width, height)
        assert rendered.mode == "RGBa"


def test_generate_mask_draws_text():
    pixels = mask_to_array(generate_mask(text_mask(alpha=255, size_percent=10.0), 200, 200))

    alpha = pixels[..., 3]
    assert alpha.max() > 200
    # premultiplied: color never exceeds alpha
    assert (pixels[..., :3].max(axis=2) <= alpha).all()


def test_generate_mask_unknown_font():
    with pytest.raises(FontNotFoundError):
        generate_mask(text_mask(font="No Such Font"), 50, 50)


def test_generate_mask_rejects_empty_size():
    with pytest.raises(RenderError):
        generate_mask(stripes_mask(32), 0, 10)


def coverage_bbox(pixels: np.ndarray) -> tuple[int, int, int, int]:
    """(x_min, x_max, y_min, y_max) of pixels with any alpha."""
    ys, xs = np.nonzero(pixels[..., 3])
    return int(xs.min()), int(xs.max()), int(ys.min()), int(ys.max())


def render_single_text(rotation: float = 0.0, alpha: int = 255) -> np.ndarray:
    element = TextElement(
        x=100, y=100, text="PhotoMask", font="DejaVu Sans", font_size=20.0,
        color=WHITE, alpha=alpha, rotation=rotation,
    )
    return mask_to_array(render_document(VectorDocument(200, 200, [element])))


def test_text_sits_on_baseline_right_of_anchor():
    x0, x1, y0, y1 = coverage_bbox(render_single_text(0.0))

    assert 100 <= x0 <= 103
    assert 97 <= y1 <= 99
    # a run of nine glyphs is far wider than it is tall
    assert x1 - x0 > 3 * (y1 - y0)


def test_rotated_text_turns_clockwise_around_anchor():
    x0, x1, y0, y1 = coverage_bbox(render_single_text(0.0))

    # 90 degrees: the run reads downwards, glyph tops point right
    assert coverage_bbox(render_single_text(90.0)) == (199 - y1, 199 - y0, x0, x1)
    # 180 degrees: mirrored through the anchor, upside down below the baseline
    assert coverage_bbox(render_single_text(180.0)) == (199 - x1, 199 - x0, 199 - y1, 199 - y0)


def test_rotated_text_keeps_anchor_at_pivot():
    x0, x1, y0, y1 = coverage_bbox(render_single_text(45.0))

    # the run starts at the anchor and heads down-right, glyph tops lean up-right
    assert 98 <= x0 <= 104
    assert 85 <= y0 < 100
    assert x1 > 150 and y1 > 150


@pytest.mark.parametrize("rotation", [0.0, 90.0])
def test_text_alpha_scales_coverage(rotation):
    pixels = render_single_text(rotation, alpha=128)

    alpha = pixels[..., 3]
    assert 126 <= alpha.max() <= 128
    assert (pixels[..., :3].max(axis=2) <= alpha).all()


def test_font_cache_is_bounded():
    bundle = FontBundle.default()
    sizes = range(1, MAX_FONT_CACHE_SIZE + 20)
    fonts = [bundle.font("DejaVu Sans", size) for size in sizes]

    assert len(bundle._cached_fonts) == MAX_FONT_CACHE_SIZE
    # most recent sizes stay cached, the oldest were evicted
    assert bundle.font("DejaVu Sans", sizes[-1]) is fonts[-1]
    assert bundle.font("DejaVu Sans", sizes[0]) is not fonts[0]
    assert len(bundle._cached_fonts) == MAX_FONT_CACHE_SIZE


def test_font_cache_shared_between_threads():
    bundle = FontBundle.default()

    with ThreadPoolExecutor(max_workers=8) as pool:
        fonts = list(pool.map(lambda size: bundle.font("DejaVu Sans", size), [12, 14] * 16))

    assert len({id(font) for font in fonts[0::2]}) == 1
    assert len({id(font) for font in fonts[1::2]}) == 1
    assert len(bundle._cached_fonts) == 2


# ===== Compositor =====

def test_transparent_mask_leaves_background():
    image = create_test_image()
    original = np.array(image)

    apply_mask(text_mask(alpha=0), image)

    diff = np.abs(np.array(image).astype(int) - original.astype(int))
    assert diff.max() <= 1


def test_opaque_mask_replaces_background():
    image = create_test_image()

    apply_mask(stripes_mask(255, Color(12, 34, 56), BLUE, 1), image)

    assert (np.array(image) == [12, 34, 56]).all()


def test_half_blue_over_red():
    background = np.zeros((2, 2, 3), dtype=np.uint8)
    background[...] = [255, 0, 0]
    mask = np.zeros((2, 2, 4), dtype=np.uint8)
    mask[...] = [0, 0, 128, 128]  # 50% blue, premultiplied

    composite_over(background, mask)

    fa = 128 / 255
    alpha_final = 1.0 + fa - fa
    expected = [
        round((0.0 + 1.0 * (1.0 - fa)) / alpha_final * 255),
        0,
        round((128 / 255 + 0.0) / alpha_final * 255),
    ]
    assert expected == [127, 0, 128]
    assert (background == expected).all()


def test_composite_onto_rgba_background():
    background = np.zeros((1, 2, 4), dtype=np.uint8)
    background[0, 1] = [255, 0, 0, 255]
    mask = np.zeros((1, 2, 4), dtype=np.uint8)
    mask[...] = [0, 0, 128, 128]

    composite_over(background, mask)

    # transparent background: the mask color comes through unmultiplied
    assert tuple(background[0, 0]) == (0, 0, 255, 128)
    assert tuple(background[0, 1]) == (127, 0, 128, 255)


def test_composite_fully_transparent_is_zero():
    background = np.zeros((2, 2, 4), dtype=np.uint8)
    background[...] = [40, 50, 60, 0]
    mask = np.zeros((2, 2, 4), dtype=np.uint8)

    with np.errstate(all="raise"):
        composite_over(background, mask)

    assert (background == 0).all()


def test_composite_sixteen_bit():
    background = np.full((3, 3, 3), 65535, dtype=np.uint16)
    mask = np.zeros((3, 3, 4), dtype=np.uint8)
    mask[1, 1] = [0, 0, 0, 255]

    composite_over(background, mask)

    assert background.dtype == np.uint16
    assert tuple(background[1, 1]) == (0, 0, 0)
    assert tuple(background[0, 0]) == (65535, 65535, 65535)


def test_composite_rejects_size_mismatch():
    background = np.zeros((4, 4, 3), dtype=np.uint8)
    mask = np.zeros((4, 5, 4), dtype=np.uint8)

    with pytest.raises(ValueError):
        composite_over(background, mask)
    assert (background == 0).all()


def test_pixel_format():
    rgb = PixelFormat.of(np.zeros((1, 1, 3), dtype=np.uint8))
    rgba16 = PixelFormat.of(np.zeros((1, 1, 4), dtype=np.uint16))

    assert not rgb.has_alpha and rgb.max_value == 255
    assert rgba16.has_alpha and rgba16.max_value == 65535
    assert rgb.to_rgba(np.full((1, 1, 3), 255, dtype=np.uint8)).tolist() == [[[1.0, 1.0, 1.0, 1.0]]]

    with pytest.raises(ValueError):
        PixelFormat.of(np.zeros((1, 1, 2), dtype=np.uint8))
    with pytest.raises(ValueError):
        PixelFormat.of(np.zeros((1, 1, 3), dtype=np.float32))


def test_apply_mask_rejects_unsupported_mode():
    with pytest.raises(ValueError):
        apply_mask(stripes_mask(32), Image.new("L", (4, 4)))


# ===== Presets =====

def test_apply_presets_keeps_order_and_source():
    image = create_test_image(40, 30)
    original = np.array(image)
    presets = [
        NamedPreset("opaque", stripes_mask(255, GREEN, GREEN, 1)),
        NamedPreset("text", text_mask(alpha=64)),
        NamedPreset("clear", stripes_mask(0, RED, BLUE, 5)),
    ]

    results = apply_presets(image, presets)

    assert [name for name, _ in results] == ["opaque", "text", "clear"]
    assert all(result.size == image.size for _, result in results)
    assert (np.array(results[0][1]) == [0, 255, 0]).all()
    assert np.array_equal(np.array(image), original)


def test_apply_presets_converts_grayscale():
    image = Image.new("L", (10, 10), 128)

    [(name, result)] = apply_presets(image, [NamedPreset("s", stripes_mask(255, RED, RED, 1))])

    assert result.mode == "RGB"
    assert (np.array(result) == [255, 0, 0]).all()
    assert image.mode == "L"


def main():
    """Run all tests."""
    return pytest.main([__file__, "-v"])


if __name__ == "__main__":
    sys.exit(main())
