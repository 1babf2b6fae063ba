"""
Mask Vector Documents
=====================
Turns a MaskConfig and a target size into a list of vector elements.

Technical Notes:
- Document coordinates are pixel coordinates (no viewport scaling)
- Stripes: one full-width rectangle per band; band height is truncated
  (``height // stripe_count``), so a thin strip may remain at the bottom
- Text: anchors come from two nested CoordinateIter loops; each row is
  shifted by an accumulating ``row_slide`` for a brick-like layout
- Text geometry is computed in single precision (``numpy.float32``) and
  truncated toward zero, so grid positions match renders made elsewhere
  with 32-bit floats
- Rotation pivots at the anchor, positive angles turn clockwise on screen
  (same as SVG ``rotate(a x y)``)
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Union

import numpy as np

from .coords import CoordinateIter
from .mask import Color, MaskConfig, StripesContent, TextContent

log = logging.getLogger(__name__)

SVG_NAMESPACE = "http://www.w3.org/2000/svg"


@dataclass(frozen=True)
class RectElement:
    """Filled axis-aligned rectangle."""
    x: int
    y: int
    width: int
    height: int
    color: Color
    alpha: int


@dataclass(frozen=True)
class TextElement:
    """A run of text anchored at its baseline-left point."""
    x: int
    y: int
    text: str
    font: str
    font_size: float
    color: Color
    alpha: int
    rotation: float = 0.0


Element = Union[RectElement, TextElement]


@dataclass
class VectorDocument:
    """Ordered vector elements over a ``width`` x ``height`` pixel canvas."""
    width: int
    height: int
    elements: list[Element] = field(default_factory=list)

    def to_svg(self) -> str:
        """Serialize the document as a standalone SVG string."""
        svg = ET.Element("svg", {
            "xmlns": SVG_NAMESPACE,
            "width": str(self.width),
            "height": str(self.height),
            "viewBox": f"0 0 {self.width} {self.height}",
        })

        for element in self.elements:
            if isinstance(element, RectElement):
                ET.SubElement(svg, "rect", {
                    "x": str(element.x),
                    "y": str(element.y),
                    "width": str(element.width),
                    "height": str(element.height),
                    "fill": element.color.hex_with_alpha(element.alpha),
                })
            else:
                node = ET.SubElement(svg, "text", {
                    "x": str(element.x),
                    "y": str(element.y),
                    "fill": element.color.hex_with_alpha(element.alpha),
                    "font-family": element.font,
                    "font-size": f"{element.font_size:.2f}",
                    "transform": f"rotate({element.rotation:g} {element.x} {element.y})",
                })
                node.text = element.text

        return ET.tostring(svg, encoding="unicode")


def _stripe_elements(content: StripesContent, alpha: int, width: int, height: int) -> list[Element]:
    count = content.stripe_count
    stripe_height = height // count

    return [
        RectElement(
            x=0,
            y=height * i // count,
            width=width,
            height=stripe_height,
            color=content.color1 if i % 2 == 0 else content.color2,
            alpha=alpha,
        )
        for i in range(count)
    ]


def _text_elements(content: TextContent, alpha: int, width: int, height: int) -> list[Element]:
    base_size = np.float32(max(width, height)) * np.float32(0.01)

    def scaled(percent: float) -> np.float32:
        return base_size * np.float32(percent)

    font_size = round(float(scaled(content.size_percent)), 2)

    # int() truncates toward zero
    row_slide = int(scaled(content.row_slide_percent))
    offset_x = int(scaled(content.offset_x_percent))
    offset_y = int(scaled(content.offset_y_percent))
    # Saturate to one pixel: on tiny images a positive percentage can truncate to 0
    stride_x = max(1, int(scaled(content.stride_x_percent)))
    stride_y = max(1, int(scaled(content.stride_y_percent)))

    elements: list[Element] = []
    slide = 0
    for y in CoordinateIter(offset_y, stride_y, height):
        for x in CoordinateIter(slide + offset_x, stride_x, width):
            elements.append(TextElement(
                x=x,
                y=y,
                text=content.text,
                font=content.font,
                font_size=font_size,
                color=content.color,
                alpha=alpha,
                rotation=content.rotation,
            ))
        slide += row_slide

    return elements


def build_mask_document(mask: MaskConfig, width: int, height: int) -> VectorDocument:
    """
    Build the vector document for ``mask`` over a ``width`` x ``height`` canvas.

    Args:
        mask: The mask to draw.
        width: Target width in pixels.
        height: Target height in pixels.

    Returns:
        VectorDocument whose elements are in drawing order.
    """
    content = mask.content

    if isinstance(content, StripesContent):
        elements = _stripe_elements(content, mask.alpha, width, height)
    elif isinstance(content, TextContent):
        elements = _text_elements(content, mask.alpha, width, height)
    else:
        raise TypeError(f"Unsupported mask content: {type(content).__name__}")

    log.debug(
        "Built %s document for %dx%d with %d elements",
        type(content).__name__, width, height, len(elements),
    )
    return VectorDocument(width=width, height=height, elements=elements)
