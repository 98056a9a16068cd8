import os
import math
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..models import Position
from .styles import StyleSpec
from .subtitles import Cue, scale_y

logger = logging.getLogger("video_localizer")

# Image text is drawn smaller than the ASS font size to look the same on screen
FONT_SCALE = 0.65
PADDING_X = 0.6
PADDING_Y = 0.35
SAFETY_MARGIN = 40
LINE_SPACING = 6
BORDER_WIDTH = 3

# Top edge of the box on the reference canvas, per anchor
OVERLAY_Y = {
    Position.CENTER_TOP: 820,
    Position.CENTER_BOTTOM: 1000,
}
DEFAULT_OVERLAY_Y = 900
# Percentage y marks the text centre; the box is raised by this much
Y_PERCENT_OFFSET = 60


@dataclass
class OverlaySpec:
    """A generated PNG and where/when to composite it"""
    index: int
    path: str
    x: int
    y: int
    width: int
    height: int
    start: float
    end: float


def load_font(font_path: str, size: int) -> ImageFont.FreeTypeFont:
    """Load the overlay font, falling back to Pillow's bundled font"""
    try:
        return ImageFont.truetype(font_path, size)
    except OSError:
        logger.warning(f"Font {font_path} not available, using default font")
        return ImageFont.load_default(size=size)


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> str:
    """Greedy word wrap so that no line is wider than max_width (unless a single word is)"""
    words = text.split()
    lines = []
    current_line = []

    for word in words:
        test_line = ' '.join(current_line + [word])
        left, _, right, _ = draw.textbbox((0, 0), test_line, font=font)
        if right - left <= max_width:
            current_line.append(word)
        else:
            if current_line:
                lines.append(' '.join(current_line))
                current_line = [word]
            else:
                lines.append(word)

    if current_line:
        lines.append(' '.join(current_line))

    return '\n'.join(lines)


def render_overlay_png(text: str, spec: StyleSpec, font_size: int, output_path: str,
                       canvas_width: int = 1080, font_path: str = "") -> Tuple[int, int]:
    """
    Draw `text` centred in a rounded box on a transparent PNG.

    The box is sized to the measured text plus padding; text wider than the
    canvas allows is word-wrapped first.

    Returns:
        (width, height) of the written image
    """
    size = round(font_size * FONT_SCALE)
    pad_x = round(size * PADDING_X)
    pad_y = round(size * PADDING_Y)
    radius = round(size * spec.radius)
    max_text_width = canvas_width - pad_x * 2 - SAFETY_MARGIN

    font = load_font(font_path, size)
    measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))

    left, top, right, bottom = measure.textbbox((0, 0), text, font=font)
    if right - left > max_text_width:
        text = wrap_text(measure, text, font, max_text_width)
        left, top, right, bottom = measure.multiline_textbbox(
            (0, 0), text, font=font, spacing=LINE_SPACING, align="center"
        )

    text_w, text_h = int(math.ceil(right - left)), int(math.ceil(bottom - top))
    width = text_w + pad_x * 2
    height = text_h + pad_y * 2

    image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    draw.rounded_rectangle(
        (0, 0, width - 1, height - 1),
        radius=radius,
        fill=spec.box,
        outline=spec.border,
        width=BORDER_WIDTH if spec.border else 0,
    )
    draw.multiline_text(
        (pad_x - left, pad_y - top),
        text,
        font=font,
        fill=spec.text,
        spacing=LINE_SPACING,
        align="center",
    )
    image.save(output_path, "PNG")
    return width, height


def overlay_top(cue: Cue, canvas_height: int = 1920) -> int:
    """Top edge of a cue's box; a percentage y takes precedence over the anchor"""
    if cue.y is not None:
        return max(0, round(cue.y / 100 * canvas_height) - scale_y(Y_PERCENT_OFFSET, canvas_height))
    anchor = Position.parse(cue.position)
    return scale_y(OVERLAY_Y.get(anchor, DEFAULT_OVERLAY_Y), canvas_height)


def build_overlays(cues: Sequence[Cue], output_dir: str, font_size: int,
                   canvas_width: int = 1080, canvas_height: int = 1920,
                   font_path: str = "", prefix: str = "text") -> List[OverlaySpec]:
    """Generate one PNG per overlay cue, horizontally centred on the canvas"""
    os.makedirs(output_dir, exist_ok=True)
    overlays = []
    for i, cue in enumerate(cues):
        path = os.path.join(output_dir, f"{prefix}-{i}.png")
        width, height = render_overlay_png(
            cue.text, cue.style.spec, font_size, path, canvas_width, font_path
        )
        overlays.append(OverlaySpec(
            index=i,
            path=path,
            x=round((canvas_width - width) / 2),
            y=overlay_top(cue, canvas_height),
            width=width,
            height=height,
            start=cue.start,
            end=cue.end,
        ))

    if overlays:
        logger.debug(f"Generated {len(overlays)} overlay images in {output_dir}")
    return overlays
