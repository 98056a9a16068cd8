"""
ASS subtitle-track construction.

A language's render is planned as a list of cues (segment timing plus the
text to show in that language and its resolved style). Cues whose style is
drawn as an image overlay are left out of the ASS track.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..models import Position, TextSegment
from .styles import RenderOptions, ResolvedStyle, resolve_style, style_spec
from .util import format_ass_time

logger = logging.getLogger("video_localizer")

# Vertical anchor positions on the reference 1080x1920 canvas
REFERENCE_HEIGHT = 1920
ANCHOR_Y = {
    Position.CENTER: 900,
    Position.CENTER_TOP: 880,
    Position.CENTER_BOTTOM: 1000,
}
FADE_MS = 200

ASS_HEADER = """[Script Info]
Title: {title}
ScriptType: v4.00+
WrapStyle: 0
PlayResX: {width}
PlayResY: {height}

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
{styles}

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
"""


@dataclass
class Cue:
    """One segment as it will be shown in one language"""
    text: str
    start: float
    end: float
    style: ResolvedStyle
    position: str = Position.CENTER.value
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def uses_overlay(self) -> bool:
        return self.style.spec.uses_overlay


def build_cues(segments: Sequence[TextSegment], texts: Sequence[str],
               options: RenderOptions) -> List[Cue]:
    """Pair each segment with its display text; `texts` is index-aligned with `segments`"""
    cues = []
    for segment, text in zip(segments, texts):
        if options.uppercase:
            text = text.upper()
        cues.append(Cue(
            text=text,
            start=segment.start,
            end=segment.end,
            style=resolve_style(segment, options),
            position=segment.position,
            x=segment.x,
            y=segment.y,
        ))
    return cues


def split_cues(cues: Sequence[Cue]) -> Tuple[List[Cue], List[Cue]]:
    """Separate subtitle-track cues from image-overlay cues"""
    track = [c for c in cues if not c.uses_overlay]
    overlays = [c for c in cues if c.uses_overlay]
    return track, overlays


def scale_y(reference_y: int, canvas_height: int) -> int:
    return round(reference_y * canvas_height / REFERENCE_HEIGHT)


def position_tag(cue: Cue, canvas_width: int = 1080, canvas_height: int = 1920) -> str:
    """
    ASS override placing a cue.

    Percentage coordinates win over the named anchor and are converted to
    pixels on the canvas; a missing x keeps the text horizontally centred.
    """
    center_x = canvas_width // 2
    if cue.y is not None:
        px = round(cue.x / 100 * canvas_width) if cue.x is not None else center_x
        py = round(cue.y / 100 * canvas_height)
        return f"\\an5\\pos({px},{py})"

    anchor = Position.parse(cue.position)
    if anchor == Position.TOP:
        return "\\an8"
    if anchor == Position.BOTTOM:
        return "\\an2"
    return f"\\an5\\pos({center_x},{scale_y(ANCHOR_Y[anchor], canvas_height)})"


def escape_ass_text(text: str) -> str:
    """Neutralise characters ASS would read as override blocks or escapes"""
    text = text.replace("\\", "\uFF3C").replace("{", "(").replace("}", ")")
    return text.replace("\r\n", "\\N").replace("\n", "\\N")


def dialogue_line(cue: Cue, canvas_width: int = 1080, canvas_height: int = 1920) -> str:
    tag = position_tag(cue, canvas_width, canvas_height)
    return (
        f"Dialogue: 0,{format_ass_time(cue.start)},{format_ass_time(cue.end)},{cue.style.ass_name},,0,0,0,,"
        f"{{{tag}\\fad({FADE_MS},{FADE_MS})}}{escape_ass_text(cue.text)}"
    )


def style_lines(cues: Sequence[Cue], options: RenderOptions, font_name: str) -> List[str]:
    """Default style plus one line per other style name the cues reference"""
    lines = [style_spec(options.style).ass_line("Default", font_name, options.font_size)]
    if options.hook_style:
        lines.append(style_spec(options.hook_style).ass_line("Hook", font_name, options.font_size))
    if options.cta_style:
        lines.append(style_spec(options.cta_style).ass_line("CTA", font_name, options.font_size))

    defined = {"Default", "Hook", "CTA"}
    for cue in cues:
        if cue.style.ass_name in defined:
            continue
        defined.add(cue.style.ass_name)
        lines.append(cue.style.spec.ass_line(cue.style.ass_name, font_name, options.font_size))
    return lines


def build_ass_document(title: str, cues: Sequence[Cue], options: RenderOptions,
                       font_name: str = "Noto Sans", canvas_width: int = 1080,
                       canvas_height: int = 1920) -> str:
    """Render the full ASS file; overlay cues are skipped"""
    track, _ = split_cues(cues)
    document = ASS_HEADER.format(
        title=title,
        width=canvas_width,
        height=canvas_height,
        styles="\n".join(style_lines(track, options, font_name)),
    )
    events = [dialogue_line(cue, canvas_width, canvas_height) for cue in track]
    return document + "".join(line + "\n" for line in events)


def write_ass(path: str, document: str) -> str:
    with open(path, "w", encoding="utf-8") as f:
        f.write(document)
    logger.debug(f"Wrote subtitle track {path}")
    return path
