"""
Subtitle visual styles.

`SubtitleStyle` is the closed set of styles a job may request. Every member
maps to exactly one `StyleSpec` holding both its ASS parameters (used when
the text is burned in through the subtitle track) and its image-overlay
parameters (used for the rounded box, which ASS cannot draw).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from ..errors import ValidationError
from ..models import TextSegment

Color = Tuple[int, int, int, int]

# Segment roles with a dedicated style slot
ROLE_HOOK = "hook_problem"
ROLE_CTA = "cta"


class SubtitleStyle(str, Enum):
    WHITE = "white"
    BLACK = "black"
    SHADOW = "shadow"
    ROUNDED = "rounded"
    GRADIENT = "gradient"
    OUTLINE = "outline"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    FIRE = "fire"
    NEON = "neon"
    EXPLOSIVE = "explosive"
    GREEN = "green"
    PULSE = "pulse"
    URGENT = "urgent"
    GOLD = "gold"


@dataclass(frozen=True)
class StyleSpec:
    """Render parameters for one style; ASS colours are &HAABBGGRR"""
    primary: str
    outline: str
    back: str
    box: Color
    text: Color
    border_style: int = 3
    outline_width: int = 18
    shadow: int = 0
    radius: float = 0.15
    border: Optional[Color] = None
    uses_overlay: bool = False

    def ass_line(self, name: str, font_name: str, font_size: int) -> str:
        return (
            f"Style: {name},{font_name},{font_size},{self.primary},&H000000FF,"
            f"{self.outline},{self.back},1,0,0,0,100,100,0,0,"
            f"{self.border_style},{self.outline_width},{self.shadow},5,50,50,200,1"
        )


WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


def _hex(value: str) -> Color:
    value = value.lstrip('#')
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16), 255


def _box(bgr: str, text_primary: str = "&H00FFFFFF", text: Color = WHITE, box: str = "") -> StyleSpec:
    """Opaque-box style whose box colour is given in ASS BGR order"""
    return StyleSpec(primary=text_primary, outline=f"&H00{bgr}", back=f"&H00{bgr}",
                     box=_hex(box), text=text)


_STYLE_TABLE: Dict[SubtitleStyle, StyleSpec] = {
    SubtitleStyle.WHITE: StyleSpec(primary="&H00000000", outline="&H00FFFFFF", back="&H00FFFFFF",
                                   box=WHITE, text=BLACK),
    SubtitleStyle.BLACK: StyleSpec(primary="&H00FFFFFF", outline="&H00000000", back="&H00000000",
                                   box=BLACK, text=WHITE),
    SubtitleStyle.SHADOW: StyleSpec(primary="&H00FFFFFF", outline="&H00000000", back="&H80000000",
                                    border_style=1, outline_width=0, shadow=5,
                                    box=(0, 0, 0, 178), text=WHITE),
    SubtitleStyle.ROUNDED: StyleSpec(primary="&H00000000", outline="&H00FFFFFF", back="&H00FFFFFF",
                                     box=WHITE, text=BLACK, radius=0.45, uses_overlay=True),
    SubtitleStyle.GRADIENT: _box("81B910", box="#10b981"),
    SubtitleStyle.OUTLINE: StyleSpec(primary="&H00FFFFFF", outline="&H00000000", back="&H00000000",
                                     border_style=1, outline_width=5,
                                     box=(0, 0, 0, 77), text=WHITE, border=WHITE),
    SubtitleStyle.RED: _box("4444EF", box="#ef4444"),
    SubtitleStyle.ORANGE: _box("1673F9", box="#f97316"),
    SubtitleStyle.YELLOW: _box("08B3EA", text_primary="&H00000000", text=BLACK, box="#eab308"),
    SubtitleStyle.FIRE: _box("0066FF", box="#ff6600"),
    SubtitleStyle.NEON: StyleSpec(primary="&H00FFFF00", outline="&H00000000", back="&H00000000",
                                  box=BLACK, text=_hex("#00ffff")),
    SubtitleStyle.EXPLOSIVE: _box("ED3A7C", box="#7c3aed"),
    SubtitleStyle.GREEN: _box("5EC522", box="#22c55e"),
    SubtitleStyle.PULSE: _box("81B910", box="#10b981"),
    SubtitleStyle.URGENT: _box("2626DC", box="#dc2626"),
    SubtitleStyle.GOLD: _box("24BFFB", text_primary="&H00000000", text=BLACK, box="#fbbf24"),
}

_missing = set(SubtitleStyle) - set(_STYLE_TABLE)
if _missing:
    raise RuntimeError(f"Style table is missing {sorted(s.value for s in _missing)}")


def style_spec(style: SubtitleStyle) -> StyleSpec:
    return _STYLE_TABLE[style]


def parse_style(name: Optional[str], default: Optional[SubtitleStyle] = None) -> Optional[SubtitleStyle]:
    """
    Resolve a style name.

    Raises:
        ValidationError: `name` is not one of the supported styles
    """
    if name is None or name == "":
        return default
    try:
        return SubtitleStyle(str(name).strip().lower())
    except ValueError:
        allowed = ', '.join(s.value for s in SubtitleStyle)
        raise ValidationError(f"Unknown style '{name}' (expected one of: {allowed})")


def is_known_style(name: Optional[str]) -> bool:
    try:
        return parse_style(name) is not None
    except ValidationError:
        return False


@dataclass(frozen=True)
class RenderOptions:
    """Job-level styling choices shared by every segment"""
    style: SubtitleStyle = SubtitleStyle.WHITE
    font_size: int = 72
    hook_style: Optional[SubtitleStyle] = None
    cta_style: Optional[SubtitleStyle] = None
    per_text_styles: bool = False
    uppercase: bool = False

    @classmethod
    def from_job(cls, job) -> 'RenderOptions':
        return cls(
            style=parse_style(job.style, SubtitleStyle.WHITE),
            font_size=job.font_size,
            hook_style=parse_style(job.hook_style),
            cta_style=parse_style(job.cta_style),
            per_text_styles=job.per_text_styles,
            uppercase=job.uppercase,
        )


@dataclass(frozen=True)
class ResolvedStyle:
    style: SubtitleStyle
    ass_name: str

    @property
    def spec(self) -> StyleSpec:
        return style_spec(self.style)


def resolve_style(segment: TextSegment, options: RenderOptions) -> ResolvedStyle:
    """Pick a segment's style: its own (per-text mode), then its role slot, then the job style"""
    if options.per_text_styles and segment.style:
        own = parse_style(segment.style)
        if own != options.style:
            return ResolvedStyle(own, own.value)
    if segment.role == ROLE_HOOK and options.hook_style:
        return ResolvedStyle(options.hook_style, "Hook")
    if segment.role == ROLE_CTA and options.cta_style:
        return ResolvedStyle(options.cta_style, "CTA")
    return ResolvedStyle(options.style, "Default")
