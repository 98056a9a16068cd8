"""
Segment building: turns noisy per-frame text detections into timed segments.

Frames are fed in timestamp order. Each distinct text (by comparison key)
is tracked as an open entry while it keeps being seen; it is closed when a
frame no longer contains it, or when it reappears after a gap larger than
one frame interval (a new occurrence). Finished segments are then filtered
for product-print noise and identical neighbours are merged.
"""

import re
import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

from ..models import FrameDetections, Position, RawDetection, TextSegment
from .normalize import clean_display_text, comparison_key

logger = logging.getLogger("video_localizer")

# Float slack for timestamp comparisons; timestamps are multiples of the frame interval
EPSILON = 1e-6

# Brand names that show up printed on garments rather than as overlays
DEFAULT_BRANDS = (
    "nike", "adidas", "puma", "under armour", "calvin klein", "tommy hilfiger",
    "hugo boss", "lacoste", "ralph lauren", "armani", "diesel", "levis", "gap",
    "zara", "h&m",
)
SIZE_LABELS = frozenset({
    "xs", "s", "m", "l", "xl", "xxl", "xxxl", "2xl", "3xl", "4xl", "5xl",
})
MIN_TEXT_LENGTH = 3
# Text visible for longer than this share of the video is a product logo
MAX_DURATION_SHARE = 0.7


@dataclass
class OpenEntry:
    key: str
    text: str
    start: float
    last_seen_end: float
    position: str
    x: Optional[float] = None
    y: Optional[float] = None
    style: Optional[str] = None

    def to_segment(self, end: float) -> TextSegment:
        return TextSegment(
            text=self.text,
            start=round(self.start, 3),
            end=round(end, 3),
            position=self.position,
            x=self.x,
            y=self.y,
            style=self.style,
        )


class SegmentBuilder:
    """Incremental open/close tracker over frames in timestamp order"""

    def __init__(self, frame_interval: float = 0.5):
        if frame_interval <= 0:
            raise ValueError("frame_interval must be positive")
        self.frame_interval = frame_interval
        self.frames_seen = 0
        self._open: List[OpenEntry] = []
        self._closed: List[TextSegment] = []
        self._last_timestamp: Optional[float] = None

    @property
    def open_entries(self) -> List[OpenEntry]:
        return list(self._open)

    def add_frame(self, timestamp: float, detections: Optional[Sequence[RawDetection]]) -> None:
        """
        Feed one frame.

        Args:
            timestamp: Frame time in seconds, non-decreasing across calls
            detections: Texts seen in the frame, or None if the frame could not
                be analyzed (such a frame neither extends nor closes entries)
        """
        if self._last_timestamp is not None and timestamp + EPSILON < self._last_timestamp:
            raise ValueError(
                f"Frames must arrive in timestamp order ({timestamp} after {self._last_timestamp})"
            )
        self._last_timestamp = timestamp
        self.frames_seen += 1

        if detections is None:
            return

        present = set()
        for detection in detections:
            text = clean_display_text(detection.text)
            key = comparison_key(text)
            if not key:
                continue
            if key in present:
                # Same text twice in one frame is one sighting
                continue
            present.add(key)

            entry = self._find_open(key)
            if entry is not None:
                gap = timestamp - entry.last_seen_end
                if gap <= self.frame_interval + EPSILON:
                    entry.last_seen_end = max(entry.last_seen_end, timestamp + self.frame_interval)
                    self._refine_position(entry, detection)
                    continue
                logger.debug(f"'{entry.text}' reappeared after {gap:.2f}s gap, starting new occurrence")
                self._close(entry, entry.last_seen_end)

            self._open.append(self._open_entry(key, text, timestamp, detection))

        for entry in list(self._open):
            if entry.key not in present and timestamp > entry.start + EPSILON:
                self._close(entry, timestamp)

    def finish(self) -> List[TextSegment]:
        """Close remaining entries one frame interval after the last frame"""
        if self._last_timestamp is not None:
            stream_end = self._last_timestamp + self.frame_interval
            for entry in list(self._open):
                self._close(entry, stream_end)
        return sorted(self._closed, key=lambda s: (s.start, s.end))

    def _find_open(self, key: str) -> Optional[OpenEntry]:
        for entry in self._open:
            if entry.key == key:
                return entry
        return None

    def _open_entry(self, key: str, text: str, timestamp: float, detection: RawDetection) -> OpenEntry:
        return OpenEntry(
            key=key,
            text=text,
            start=timestamp,
            last_seen_end=timestamp + self.frame_interval,
            position=Position.parse(detection.position).value,
            x=detection.x,
            y=detection.y,
            style=detection.style,
        )

    @staticmethod
    def _refine_position(entry: OpenEntry, detection: RawDetection) -> None:
        if detection.x is not None and detection.y is not None:
            entry.x = detection.x
            entry.y = detection.y
        if detection.position:
            entry.position = Position.parse(detection.position).value

    def _close(self, entry: OpenEntry, end: float) -> None:
        self._open.remove(entry)
        if end <= entry.start + EPSILON:
            return
        self._closed.append(entry.to_segment(end))


def noise_reason(segment: TextSegment, video_length: float,
                 brands: Sequence[str] = DEFAULT_BRANDS) -> Optional[str]:
    """Return why a segment looks like product print or OCR noise, if it does"""
    lower = segment.text.casefold().strip()
    key = comparison_key(segment.text)

    for brand in brands:
        brand = brand.casefold()
        if lower == brand or lower == brand.replace(" ", "") or key == comparison_key(brand):
            return "brand name"
        escaped = re.escape(brand)
        if re.fullmatch(rf"{escaped}\s*\d*x*l", lower) or re.fullmatch(rf"\d*x*l\s*{escaped}", lower):
            return "brand with size"

    if lower in SIZE_LABELS:
        return "size label"
    if len(lower) < MIN_TEXT_LENGTH:
        return "too short"
    if video_length > 0 and segment.duration > video_length * MAX_DURATION_SHARE:
        return "spans most of the video"
    return None


def filter_segments(segments: Iterable[TextSegment], video_length: float,
                    brands: Sequence[str] = DEFAULT_BRANDS) -> List[TextSegment]:
    kept = []
    for segment in segments:
        reason = noise_reason(segment, video_length, brands)
        if reason:
            logger.debug(f"Dropping '{segment.text}' {segment.start}s-{segment.end}s: {reason}")
            continue
        kept.append(segment)
    return kept


def merge_segments(segments: Iterable[TextSegment], max_gap: float = 0.5) -> List[TextSegment]:
    """Unify identical-text segments that overlap or are at most `max_gap` apart"""
    merged: List[TextSegment] = []
    keys: List[str] = []

    for segment in sorted(segments, key=lambda s: (s.start, s.end)):
        key = comparison_key(segment.text)
        for i, existing in enumerate(merged):
            if keys[i] != key:
                continue
            overlaps = segment.start <= existing.end + EPSILON and segment.end >= existing.start - EPSILON
            gap = segment.start - existing.end
            if overlaps or 0 < gap <= max_gap + EPSILON:
                existing.start = min(existing.start, segment.start)
                existing.end = max(existing.end, segment.end)
                break
        else:
            merged.append(replace(segment))
            keys.append(key)

    return sorted(merged, key=lambda s: (s.start, s.end))


def build_segments(frames: Iterable[FrameDetections], frame_interval: float = 0.5,
                   video_length: Optional[float] = None,
                   brands: Sequence[str] = DEFAULT_BRANDS) -> List[TextSegment]:
    """
    Run the full segment pipeline over per-frame detections.

    Args:
        frames: Detections in timestamp order
        frame_interval: Seconds between sampled frames; also the gap tolerance
        video_length: Analyzed duration; defaults to frames seen x frame interval
        brands: Brand names treated as product print when alone

    Returns:
        Filtered, merged segments ordered by start time
    """
    builder = SegmentBuilder(frame_interval)
    for frame in frames:
        builder.add_frame(frame.timestamp, frame.detections)

    raw = builder.finish()
    if video_length is None:
        video_length = builder.frames_seen * frame_interval

    filtered = filter_segments(raw, video_length, brands)
    merged = merge_segments(filtered, max_gap=frame_interval)

    logger.info(
        f"Built {len(merged)} segments from {builder.frames_seen} frames "
        f"({len(raw)} raw, {len(filtered)} after filtering)"
    )
    return merged
