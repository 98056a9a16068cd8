import pytest

from localizer.models import FrameDetections, RawDetection, TextSegment
from localizer.pipeline.segments import (
    SegmentBuilder, build_segments, filter_segments, merge_segments, noise_reason,
)


def frame(timestamp, *texts):
    return FrameDetections(timestamp=timestamp, detections=[RawDetection(text=t) for t in texts])


def spans(segments):
    return [(s.text, s.start, s.end) for s in segments]


def test_reappearance_after_gap_starts_new_segment():
    frames = [frame(0.0, "SALE"), frame(0.5, "SALE"), frame(2.5, "SALE")]
    segments = build_segments(frames, frame_interval=0.5)
    assert spans(segments) == [("SALE", 0.0, 1.0), ("SALE", 2.5, 3.0)]


def test_text_missing_from_a_frame_closes_at_that_frame():
    builder = SegmentBuilder(0.5)
    builder.add_frame(0.0, [RawDetection("Limited offer")])
    builder.add_frame(0.5, [RawDetection("Limited offer")])
    builder.add_frame(1.0, [])
    assert builder.open_entries == []
    assert spans(builder.finish()) == [("Limited offer", 0.0, 1.0)]


def test_failed_frame_neither_extends_nor_closes():
    frames = [
        frame(0.0, "Shop now"),
        FrameDetections(timestamp=0.5, detections=None),
        frame(1.0, "Shop now"),
    ]
    segments = build_segments(frames, frame_interval=0.5, video_length=10.0)
    assert spans(segments) == [("Shop now", 0.0, 1.5)]


def test_variants_of_one_text_are_one_segment():
    frames = [frame(0.0, "SALE!"), frame(0.5, "sale \U0001F525"), frame(1.0)]
    segments = build_segments(frames, frame_interval=0.5, video_length=10.0)
    assert spans(segments) == [("SALE!", 0.0, 1.0)]


def test_two_texts_in_one_frame_are_tracked_independently():
    frames = [
        frame(0.0, "Top line", "Bottom line"),
        frame(0.5, "Top line"),
        frame(1.0),
    ]
    segments = build_segments(frames, frame_interval=0.5, video_length=10.0)
    assert spans(segments) == [("Bottom line", 0.0, 0.5), ("Top line", 0.0, 1.0)]


def test_position_refines_while_open():
    builder = SegmentBuilder(0.5)
    builder.add_frame(0.0, [RawDetection("Hello there", position="top")])
    builder.add_frame(0.5, [RawDetection("Hello there", position="bottom", x=50, y=80)])
    segment = builder.finish()[0]
    assert segment.position == "bottom"
    assert (segment.x, segment.y) == (50, 80)


def test_frames_out_of_order_are_rejected():
    builder = SegmentBuilder(0.5)
    builder.add_frame(1.0, [])
    with pytest.raises(ValueError):
        builder.add_frame(0.5, [])


@pytest.mark.parametrize("text,reason", [
    ("Nike", "brand name"),
    ("UNDER ARMOUR", "brand name"),
    ("nike xl", "brand with size"),
    ("XXL", "size label"),
    ("OK", "too short"),
])
def test_noise_reasons(text, reason):
    segment = TextSegment(text=text, start=0.0, end=1.0)
    assert noise_reason(segment, video_length=10.0) == reason


def test_long_lived_text_is_product_print():
    segment = TextSegment(text="Printed slogan", start=0.0, end=8.0)
    assert noise_reason(segment, video_length=10.0) == "spans most of the video"
    assert filter_segments([segment], video_length=10.0) == []


def test_custom_brand_is_filtered():
    segment = TextSegment(text="Acme", start=0.0, end=1.0)
    assert noise_reason(segment, 10.0) is None
    assert noise_reason(segment, 10.0, brands=("acme",)) == "brand name"


def test_merge_unifies_close_identical_texts():
    merged = merge_segments([
        TextSegment(text="Sale!", start=0.0, end=1.0),
        TextSegment(text="sale", start=1.3, end=2.0),
        TextSegment(text="Other text", start=0.5, end=1.5),
    ], max_gap=0.5)
    assert spans(merged) == [("Sale!", 0.0, 2.0), ("Other text", 0.5, 1.5)]


def test_merge_keeps_distant_occurrences_apart():
    merged = merge_segments([
        TextSegment(text="SALE", start=0.0, end=1.0),
        TextSegment(text="SALE", start=2.5, end=3.0),
    ], max_gap=0.5)
    assert len(merged) == 2


def test_segments_come_out_ordered_by_start():
    frames = [frame(0.0, "First text"), frame(0.5, "Second text"), frame(1.0, "Second text")]
    segments = build_segments(frames, frame_interval=0.5, video_length=10.0)
    assert [s.start for s in segments] == sorted(s.start for s in segments)
    assert spans(segments) == [("First text", 0.0, 0.5), ("Second text", 0.5, 1.5)]
