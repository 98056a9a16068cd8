import os
import re
import ffmpeg
import logging
from typing import List

from PIL import Image

from ..models import FrameSample
from .util import generate_phash

logger = logging.getLogger("video_localizer")

FRAME_PATTERN = "frame-%04d.jpg"
_FRAME_NUMBER = re.compile(r"(\d+)")


def frame_timestamp(index: int, frame_interval: float) -> float:
    """Timestamp of the 1-based frame `index` sampled every `frame_interval` seconds"""
    return round((index - 1) * frame_interval, 3)


def extract_frames(video_path: str, frames_dir: str, fps: float = 2.0,
                   max_duration: float = 30.0, with_phash: bool = True) -> List[FrameSample]:
    """
    Sample a video at a fixed rate into `frames_dir`.

    A tool failure or an empty result means there is nothing to analyze, so
    both return an empty list instead of raising.

    Returns:
        Frames ordered by index, with timestamps derived from the index
    """
    output_pattern = os.path.join(frames_dir, FRAME_PATTERN)
    frame_interval = 1.0 / fps

    logger.info(f"Extracting frames at {fps} fps (max {max_duration}s) from {video_path}")

    try:
        (
            ffmpeg
            .input(video_path)
            .filter('fps', fps=fps)
            .output(output_pattern, t=max_duration, **{'q:v': 1})
            .overwrite_output()
            .run(capture_stdout=True, capture_stderr=True)
        )
    except ffmpeg.Error as e:
        stderr = e.stderr.decode(errors='replace') if e.stderr else str(e)
        logger.warning(f"Frame extraction failed for {video_path}: {stderr[-500:]}")
        return []

    frames = list_frames(frames_dir, frame_interval)
    if with_phash:
        for frame in frames:
            frame.phash = generate_phash(frame.path)

    logger.info(f"Extracted {len(frames)} frames from {video_path}")
    return frames


def list_frames(frames_dir: str, frame_interval: float) -> List[FrameSample]:
    """Collect extracted frame files in ordinal order"""
    if not os.path.isdir(frames_dir):
        return []

    frames = []
    for name in sorted(os.listdir(frames_dir)):
        if not name.endswith('.jpg'):
            continue
        match = _FRAME_NUMBER.search(name)
        if not match:
            continue
        index = int(match.group(1))
        frames.append(FrameSample(
            index=index,
            path=os.path.join(frames_dir, name),
            timestamp=frame_timestamp(index, frame_interval),
        ))
    frames.sort(key=lambda f: f.index)
    return frames


def validate_frame_file(frame_path: str) -> bool:
    """Validate that frame file exists and is readable"""
    if not os.path.exists(frame_path):
        return False

    try:
        with Image.open(frame_path) as img:
            img.verify()
        return True
    except Exception:
        return False
