import re
import logging
from typing import Iterable, List

import ffmpeg
from scenedetect import open_video, SceneManager
from scenedetect.detectors import ContentDetector

from ..models import Scene
from ..logging_setup import log_exception
from ..errors import PipelineError
from .util import get_video_duration

logger = logging.getLogger("video_localizer")

_PTS_TIME = re.compile(r"pts_time:\s*([0-9]+(?:\.[0-9]+)?)")

# Float slack when comparing a scene length against the minimum
_EPSILON = 1e-6


def parse_showinfo_times(stderr: str) -> List[float]:
    """Collect `pts_time:` values from an ffmpeg showinfo trace"""
    return [float(m.group(1)) for m in _PTS_TIME.finditer(stderr or "")]


def detect_cut_times(video_path: str, threshold: float = 0.15) -> List[float]:
    """
    Run ffmpeg's scene-change score filter and return the timestamps of cuts.

    Raises:
        PipelineError: ffmpeg exited non-zero
    """
    logger.info(f"Detecting cuts with ffmpeg (threshold {threshold}) in {video_path}")
    try:
        _, stderr = (
            ffmpeg
            .input(video_path)
            .filter('select', f'gt(scene,{threshold})')
            .filter('showinfo')
            .output('-', format='null')
            .run(capture_stdout=True, capture_stderr=True)
        )
    except ffmpeg.Error as e:
        message = e.stderr.decode(errors='replace')[-500:] if e.stderr else str(e)
        raise PipelineError(f"Scene detection failed: {message}")

    return parse_showinfo_times(stderr.decode(errors='replace'))


def detect_cut_times_pyscenedetect(video_path: str, threshold: float = 27.0) -> List[float]:
    """Cut timestamps from PySceneDetect's ContentDetector (0.6+ API)"""
    video = None
    try:
        logger.info(f"Detecting cuts with PySceneDetect in {video_path}")
        video = open_video(video_path)
        scene_manager = SceneManager()
        scene_manager.add_detector(ContentDetector(threshold=threshold))
        scene_manager.detect_scenes(video=video)

        # Every scene after the first starts at a cut
        scene_list = scene_manager.get_scene_list()
        return [start.get_seconds() for start, _ in scene_list[1:]]
    except Exception as e:
        error_msg = f"Scene detection failed for {video_path}: {e}"
        log_exception(logger, error_msg)
        raise PipelineError(error_msg)
    finally:
        del video


def build_scenes(cut_times: Iterable[float], duration: float, epsilon: float = 0.3,
                 min_duration: float = 1.0) -> List[Scene]:
    """
    Partition [0, duration) at the given cuts.

    Cuts closer than `epsilon` to the last kept cut (starting from 0) are
    dropped. Intervals shorter than `min_duration` are then merged
    into the next interval, or the previous one when last, until none remain
    or only one interval is left. Bounds are rounded to 0.1s.
    """
    if duration <= 0:
        return []

    points = [0.0]
    for cut in sorted(cut_times):
        if cut >= duration:
            break
        if cut - points[-1] >= epsilon:
            points.append(cut)
    points.append(duration)

    intervals = [[points[i], points[i + 1]] for i in range(len(points) - 1)]

    while len(intervals) > 1:
        short = next(
            (i for i, (start, end) in enumerate(intervals) if end - start < min_duration - _EPSILON),
            None
        )
        if short is None:
            break
        if short < len(intervals) - 1:
            intervals[short + 1][0] = intervals[short][0]
        else:
            intervals[short - 1][1] = intervals[short][1]
        del intervals[short]

    return [Scene(start=round(start, 1), end=round(end, 1)) for start, end in intervals]


def split_scenes(video_path: str, backend: str = "ffmpeg", threshold: float = 0.15,
                 epsilon: float = 0.3, min_duration: float = 1.0) -> List[Scene]:
    """Detect cuts in a video and build minimum-length scenes from them"""
    duration = get_video_duration(video_path)
    if duration <= 0:
        raise PipelineError(f"Could not determine duration of {video_path}")

    if backend == "pyscenedetect":
        cut_times = detect_cut_times_pyscenedetect(video_path)
    else:
        cut_times = detect_cut_times(video_path, threshold)

    scenes = build_scenes(cut_times, duration, epsilon, min_duration)
    logger.info(f"Split {video_path} into {len(scenes)} scenes from {len(cut_times)} raw cuts")
    return scenes
