import logging
from typing import Optional, Sequence

import ffmpeg

from ..errors import EncodeError
from .overlays import OverlaySpec
from .util import has_audio_stream

logger = logging.getLogger("video_localizer")

VIDEO_CODEC = "libx264"
PRESET = "fast"
CRF = 23


def overlay_enable(start: float, end: float) -> str:
    """Filter expression true for start <= t < end"""
    return f"gte(t,{start})*lt(t,{end})"


def build_encode(video_path: str, ass_path: str, output_path: str,
                 overlays: Sequence[OverlaySpec] = (), fonts_dir: Optional[str] = None,
                 with_audio: bool = True):
    """
    Assemble one encode: subtitle burn-in followed by every timed image overlay.

    Returns:
        The ffmpeg-python output node (not yet run)
    """
    source = ffmpeg.input(video_path)

    ass_kwargs = {'fontsdir': fonts_dir} if fonts_dir else {}
    video = source.video.filter('ass', ass_path, **ass_kwargs)

    for overlay in overlays:
        image = ffmpeg.input(overlay.path)
        video = ffmpeg.overlay(
            video,
            image,
            x=overlay.x,
            y=overlay.y,
            enable=overlay_enable(overlay.start, overlay.end),
        )

    streams = [video, source.audio] if with_audio else [video]
    output_kwargs = {'vcodec': VIDEO_CODEC, 'preset': PRESET, 'crf': CRF}
    if with_audio:
        output_kwargs['acodec'] = 'copy'

    return ffmpeg.output(*streams, output_path, **output_kwargs).overwrite_output()


def encode_video(video_path: str, ass_path: str, output_path: str,
                 overlays: Sequence[OverlaySpec] = (), fonts_dir: Optional[str] = None,
                 job_id: str = "") -> str:
    """
    Burn the subtitle track and overlays into a new video in a single pass.

    Raises:
        EncodeError: ffmpeg exited non-zero
    """
    with_audio = has_audio_stream(video_path)
    stream = build_encode(video_path, ass_path, output_path, overlays, fonts_dir, with_audio)

    logger.info(
        f"[{job_id}] Encoding {output_path} ({len(overlays)} image overlays, "
        f"audio {'copied' if with_audio else 'absent'})"
    )
    logger.debug(f"[{job_id}] ffmpeg args: {' '.join(stream.get_args())}")

    try:
        stream.run(capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as e:
        stderr = e.stderr.decode(errors='replace') if e.stderr else ''
        logger.error(f"[{job_id}] Encode failed for {output_path}: {stderr[-1000:]}")
        raise EncodeError(f"Encoding {output_path} failed", stderr=stderr)

    return output_path
