import os
import re
import shutil
import logging
from typing import Optional

import ffmpeg

logger = logging.getLogger("video_localizer")


# Directory layout under DATA_DIR
UPLOADS_DIR = "uploads"
ANALYSIS_DIR = "analysis"
GENERATED_DIR = "generated"
PREVIEWS_DIR = "previews"


def resolve_video_path(data_dir: str, stored_path: str) -> str:
    """Resolve an uploaded video reference to an absolute path under DATA_DIR/uploads"""
    if os.path.isabs(stored_path):
        return stored_path
    return os.path.join(data_dir, UPLOADS_DIR, stored_path.lstrip("/"))


def get_analysis_dir(data_dir: str, job_id: str) -> str:
    """Get a fresh, job-scoped directory for extracted frames"""
    analysis_dir = os.path.join(data_dir, ANALYSIS_DIR, clean_filename(job_id))
    if os.path.exists(analysis_dir):
        shutil.rmtree(analysis_dir, ignore_errors=True)
    os.makedirs(analysis_dir, exist_ok=True)
    return analysis_dir


def get_output_dir(data_dir: str, job_id: str) -> str:
    """Get output directory for a job's rendered videos"""
    output_dir = os.path.join(data_dir, GENERATED_DIR, clean_filename(job_id))
    os.makedirs(output_dir, exist_ok=True)
    return output_dir


def get_preview_dir(data_dir: str, preview_id: str) -> str:
    preview_dir = os.path.join(data_dir, PREVIEWS_DIR, clean_filename(preview_id))
    os.makedirs(preview_dir, exist_ok=True)
    return preview_dir


def remove_dir(path: Optional[str]) -> None:
    """Remove a working directory, ignoring a missing one"""
    if path and os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)


def format_ass_time(seconds: float) -> str:
    """Format seconds as H:MM:SS.cc (ASS timestamps use centiseconds)"""
    total_cs = int(round(max(seconds, 0.0) * 100))
    hours, rest = divmod(total_cs, 360000)
    minutes, rest = divmod(rest, 6000)
    secs, centis = divmod(rest, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{centis:02d}"


def get_video_duration(video_path: str) -> float:
    """Get video duration in seconds"""
    try:
        probe = ffmpeg.probe(video_path)
        duration = probe.get('format', {}).get('duration')
        if duration is None:
            video_stream = next(s for s in probe['streams'] if s['codec_type'] == 'video')
            duration = video_stream.get('duration', 0)
        return float(duration)
    except Exception as e:
        logger.error(f"Error getting duration for {video_path}: {e}")
        return 0.0


def has_audio_stream(video_path: str) -> bool:
    try:
        probe = ffmpeg.probe(video_path)
    except ffmpeg.Error as e:
        logger.warning(f"Could not probe {video_path} for audio: {e}")
        return False
    return any(s.get('codec_type') == 'audio' for s in probe.get('streams', []))


def generate_phash(image_path: str) -> str:
    """Generate perceptual hash for an image"""
    import imagehash
    from PIL import Image

    try:
        with Image.open(image_path) as img:
            return str(imagehash.phash(img))
    except Exception as e:
        logger.warning(f"Error generating phash for {image_path}: {e}")
        return ""


def clean_filename(filename: str) -> str:
    """Clean filename for safe filesystem usage"""
    filename = re.sub(r'[<>:"/\\|?*]', '_', filename)
    filename = re.sub(r'_+', '_', filename)
    filename = filename.strip('_.')
    return filename or 'unnamed'
