"""
Localization pipeline stages.

Wraps the pipeline modules behind one object so the coordinator deals with
whole stages (analyze, translate, render, check) rather than individual
tools, and so tests can swap a stage out.
"""

import os
import time
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from .config import LocalizerConfig
from .models import QualityCheck, Scene, TextSegment, SUPPORTED_LANGUAGES
from .pipeline.frames import extract_frames
from .pipeline.vision import OverlayTextDetector
from .pipeline.segments import DEFAULT_BRANDS, build_segments
from .pipeline.scenes import split_scenes
from .pipeline.translate import Translator
from .pipeline.styles import RenderOptions, is_known_style
from .pipeline.subtitles import build_ass_document, build_cues, split_cues, write_ass
from .pipeline.overlays import build_overlays
from .pipeline.render import encode_video
from .pipeline.quality import QualityChecker
from .pipeline.util import get_analysis_dir, remove_dir

logger = logging.getLogger("video_localizer")


class LocalizationProcessor:
    """Runs individual pipeline stages with configured collaborators"""

    def __init__(self, config: LocalizerConfig, detector: Optional[OverlayTextDetector] = None,
                 translator: Optional[Translator] = None,
                 quality_checker: Optional[QualityChecker] = None):
        self.config = config
        self.detector = detector or OverlayTextDetector(
            model=config.OPENAI_MODEL,
            max_tokens=config.VISION_MAX_TOKENS,
            max_concurrent=config.VISION_MAX_CONCURRENT,
        )
        self.translator = translator or Translator(
            model=config.OPENAI_MODEL,
            max_tokens=config.TRANSLATION_MAX_TOKENS,
            brand_name=config.BRAND_NAME,
        )
        self.quality_checker = quality_checker or QualityChecker(
            model=config.OPENAI_MODEL,
            sample_size=config.QC_SAMPLE_SIZE,
        )

    @property
    def brands(self) -> Sequence[str]:
        if self.config.BRAND_NAME:
            return DEFAULT_BRANDS + (self.config.BRAND_NAME,)
        return DEFAULT_BRANDS

    def analyze_text(self, video_path: str, job_id: str) -> List[TextSegment]:
        """
        Extract frames, detect overlay text and build timed segments.

        The frame directory is removed afterwards whether or not analysis succeeds.

        Returns:
            Segments ordered by start time; empty when nothing usable was found
        """
        start_time = time.time()
        frames_dir = get_analysis_dir(self.config.DATA_DIR, job_id)
        try:
            frames = extract_frames(
                video_path,
                frames_dir,
                fps=self.config.FRAME_RATE,
                max_duration=self.config.MAX_ANALYSIS_SECONDS,
                with_phash=self.config.REUSE_IDENTICAL_FRAMES,
            )
            if not frames:
                logger.warning(f"[{job_id}] No frames extracted from {video_path}, nothing to analyze")
                return []

            detections = self.detector.detect_frames(
                frames, job_id=job_id, reuse_identical=self.config.REUSE_IDENTICAL_FRAMES
            )
            segments = build_segments(
                detections, frame_interval=self.config.frame_interval, brands=self.brands
            )
        finally:
            remove_dir(frames_dir)

        # Style hints from the model are free text; only known style names survive
        segments = [s if is_known_style(s.style) else replace(s, style=None) for s in segments]

        logger.info(
            f"[{job_id}] Analysis found {len(segments)} segments in {time.time() - start_time:.2f}s"
        )
        for i, segment in enumerate(segments):
            logger.debug(f"[{job_id}]   {i}: '{segment.text}' @ {segment.start}s-{segment.end}s")
        return segments

    def split_scenes(self, video_path: str) -> List[Scene]:
        return split_scenes(
            video_path,
            backend=self.config.SCENE_BACKEND,
            threshold=self.config.SCENE_THRESHOLD,
            epsilon=self.config.SCENE_CUT_EPSILON,
            min_duration=self.config.SCENE_MIN_DURATION,
        )

    def translate(self, texts: Sequence[str], languages: Sequence[str],
                  job_id: str = "") -> List[Dict[str, str]]:
        return self.translator.translate(texts, languages, job_id=job_id)

    def translate_to_language(self, texts: Sequence[str], language: str = "English") -> List[str]:
        return self.translator.translate_to_language(texts, language)

    def render(self, video_path: str, segments: Sequence[TextSegment], texts: Sequence[str],
               options: RenderOptions, output_dir: str, stem: str, title: str,
               job_id: str = "") -> str:
        """
        Render one output video with `texts` shown over `segments` timing.

        The subtitle track and overlay images are written to a scratch
        directory next to the output and removed once encoding finishes.

        Raises:
            EncodeError: the encode failed

        Returns:
            Path of the rendered video
        """
        os.makedirs(output_dir, exist_ok=True)
        work_dir = os.path.join(output_dir, f".work-{stem}")
        os.makedirs(work_dir, exist_ok=True)
        output_path = os.path.join(output_dir, f"{stem}.mp4")

        try:
            cues = build_cues(segments, texts, options)
            _, overlay_cues = split_cues(cues)

            document = build_ass_document(
                title, cues, options,
                font_name=self.config.FONT_NAME,
                canvas_width=self.config.CANVAS_WIDTH,
                canvas_height=self.config.CANVAS_HEIGHT,
            )
            ass_path = write_ass(os.path.join(work_dir, "subs.ass"), document)

            overlays = build_overlays(
                overlay_cues, work_dir, options.font_size,
                canvas_width=self.config.CANVAS_WIDTH,
                canvas_height=self.config.CANVAS_HEIGHT,
                font_path=self.config.FONT_PATH,
            )

            return encode_video(
                video_path, ass_path, output_path, overlays,
                fonts_dir=self.config.FONTS_DIR, job_id=job_id,
            )
        finally:
            remove_dir(work_dir)

    def quality_check(self, language: str, texts: Sequence[str], job_id: str = "") -> QualityCheck:
        return self.quality_checker.check(
            language, SUPPORTED_LANGUAGES.get(language, language), texts, job_id=job_id
        )
