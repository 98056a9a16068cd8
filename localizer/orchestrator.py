"""
Job coordination.

`JobCoordinator` owns the life cycle of localization jobs: it validates
submissions, runs each job's pipeline on its own background thread, moves
the job through its status table, and persists the record after every
change. Cancellation is cooperative and observed between stages and
between languages.
"""

import os
import time
import uuid
import logging
import zipfile
import threading
from typing import Any, Dict, List, Optional, Sequence

from .config import LocalizerConfig
from .adapters.base import JobStore
from .errors import (
    EncodeError, InvalidJobStateError, JobNotFoundError, NoTextFoundError,
    PermissionDeniedError, PipelineError, ValidationError,
)
from .models import (
    CANCELLABLE_STATUSES, JobStatus, LocalizationJob, NamingParts, Scene,
    SUPPORTED_LANGUAGES, TextSegment,
)
from .processor import LocalizationProcessor
from .pipeline.styles import RenderOptions, SubtitleStyle, parse_style
from .pipeline.util import (
    GENERATED_DIR, clean_filename, get_output_dir, get_preview_dir, remove_dir, resolve_video_path,
)
from .logging_setup import log_exception

logger = logging.getLogger("video_localizer")

# Fields only the job's own task writes; everything else may change underneath it
TASK_FIELDS = (
    "segments", "status", "progress", "outputs", "failures", "quality_checks",
    "translations", "error", "completed_at",
)


def select_languages(requested: Optional[Sequence[str]]) -> List[str]:
    """
    Keep the supported codes from `requested`, in the fixed generation order.

    An empty or missing request means every supported language.
    """
    if not requested:
        return list(SUPPORTED_LANGUAGES)
    wanted = {str(code).strip().upper() for code in requested}
    selected = [code for code in SUPPORTED_LANGUAGES if code in wanted]
    if not selected:
        raise ValidationError(
            f"No supported language in {list(requested)} (supported: {', '.join(SUPPORTED_LANGUAGES)})"
        )
    return selected


def _new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class JobCoordinator:
    """Creates, runs, and tracks localization jobs"""

    def __init__(self, config: LocalizerConfig, store: JobStore,
                 processor: Optional[LocalizationProcessor] = None):
        self.config = config
        self.store = store
        self.processor = processor or LocalizationProcessor(config)
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    # ---- submission -------------------------------------------------------

    def _resolve_video(self, video: Optional[str]) -> str:
        if not video:
            raise ValidationError("Missing video")
        path = resolve_video_path(self.config.DATA_DIR, video)
        if not os.path.exists(path):
            raise ValidationError(f"Video not found: {video}")
        return path

    @staticmethod
    def _parse_segments(texts: Optional[Sequence[Dict[str, Any]]]) -> List[TextSegment]:
        segments = []
        for i, item in enumerate(texts or []):
            try:
                segment = TextSegment.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"Invalid text #{i + 1}: {e}")
            parse_style(segment.style)
            segments.append(segment)
        return segments

    @staticmethod
    def _parse_naming(naming: Optional[Dict[str, Any]]) -> Optional[NamingParts]:
        if not naming:
            return None
        known = NamingParts.__dataclass_fields__
        return NamingParts(**{k: str(v) for k, v in naming.items() if k in known and v is not None})

    def submit(self, request: Dict[str, Any]) -> LocalizationJob:
        """
        Validate a job request, persist it as `queued` and start its pipeline.

        Raises:
            ValidationError: the request is incomplete or names unknown values
        """
        name = (request.get("name") or "").strip()
        if not name:
            raise ValidationError("Missing name")
        self._resolve_video(request.get("video"))

        analyze = bool(request.get("analyze", False))
        segments = self._parse_segments(request.get("texts"))
        if analyze and segments:
            raise ValidationError("Supply either texts or analyze, not both")
        if not analyze and not segments:
            raise ValidationError("Missing texts")

        style = parse_style(request.get("style"), None)
        font_size = self._font_size(request.get("font_size"))

        job = LocalizationJob(
            id=_new_id("job"),
            name=clean_filename(name),
            video=request["video"],
            languages=select_languages(request.get("languages")),
            segments=segments,
            analyze=analyze,
            style=style.value if style else "white",
            font_size=font_size,
            hook_style=self._style_value(request.get("hook_style")),
            cta_style=self._style_value(request.get("cta_style")),
            per_text_styles=bool(request.get("per_text_styles", False)),
            uppercase=bool(request.get("uppercase", False)),
            naming=self._parse_naming(request.get("naming")),
        )
        job.progress.total = len(job.languages)
        self.store.save(job)

        logger.info(
            f"[{job.id}] Job '{job.name}' queued: {len(job.segments)} texts, "
            f"analyze={job.analyze}, languages={','.join(job.languages)}"
        )
        self._start(job)
        return job

    def _font_size(self, value: Any) -> int:
        try:
            font_size = int(value or self.config.DEFAULT_FONT_SIZE)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid font_size: {value!r}")
        if font_size <= 0:
            raise ValidationError("font_size must be positive")
        return font_size

    @staticmethod
    def _style_value(name: Optional[str]) -> Optional[str]:
        style = parse_style(name)
        return style.value if style else None

    def _start(self, job: LocalizationJob) -> None:
        with self._lock:
            self._cancel_events[job.id] = threading.Event()
            thread = threading.Thread(target=self._run, args=(job,), daemon=True, name=f"localize-{job.id}")
            self._threads[job.id] = thread
        thread.start()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until a job's task has finished; True if it is no longer running"""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancel_events

    # ---- the job task -----------------------------------------------------

    def _persist(self, job: LocalizationJob) -> None:
        """Write task-owned fields, keeping a cancel flag set by anyone else"""
        def merge(stored: LocalizationJob) -> None:
            cancelled = stored.cancelled or job.cancelled
            for name in TASK_FIELDS:
                setattr(stored, name, getattr(job, name))
            stored.cancelled = cancelled

        saved = self.store.update(job.id, merge)
        job.cancelled = saved.cancelled
        job.version = saved.version
        job.updated_at = saved.updated_at

    def _cancel_requested(self, job: LocalizationJob) -> bool:
        event = self._cancel_events.get(job.id)
        return job.cancelled or (event is not None and event.is_set())

    def _mark_cancelled(self, job: LocalizationJob) -> None:
        logger.info(f"[{job.id}] Job cancelled, stopping ({len(job.outputs)} outputs kept)")
        job.cancelled = True
        job.progress.current_language = ""
        job.transition(JobStatus.CANCELLED)
        self._persist(job)

    def _fail(self, job: LocalizationJob, message: str) -> None:
        job.error = message
        job.progress.current_language = ""
        if not job.is_terminal:
            job.transition(JobStatus.ERROR)
        try:
            self._persist(job)
        except Exception as e:
            log_exception(logger, f"[{job.id}] Could not persist error state: {e}")

    def _run(self, job: LocalizationJob) -> None:
        start_time = time.time()
        try:
            self._execute(job)
            logger.info(f"[{job.id}] Finished as {job.status.value} in {time.time() - start_time:.1f}s")
        except PipelineError as e:
            logger.error(f"[{job.id}] Pipeline failed: {e}")
            self._fail(job, str(e))
        except Exception as e:
            log_exception(logger, f"[{job.id}] Unexpected error: {e}")
            self._fail(job, f"Unexpected error: {e}")
        finally:
            with self._lock:
                self._cancel_events.pop(job.id, None)
                self._threads.pop(job.id, None)

    def _execute(self, job: LocalizationJob) -> None:
        video_path = self._resolve_video(job.video)

        if job.analyze:
            job.transition(JobStatus.ANALYZING)
            self._persist(job)
            segments = self.processor.analyze_text(video_path, job.id)
            if not segments:
                raise NoTextFoundError("No text found in video")
            job.segments = segments
            self._persist(job)

        job.transition(JobStatus.TRANSLATING)
        self._persist(job)
        texts = [segment.text for segment in job.segments]
        job.translations = self.processor.translate(texts, job.languages, job_id=job.id)
        self._persist(job)

        if self._cancel_requested(job):
            self._mark_cancelled(job)
            return

        job.transition(JobStatus.GENERATING)
        self._persist(job)
        self._generate(job, video_path)

    def _generate(self, job: LocalizationJob, video_path: str) -> None:
        options = RenderOptions.from_job(job)
        output_dir = get_output_dir(self.config.DATA_DIR, job.id)

        for lang in job.languages:
            if self._cancel_requested(job):
                self._mark_cancelled(job)
                return

            job.progress.current_language = lang
            self._persist(job)
            logger.info(f"[{job.id}] Generating {lang}...")

            texts = [t.get(lang, s.text) for t, s in zip(job.translations, job.segments)]
            try:
                job.outputs[lang] = self.processor.render(
                    video_path, job.segments, texts, options, output_dir,
                    stem=job.output_stem(lang), title=f"{job.name} {lang}", job_id=job.id,
                )
            except EncodeError as e:
                logger.error(f"[{job.id}] {lang} failed, continuing with remaining languages: {e}")
                job.failures[lang] = str(e)
            else:
                if self.config.ENABLE_QUALITY_CHECK:
                    job.quality_checks[lang] = self.processor.quality_check(lang, texts, job_id=job.id)

            job.progress.completed += 1
            self._persist(job)

        job.progress.current_language = ""
        if job.outputs:
            job.transition(JobStatus.DONE)
        else:
            job.error = "Rendering failed for every language"
            job.transition(JobStatus.ERROR)
        self._persist(job)

    # ---- queries and commands ---------------------------------------------

    def get(self, job_id: str) -> LocalizationJob:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(self) -> List[LocalizationJob]:
        """All jobs, newest first"""
        return sorted(self.store.list_jobs(), key=lambda j: j.created_at, reverse=True)

    def cancel(self, job_id: str) -> LocalizationJob:
        """
        Request cancellation of a translating or generating job.

        A job whose task is no longer running (left over from a previous
        process) is moved to `cancelled` directly.

        Raises:
            InvalidJobStateError: the job is in any other status
        """
        running = self.is_running(job_id)

        def mark(job: LocalizationJob) -> None:
            if job.status not in CANCELLABLE_STATUSES:
                raise InvalidJobStateError(f"Job {job_id} cannot be cancelled while {job.status.value}")
            job.cancelled = True
            if not running:
                job.transition(JobStatus.CANCELLED)

        job = self.store.update(job_id, mark)
        with self._lock:
            event = self._cancel_events.get(job_id)
        if event is not None:
            event.set()
        logger.info(f"[{job_id}] Cancel requested")
        return job

    def delete(self, job_id: str, author: Optional[str] = None) -> None:
        """
        Delete a job record and its rendered files.

        Authors are compared case-insensitively; a job or caller without an
        author is not restricted.

        Raises:
            PermissionDeniedError: the caller is not the job's author
            InvalidJobStateError: the job's task is still running
        """
        job = self.get(job_id)
        requester = (author or "").strip().lower()
        owner = job.author.strip().lower()
        if requester and owner and requester != owner:
            raise PermissionDeniedError(f"Only {job.author} can delete job {job_id}")
        if self.is_running(job_id):
            raise InvalidJobStateError(f"Job {job_id} is still running; cancel it first")

        self.store.delete(job_id)
        remove_dir(os.path.join(self.config.DATA_DIR, GENERATED_DIR, clean_filename(job_id)))
        logger.info(f"[{job_id}] Job deleted by {author or 'anonymous'}")

    def output_path(self, job_id: str, language: str) -> str:
        job = self.get(job_id)
        path = job.outputs.get(language.upper())
        if not path or not os.path.exists(path):
            raise JobNotFoundError(f"No {language.upper()} output for job {job_id}")
        return path

    def build_archive(self, job_id: str) -> str:
        """
        Zip every rendered language of a finished job.

        Raises:
            InvalidJobStateError: the job is not done
        """
        job = self.get(job_id)
        if job.status != JobStatus.DONE:
            raise InvalidJobStateError(f"Job {job_id} is not done ({job.status.value})")

        output_dir = get_output_dir(self.config.DATA_DIR, job.id)
        archive_path = os.path.join(output_dir, f"{job.name}-all-languages.zip")
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as archive:
            for lang in job.languages:
                path = job.outputs.get(lang)
                if path and os.path.exists(path):
                    archive.write(path, arcname=os.path.basename(path))
        logger.info(f"[{job_id}] Built archive {archive_path}")
        return archive_path

    # ---- jobless operations -----------------------------------------------

    def analyze_text(self, video: str) -> List[TextSegment]:
        return self.processor.analyze_text(self._resolve_video(video), _new_id("analysis"))

    def split_scenes(self, video: str) -> List[Scene]:
        return self.processor.split_scenes(self._resolve_video(video))

    def translate_to_language(self, texts: Sequence[str], language: str = "English") -> List[str]:
        if not texts:
            raise ValidationError("Missing texts")
        return self.processor.translate_to_language(texts, language)

    def render_preview(self, request: Dict[str, Any]) -> str:
        """
        Render the source texts once, without translation or a job record.

        Returns:
            Path of the preview video
        """
        video_path = self._resolve_video(request.get("video"))
        segments = self._parse_segments(request.get("texts"))
        if not segments:
            raise ValidationError("Missing texts")

        options = RenderOptions(
            style=parse_style(request.get("style"), SubtitleStyle.WHITE),
            font_size=self._font_size(request.get("font_size")),
            hook_style=parse_style(request.get("hook_style")),
            cta_style=parse_style(request.get("cta_style")),
            per_text_styles=bool(request.get("per_text_styles", True)),
            uppercase=bool(request.get("uppercase", False)),
        )
        preview_id = _new_id("preview")
        name = clean_filename(request.get("name") or "preview")
        return self.processor.render(
            video_path, segments, [s.text for s in segments], options,
            get_preview_dir(self.config.DATA_DIR, preview_id),
            stem=f"{name}-preview", title=f"{name} Preview", job_id=preview_id,
        )

    def recover(self) -> List[str]:
        """Log jobs a previous process left unfinished; they are not resumed"""
        stale = [job.id for job in self.store.list_jobs() if not job.is_terminal and not self.is_running(job.id)]
        for job_id in stale:
            logger.warning(f"[{job_id}] Job was interrupted by a restart and will not resume")
        if stale:
            logger.info(f"Found {len(stale)} stale jobs")
        return stale
