import os
import zipfile

import pytest

from localizer.adapters.json_store import JsonFileJobStore
from localizer.errors import (
    InvalidJobStateError, JobNotFoundError, PermissionDeniedError, ValidationError,
)
from localizer.models import JobStatus, LocalizationJob, SUPPORTED_LANGUAGES
from localizer.orchestrator import JobCoordinator, select_languages


class RecordingStore(JsonFileJobStore):
    """Remembers every status written, in order"""

    def __init__(self, path):
        super().__init__(path)
        self.statuses = []

    def save(self, job):
        saved = super().save(job)
        if not self.statuses or self.statuses[-1] != job.status:
            self.statuses.append(job.status)
        return saved


@pytest.fixture
def recording_store(config):
    store = RecordingStore(config.STORE_CONFIG["path"])
    store.connect()
    return store


@pytest.fixture
def recording_coordinator(config, recording_store, processor):
    return JobCoordinator(config, recording_store, processor=processor)


def request(uploaded_video, **overrides):
    body = {
        "name": "summer promo",
        "video": uploaded_video,
        "texts": [
            {"text": "Summer sale", "start": 0.0, "end": 1.5},
            {"text": "Shop now", "start": 2.0, "end": 3.0, "role": "cta"},
        ],
        "languages": ["HR", "IT"],
    }
    body.update(overrides)
    return body


def run_job(coordinator, body):
    job = coordinator.submit(body)
    assert coordinator.wait(job.id, timeout=10)
    return coordinator.get(job.id)


def test_select_languages_keeps_fixed_order():
    assert select_languages(["it", "HR"]) == ["HR", "IT"]
    assert select_languages([]) == list(SUPPORTED_LANGUAGES)
    assert select_languages(None) == list(SUPPORTED_LANGUAGES)
    with pytest.raises(ValidationError):
        select_languages(["XX"])


def test_job_with_texts_runs_to_done(recording_coordinator, recording_store, uploaded_video, processor):
    job = run_job(recording_coordinator, request(uploaded_video))

    assert job.status is JobStatus.DONE
    assert recording_store.statuses == [
        JobStatus.QUEUED, JobStatus.TRANSLATING, JobStatus.GENERATING, JobStatus.DONE,
    ]
    assert sorted(job.outputs) == ["HR", "IT"]
    assert all(os.path.exists(path) for path in job.outputs.values())
    assert job.progress.completed == job.progress.total == 2
    assert job.progress.current_language == ""
    assert job.completed_at is not None
    assert [stem for stem, _ in processor.rendered] == ["summer promo-HR", "summer promo-IT"]


def test_analysis_job_passes_through_analyzing(recording_coordinator, recording_store, uploaded_video):
    job = run_job(recording_coordinator, request(uploaded_video, texts=[], analyze=True))

    assert job.status is JobStatus.DONE
    assert recording_store.statuses[:3] == [JobStatus.QUEUED, JobStatus.ANALYZING, JobStatus.TRANSLATING]
    assert [s.text for s in job.segments] == ["Detected"]


def test_analysis_without_text_fails_the_job(coordinator, uploaded_video, processor):
    processor.analysis = []
    job = run_job(coordinator, request(uploaded_video, texts=[], analyze=True))

    assert job.status is JobStatus.ERROR
    assert job.error == "No text found in video"
    assert job.outputs == {}


def test_missing_translation_renders_source_text(coordinator, uploaded_video, processor):
    processor.translation_replies = [{"HR": "Ljetno sniženje", "IT": "Saldi estivi"}, {"HR": "Kupi odmah"}]
    job = run_job(coordinator, request(uploaded_video))

    rendered = dict(processor.rendered)
    assert rendered["summer promo-HR"] == ["Ljetno sniženje", "Kupi odmah"]
    assert rendered["summer promo-IT"] == ["Saldi estivi", "Shop now"]
    assert job.translations[1]["IT"] == "Shop now"


def test_failed_language_does_not_stop_the_others(coordinator, uploaded_video, processor):
    processor.failing_languages = {"CZ"}
    job = run_job(coordinator, request(uploaded_video, languages=["HR", "CZ", "PL"]))

    assert job.status is JobStatus.DONE
    assert sorted(job.outputs) == ["HR", "PL"]
    assert "CZ" in job.failures
    assert job.progress.completed == 3


def test_every_language_failing_is_an_error(coordinator, uploaded_video, processor):
    processor.failing_languages = {"HR", "IT"}
    job = run_job(coordinator, request(uploaded_video))

    assert job.status is JobStatus.ERROR
    assert job.error == "Rendering failed for every language"


def test_finished_jobs_release_their_threads(coordinator, uploaded_video):
    first = run_job(coordinator, request(uploaded_video))
    second = run_job(coordinator, request(uploaded_video, name="winter promo"))

    assert coordinator._threads == {}
    assert not coordinator.is_running(first.id)
    assert coordinator.wait(second.id, timeout=0)


def test_cancel_while_translating(coordinator, uploaded_video, processor):
    processor.release_translate.clear()
    job = coordinator.submit(request(uploaded_video))
    assert processor.translate_started.wait(5)

    coordinator.cancel(job.id)
    processor.release_translate.set()
    assert coordinator.wait(job.id, timeout=10)

    job = coordinator.get(job.id)
    assert job.status is JobStatus.CANCELLED
    assert job.cancelled
    assert job.outputs == {}
    assert processor.rendered == []


def test_cancel_while_generating_keeps_rendered_languages(coordinator, uploaded_video, processor):
    processor.release_render.clear()
    job = coordinator.submit(request(uploaded_video))
    assert processor.first_render_done.wait(5)

    assert coordinator.get(job.id).status is JobStatus.GENERATING
    coordinator.cancel(job.id)
    processor.release_render.set()
    assert coordinator.wait(job.id, timeout=10)

    job = coordinator.get(job.id)
    assert job.status is JobStatus.CANCELLED
    assert list(job.outputs) == ["HR"]
    assert os.path.exists(job.outputs["HR"])
    assert [stem for stem, _ in processor.rendered] == ["summer promo-HR"]


def test_cancel_is_rejected_outside_translating_and_generating(coordinator, uploaded_video):
    job = run_job(coordinator, request(uploaded_video))
    with pytest.raises(InvalidJobStateError):
        coordinator.cancel(job.id)


def test_cancel_of_interrupted_job_finishes_it(coordinator, store):
    job = LocalizationJob(id="job-stale", name="old", video="clip.mp4", languages=["HR"])
    job.transition(JobStatus.TRANSLATING)
    job.transition(JobStatus.GENERATING)
    store.save(job)

    assert coordinator.recover() == ["job-stale"]
    cancelled = coordinator.cancel("job-stale")
    assert cancelled.status is JobStatus.CANCELLED
    assert coordinator.recover() == []


@pytest.mark.parametrize("overrides,message", [
    ({"name": "  "}, "Missing name"),
    ({"video": "missing.mp4"}, "Video not found"),
    ({"video": None}, "Missing video"),
    ({"texts": []}, "Missing texts"),
    ({"analyze": True}, "either texts or analyze"),
    ({"style": "sparkly"}, "Unknown style"),
    ({"hook_style": "sparkly"}, "Unknown style"),
    ({"languages": ["EN"]}, "No supported language"),
    ({"font_size": "huge"}, "Invalid font_size"),
    ({"font_size": -4}, "must be positive"),
    ({"texts": [{"text": "Sale", "start": 2.0, "end": 1.0}]}, "Invalid text #1"),
    ({"texts": [{"start": 0, "end": 1}]}, "Invalid text #1"),
    ({"texts": [{"text": "Sale", "start": 0, "end": 1, "style": "sparkly"}]}, "Unknown style"),
])
def test_invalid_submissions(coordinator, uploaded_video, overrides, message):
    with pytest.raises(ValidationError, match=message):
        coordinator.submit(request(uploaded_video, **overrides))
    assert coordinator.list_jobs() == []


def test_submission_defaults(coordinator, uploaded_video):
    body = request(uploaded_video)
    del body["languages"]
    job = run_job(coordinator, body)
    assert job.languages == list(SUPPORTED_LANGUAGES)
    assert job.style == "white"
    assert job.font_size == 72


def test_delete_checks_author(coordinator, config, uploaded_video):
    body = request(uploaded_video, naming={"id": "7", "date": "0601", "product": "shoes", "type": "ugc", "author": "Ana"})
    job = run_job(coordinator, body)
    output_dir = os.path.join(config.DATA_DIR, "generated", job.id)
    assert os.path.isdir(output_dir)

    with pytest.raises(PermissionDeniedError):
        coordinator.delete(job.id, "marko")

    coordinator.delete(job.id, "ANA")
    assert not os.path.exists(output_dir)
    with pytest.raises(JobNotFoundError):
        coordinator.get(job.id)


def test_delete_without_author_is_allowed(coordinator, uploaded_video):
    job = run_job(coordinator, request(uploaded_video))
    coordinator.delete(job.id)
    assert coordinator.list_jobs() == []


def test_archive_contains_every_output(coordinator, uploaded_video):
    job = run_job(coordinator, request(uploaded_video))
    archive = coordinator.build_archive(job.id)

    assert os.path.basename(archive) == "summer promo-all-languages.zip"
    with zipfile.ZipFile(archive) as zf:
        assert sorted(zf.namelist()) == ["summer promo-HR.mp4", "summer promo-IT.mp4"]


def test_archive_requires_a_finished_job(coordinator, uploaded_video, processor):
    processor.failing_languages = {"HR", "IT"}
    job = run_job(coordinator, request(uploaded_video))
    with pytest.raises(InvalidJobStateError):
        coordinator.build_archive(job.id)


def test_output_path(coordinator, uploaded_video):
    job = run_job(coordinator, request(uploaded_video))
    assert coordinator.output_path(job.id, "hr") == job.outputs["HR"]
    with pytest.raises(JobNotFoundError):
        coordinator.output_path(job.id, "PL")


def test_jobs_are_listed_newest_first(coordinator, uploaded_video):
    first = run_job(coordinator, request(uploaded_video, name="first"))
    second = run_job(coordinator, request(uploaded_video, name="second"))
    assert [j.id for j in coordinator.list_jobs()] == [second.id, first.id]


def test_preview_renders_source_texts(coordinator, uploaded_video, processor):
    path = coordinator.render_preview({
        "video": uploaded_video,
        "name": "draft",
        "texts": [{"text": "Summer sale", "start": 0.0, "end": 1.0, "style": "neon"}],
    })

    assert path.endswith("draft-preview.mp4")
    assert "previews" in path
    assert processor.rendered == [("draft-preview", ["Summer sale"])]
    assert coordinator.list_jobs() == []


def test_translate_to_language_requires_texts(coordinator):
    with pytest.raises(ValidationError):
        coordinator.translate_to_language([], "English")
    assert coordinator.translate_to_language(["Akcija"], "English") == ["Akcija (English)"]
