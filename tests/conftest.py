# File: tests/conftest.py

import os
import logging
import threading
from types import SimpleNamespace

import pytest

from localizer.config import LocalizerConfig
from localizer.adapters.json_store import JsonFileJobStore
from localizer.errors import EncodeError
from localizer.models import TextSegment
from localizer.orchestrator import JobCoordinator
from localizer.pipeline.translate import apply_translations


def chat_response(content):
    """Shape of an OpenAI chat completion, as far as the pipeline reads it"""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    """Returns queued replies in order; an Exception instance is raised instead"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return chat_response(reply)


class FakeAsyncCompletions(FakeCompletions):
    async def create(self, **kwargs):
        return FakeCompletions.create(self, **kwargs)


def fake_client(*replies):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(replies)))


def fake_async_client(*replies):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeAsyncCompletions(replies)))


class FakeProcessor:
    """
    Stands in for LocalizationProcessor: no ffmpeg, no model calls.

    `render` writes a small file per language so archives and downloads work.
    """

    def __init__(self):
        self.analysis = [TextSegment(text="Detected", start=0.0, end=1.0)]
        self.translation_replies = None
        self.failing_languages = set()
        self.rendered = []
        self.translate_started = threading.Event()
        self.release_translate = threading.Event()
        self.release_translate.set()
        self.first_render_done = threading.Event()
        self.release_render = threading.Event()
        self.release_render.set()

    def analyze_text(self, video_path, job_id):
        return list(self.analysis)

    def split_scenes(self, video_path):
        return []

    def translate(self, texts, languages, job_id=""):
        self.translate_started.set()
        self.release_translate.wait(5)
        parsed = self.translation_replies
        if parsed is None:
            parsed = [{lang: f"{text} [{lang}]" for lang in languages} for text in texts]
        return apply_translations(texts, languages, parsed)

    def translate_to_language(self, texts, language="English"):
        return [f"{t} ({language})" for t in texts]

    def render(self, video_path, segments, texts, options, output_dir, stem, title, job_id=""):
        language = stem.rsplit("-", 1)[-1]
        if language in self.failing_languages:
            raise EncodeError(f"Encoding {stem} failed", stderr="boom")
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, f"{stem}.mp4")
        with open(path, "wb") as f:
            f.write(b"fake video")
        self.rendered.append((stem, list(texts)))
        if len(self.rendered) == 1:
            self.first_render_done.set()
            self.release_render.wait(5)
        return path

    def quality_check(self, language, texts, job_id=""):
        raise AssertionError("quality check is disabled in tests")


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    """Keep pipeline logs out of the test output unless something fails."""
    logging.getLogger("video_localizer").setLevel(logging.WARNING)
    yield


@pytest.fixture
def config(tmp_path):
    return LocalizerConfig(
        DATA_DIR=str(tmp_path / "data"),
        STORE_CONFIG={"path": str(tmp_path / "data" / "jobs" / "jobs.json")},
        ENABLE_QUALITY_CHECK=False,
    )


@pytest.fixture
def store(config):
    job_store = JsonFileJobStore(config.STORE_CONFIG["path"])
    job_store.connect()
    return job_store


@pytest.fixture
def uploaded_video(config):
    """A placeholder upload; only its existence is checked"""
    uploads = os.path.join(config.DATA_DIR, "uploads")
    os.makedirs(uploads, exist_ok=True)
    with open(os.path.join(uploads, "clip.mp4"), "wb") as f:
        f.write(b"not really a video")
    return "clip.mp4"


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def coordinator(config, store, processor):
    return JobCoordinator(config, store, processor=processor)
