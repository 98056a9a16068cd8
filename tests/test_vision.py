import json
import asyncio
from types import SimpleNamespace

import pytest
from PIL import Image

from conftest import chat_response, fake_async_client, fake_client
from localizer.pipeline import vision
from localizer.models import FrameSample
from localizer.pipeline.vision import OverlayTextDetector, parse_detections


@pytest.fixture
def frames(tmp_path):
    def make(hashes):
        samples = []
        for i, phash in enumerate(hashes, start=1):
            path = tmp_path / f"frame-{i:04d}.jpg"
            Image.new("RGB", (32, 32), (i * 20, 0, 0)).save(path, "JPEG")
            samples.append(FrameSample(index=i, path=str(path), timestamp=(i - 1) * 0.5, phash=phash))
        return samples
    return make


def test_parse_object_with_texts():
    content = json.dumps({"texts": [{"text": "SALE", "position": "top", "x": 50, "y": 12}]})
    detections = parse_detections(content)
    assert len(detections) == 1
    assert detections[0].text == "SALE"
    assert detections[0].position == "top"
    assert (detections[0].x, detections[0].y) == (50.0, 12.0)


def test_parse_bare_list_and_strings():
    detections = parse_detections('["SALE", {"text": "Shop now"}]')
    assert [d.text for d in detections] == ["SALE", "Shop now"]


def test_coordinates_are_clamped_to_percent():
    detections = parse_detections('{"texts": [{"text": "Edge", "x": -5, "y": 140}]}')
    assert (detections[0].x, detections[0].y) == (0.0, 100.0)


def test_malformed_items_are_skipped():
    detections = parse_detections('{"texts": [{"position": "top"}, 7, {"text": "Kept"}]}')
    assert [d.text for d in detections] == ["Kept"]


def test_empty_result_differs_from_failure():
    assert parse_detections('{"texts": []}') == []
    assert parse_detections("I can't see any text.") is None


def test_identical_consecutive_frames_reuse_one_request(frames):
    reply = json.dumps({"texts": [{"text": "SALE", "position": "center"}]})
    async_client = fake_async_client(reply)
    detector = OverlayTextDetector(async_client=async_client, client=fake_client(reply))

    results = detector.detect_frames(frames(["aa", "aa", "bb"]))

    assert len(async_client.chat.completions.calls) == 2
    assert [r.timestamp for r in results] == [0.0, 0.5, 1.0]
    assert all(r.detections[0].text == "SALE" for r in results)


def test_reuse_can_be_disabled(frames):
    async_client = fake_async_client('{"texts": []}')
    detector = OverlayTextDetector(async_client=async_client, client=fake_client('{"texts": []}'))
    detector.detect_frames(frames(["aa", "aa"]), reuse_identical=False)
    assert len(async_client.chat.completions.calls) == 2


def test_failed_request_marks_frame_failed(frames):
    async_client = fake_async_client(RuntimeError("rate limited"))
    detector = OverlayTextDetector(async_client=async_client, client=fake_client('{"texts": []}'))
    results = detector.detect_frames(frames(["aa"]))
    assert results[0].failed


def test_unreadable_frame_is_skipped_without_request(tmp_path):
    async_client = fake_async_client('{"texts": []}')
    detector = OverlayTextDetector(async_client=async_client, client=fake_client('{"texts": []}'))
    missing = FrameSample(index=1, path=str(tmp_path / "missing.jpg"), timestamp=0.0)

    results = detector.detect_frames([missing])

    assert results[0].failed
    assert async_client.chat.completions.calls == []


def test_sequential_detection(frames):
    client = fake_client('{"texts": [{"text": "Hello"}]}')
    detector = OverlayTextDetector(client=client, async_client=fake_async_client("{}"))
    detections = detector.detect_frame(frames(["aa"])[0])
    assert [d.text for d in detections] == ["Hello"]
    assert client.chat.completions.calls[0]["temperature"] == 0.1


class LoopBoundClient:
    """Async client whose requests only work on the event loop it was opened on"""

    opened = []

    def __init__(self):
        self.loop = asyncio.get_running_loop()
        self.closed = False
        self.chat = SimpleNamespace(completions=self)
        LoopBoundClient.opened.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def create(self, **kwargs):
        if self.closed or asyncio.get_running_loop() is not self.loop:
            raise RuntimeError("Event loop is closed")
        return chat_response('{"texts": [{"text": "SALE"}]}')


def test_each_detection_run_opens_its_own_client(frames, monkeypatch):
    LoopBoundClient.opened = []
    monkeypatch.setattr(vision, "AsyncOpenAI", LoopBoundClient)
    detector = OverlayTextDetector(client=fake_client('{"texts": []}'))

    first = detector.detect_frames(frames(["aa"]), job_id="job-1")
    second = detector.detect_frames(frames(["bb"]), job_id="job-2")

    assert not first[0].failed
    assert not second[0].failed
    assert [d.text for d in second[0].detections] == ["SALE"]
    assert len(LoopBoundClient.opened) == 2
    assert all(client.closed for client in LoopBoundClient.opened)
