import base64
import logging
import asyncio
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI, AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models import FrameDetections, FrameSample, RawDetection
from .frames import validate_frame_file
from .jsonparse import extract_json

logger = logging.getLogger("video_localizer")


OVERLAY_PROMPT = """Find ALL text overlays/captions in this video frame. This includes:
- Text with colored background boxes (white, orange, etc.)
- Text overlays WITHOUT background (floating text, subtitles)
- Large bold text added in post-production
- Call-to-action text, slogans, marketing phrases

Return JSON:
{
  "texts": [
    {"text": "exact text", "position": "top|center|bottom|center-top|center-bottom", "x": 50, "y": 30}
  ]
}

RULES:
- x,y = position of the text centre as % of image (0-100)
- Include text in ANY language (Greek, Croatian, Czech, Polish, Hungarian, Italian, etc.)
- Multi-line text that belongs together = combine into one: "Line1 Line2"
- IGNORE: brand logos printed ON physical products/clothing, size labels on garments, watermarks
- INCLUDE: any text that was ADDED to the video in post-production (editing)
- Return ONLY the JSON, no explanation

If no added text overlay visible, return: {"texts": []}"""


class DetectedText(BaseModel):
    """One text item as returned by the vision model"""
    text: str = Field(description="The text content")
    position: Optional[str] = Field(default=None, description="Named anchor")
    x: Optional[float] = Field(default=None, description="Horizontal centre, percent")
    y: Optional[float] = Field(default=None, description="Vertical centre, percent")
    style: Optional[str] = Field(default=None, description="Visual style hint")

    @field_validator('x', 'y')
    @classmethod
    def clamp_percent(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        return min(max(float(value), 0.0), 100.0)


def parse_detections(content: Optional[str]) -> Optional[List[RawDetection]]:
    """
    Parse a vision reply into detections.

    Returns:
        List of detections (possibly empty), or None if no JSON could be parsed
    """
    result = extract_json(content)
    if not result.ok:
        logger.warning(f"Could not parse vision response: {result.error}")
        return None

    payload = result.value
    if isinstance(payload, dict):
        items = payload.get('texts') or []
    elif isinstance(payload, list):
        items = payload
    else:
        logger.warning(f"Unexpected vision payload type: {type(payload).__name__}")
        return None

    detections = []
    for item in items:
        if isinstance(item, str):
            item = {'text': item}
        if not isinstance(item, dict):
            continue
        try:
            parsed = DetectedText.model_validate(item)
        except ValidationError as e:
            logger.debug(f"Skipping malformed text item {item!r}: {e.error_count()} errors")
            continue
        detections.append(RawDetection(
            text=parsed.text,
            position=parsed.position,
            x=parsed.x,
            y=parsed.y,
            style=parsed.style,
        ))
    return detections


def _encode_image(frame_path: str) -> str:
    with open(frame_path, 'rb') as image_file:
        return base64.b64encode(image_file.read()).decode('utf-8')


def _build_messages(base64_image: str) -> List[Dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": OVERLAY_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}
                }
            ]
        }
    ]


class OverlayTextDetector:
    """Detects post-production overlay text in sampled frames"""

    def __init__(self, model: str = "gpt-4o", max_tokens: int = 500, max_concurrent: int = 5,
                 client: Optional[OpenAI] = None, async_client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.max_concurrent = max_concurrent
        self._client = client
        # Only an injected client is reused across calls
        self._async_client = async_client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def detect_frame(self, frame: FrameSample, job_id: str = "") -> Optional[List[RawDetection]]:
        """Analyze one frame; None means the frame could not be analyzed"""
        if not validate_frame_file(frame.path):
            logger.warning(f"[{job_id}] Skipping unreadable frame {frame.path}")
            return None
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=_build_messages(_encode_image(frame.path)),
                max_tokens=self.max_tokens,
                temperature=0.1
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"[{job_id}] Vision request failed for frame {frame.index} ({frame.timestamp}s): {e}")
            return None

        detections = parse_detections(content)
        self._log_frame(job_id, frame, detections)
        return detections

    async def detect_frame_async(self, client: AsyncOpenAI, frame: FrameSample,
                                 semaphore: asyncio.Semaphore, job_id: str = "") -> Optional[List[RawDetection]]:
        """Async version of detect_frame for parallel processing"""
        async with semaphore:
            if not validate_frame_file(frame.path):
                logger.warning(f"[{job_id}] Skipping unreadable frame {frame.path}")
                return None
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=_build_messages(_encode_image(frame.path)),
                    max_tokens=self.max_tokens,
                    temperature=0.1
                )
                content = response.choices[0].message.content
            except Exception as e:
                logger.error(f"[{job_id}] Vision request failed for frame {frame.index} ({frame.timestamp}s): {e}")
                return None

            detections = parse_detections(content)
            self._log_frame(job_id, frame, detections)
            return detections

    @staticmethod
    def _log_frame(job_id: str, frame: FrameSample, detections: Optional[List[RawDetection]]) -> None:
        if detections is None:
            logger.warning(f"[{job_id}] Frame {frame.index} ({frame.timestamp}s): unparseable response, skipped")
        else:
            texts = ', '.join(d.text for d in detections) or 'no texts'
            logger.debug(f"[{job_id}] Frame {frame.index} ({frame.timestamp}s): {texts}")

    async def _detect_unique_parallel(self, frames: List[FrameSample],
                                      job_id: str) -> List[Optional[List[RawDetection]]]:
        # The async client's connection pool belongs to the loop it was created on,
        # and every detect_frames call runs its own loop
        if self._async_client is not None:
            return await self._gather(self._async_client, frames, job_id)
        async with AsyncOpenAI() as client:
            return await self._gather(client, frames, job_id)

    async def _gather(self, client: AsyncOpenAI, frames: List[FrameSample],
                      job_id: str) -> List[Optional[List[RawDetection]]]:
        semaphore = asyncio.Semaphore(self.max_concurrent)
        tasks = [self.detect_frame_async(client, frame, semaphore, job_id) for frame in frames]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        processed = []
        for frame, result in zip(frames, results):
            if isinstance(result, Exception):
                logger.error(f"[{job_id}] Frame {frame.index} task failed: {result}")
                processed.append(None)
            else:
                processed.append(result)
        return processed

    def detect_frames(self, frames: List[FrameSample], job_id: str = "",
                      reuse_identical: bool = True) -> List[FrameDetections]:
        """
        Analyze frames and return detections in frame order.

        Consecutive frames with an identical perceptual hash reuse the previous
        frame's result instead of issuing another model call.
        """
        start_time = time.time()
        frames = sorted(frames, key=lambda f: f.index)

        # Map every frame to the frame whose result it uses
        source_of = []
        unique: List[FrameSample] = []
        for i, frame in enumerate(frames):
            if (reuse_identical and i > 0 and frame.phash
                    and frame.phash == frames[i - 1].phash):
                source_of.append(source_of[-1])
            else:
                source_of.append(len(unique))
                unique.append(frame)

        logger.info(
            f"[{job_id}] Analyzing {len(unique)} of {len(frames)} frames "
            f"with {self.max_concurrent} concurrent requests"
        )

        try:
            unique_results = asyncio.run(self._detect_unique_parallel(unique, job_id))
        except Exception as e:
            logger.warning(f"[{job_id}] Parallel vision failed, falling back to sequential: {e}")
            unique_results = [self.detect_frame(frame, job_id) for frame in unique]

        results = [
            FrameDetections(timestamp=frame.timestamp, detections=unique_results[source_of[i]])
            for i, frame in enumerate(frames)
        ]

        elapsed = time.time() - start_time
        failed = sum(1 for r in results if r.failed)
        logger.info(f"[{job_id}] Vision completed in {elapsed:.2f}s ({failed} frames skipped)")
        return results
