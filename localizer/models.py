"""
Domain models for the video localizer.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List

from .errors import InvalidTransitionError

# Target markets, in the fixed order languages are generated
SUPPORTED_LANGUAGES: Dict[str, str] = {
    "HR": "Croatian",
    "CZ": "Czech",
    "PL": "Polish",
    "GR": "Greek",
    "IT": "Italian",
    "HU": "Hungarian",
    "SK": "Slovak",
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Position(str, Enum):
    """Named on-screen anchors a text can be placed at"""
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"
    CENTER_TOP = "center-top"
    CENTER_BOTTOM = "center-bottom"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'Position':
        """Map a loosely-typed label to an anchor, defaulting to center"""
        if not value:
            return cls.CENTER
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.CENTER


@dataclass
class FrameSample:
    """A still image sampled from the source video"""
    index: int
    path: str
    timestamp: float
    phash: str = ""


@dataclass
class RawDetection:
    """One text fragment reported by the vision model for one frame"""
    text: str
    position: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    style: Optional[str] = None


@dataclass
class FrameDetections:
    """Detections for one frame; `detections` is None when the frame failed"""
    timestamp: float
    detections: Optional[List[RawDetection]]

    @property
    def failed(self) -> bool:
        return self.detections is None


@dataclass
class TextSegment:
    """A time-bounded unit of overlay text"""
    text: str
    start: float
    end: float
    position: str = Position.CENTER.value
    x: Optional[float] = None
    y: Optional[float] = None
    style: Optional[str] = None
    role: Optional[str] = None

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("Segment text must not be empty")
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid segment range {self.start}-{self.end} for '{self.text}'")

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TextSegment':
        return cls(
            text=data["text"],
            start=float(data["start"]),
            end=float(data["end"]),
            position=Position.parse(data.get("position")).value,
            x=_optional_float(data.get("x")),
            y=_optional_float(data.get("y")),
            style=data.get("style"),
            role=data.get("role"),
        )


@dataclass
class Scene:
    """A contiguous partition of the timeline derived from cut detection"""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end}


@dataclass
class QualityCheck:
    """Native-speaker review of one language's translated texts"""
    language: str
    language_name: str
    issues: List[Dict[str, Any]] = field(default_factory=list)
    checks: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["passed"] = self.passed
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QualityCheck':
        return cls(
            language=data["language"],
            language_name=data.get("language_name", ""),
            issues=list(data.get("issues", [])),
            checks=list(data.get("checks", [])),
        )


@dataclass
class JobProgress:
    completed: int = 0
    total: int = 0
    current_language: str = ""


@dataclass
class NamingParts:
    """Pieces of the output file naming convention"""
    id: str = ""
    date: str = ""
    product: str = ""
    type: str = ""
    author: str = ""

    def file_stem(self, language: str) -> str:
        return f"{self.id}_{self.date}_{language}_{self.product}_{self.type}_{self.author}"


class JobStatus(str, Enum):
    QUEUED = "queued"
    ANALYZING = "analyzing"
    TRANSLATING = "translating"
    GENERATING = "generating"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.QUEUED: frozenset({JobStatus.ANALYZING, JobStatus.TRANSLATING,
                                 JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.ANALYZING: frozenset({JobStatus.TRANSLATING, JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.TRANSLATING: frozenset({JobStatus.GENERATING, JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.GENERATING: frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELLED})

# Cancel requests are only honoured while one of these is active
CANCELLABLE_STATUSES = frozenset({JobStatus.TRANSLATING, JobStatus.GENERATING})


def _check_transition_table() -> None:
    missing = set(JobStatus) - set(ALLOWED_TRANSITIONS)
    if missing:
        raise RuntimeError(f"Transition table is missing {sorted(s.value for s in missing)}")
    for status in TERMINAL_STATUSES:
        if ALLOWED_TRANSITIONS[status]:
            raise RuntimeError(f"Terminal status {status.value} must not have exits")
    for status, targets in ALLOWED_TRANSITIONS.items():
        if status in targets:
            raise RuntimeError(f"Status {status.value} must not transition to itself")


_check_transition_table()


@dataclass
class LocalizationJob:
    """A localization request and its persisted progress"""
    id: str
    name: str
    video: str
    languages: List[str]
    segments: List[TextSegment] = field(default_factory=list)
    analyze: bool = False
    style: str = "white"
    font_size: int = 72
    hook_style: Optional[str] = None
    cta_style: Optional[str] = None
    per_text_styles: bool = False
    uppercase: bool = False
    naming: Optional[NamingParts] = None
    status: JobStatus = JobStatus.QUEUED
    progress: JobProgress = field(default_factory=JobProgress)
    outputs: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    quality_checks: Dict[str, QualityCheck] = field(default_factory=dict)
    translations: List[Dict[str, str]] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    version: int = 0

    @property
    def author(self) -> str:
        return self.naming.author if self.naming else ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, new_status: JobStatus) -> None:
        """Move to `new_status`, rejecting anything outside the transition table"""
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id}: illegal transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        self.updated_at = utc_now()
        if new_status in TERMINAL_STATUSES:
            self.completed_at = self.updated_at

    def output_stem(self, language: str) -> str:
        if self.naming:
            return self.naming.file_stem(language)
        return f"{self.name}-{language}"

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "progress": asdict(self.progress),
            "languages": list(self.languages),
            "outputs": sorted(self.outputs),
            "author": self.author,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "video": self.video,
            "languages": list(self.languages),
            "segments": [s.to_dict() for s in self.segments],
            "analyze": self.analyze,
            "style": self.style,
            "font_size": self.font_size,
            "hook_style": self.hook_style,
            "cta_style": self.cta_style,
            "per_text_styles": self.per_text_styles,
            "uppercase": self.uppercase,
            "naming": asdict(self.naming) if self.naming else None,
            "status": self.status.value,
            "progress": asdict(self.progress),
            "outputs": dict(self.outputs),
            "failures": dict(self.failures),
            "quality_checks": {k: v.to_dict() for k, v in self.quality_checks.items()},
            "translations": [dict(t) for t in self.translations],
            "cancelled": self.cancelled,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocalizationJob':
        naming = data.get("naming")
        return cls(
            id=data["id"],
            name=data["name"],
            video=data["video"],
            languages=list(data.get("languages", [])),
            segments=[TextSegment.from_dict(s) for s in data.get("segments", [])],
            analyze=bool(data.get("analyze", False)),
            style=data.get("style", "white"),
            font_size=int(data.get("font_size", 72)),
            hook_style=data.get("hook_style"),
            cta_style=data.get("cta_style"),
            per_text_styles=bool(data.get("per_text_styles", False)),
            uppercase=bool(data.get("uppercase", False)),
            naming=NamingParts(**naming) if naming else None,
            status=JobStatus(data.get("status", JobStatus.QUEUED.value)),
            progress=JobProgress(**data.get("progress", {})),
            outputs=dict(data.get("outputs", {})),
            failures=dict(data.get("failures", {})),
            quality_checks={
                k: QualityCheck.from_dict(v) for k, v in data.get("quality_checks", {}).items()
            },
            translations=[dict(t) for t in data.get("translations", [])],
            cancelled=bool(data.get("cancelled", False)),
            error=data.get("error"),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at"),
            completed_at=data.get("completed_at"),
            version=int(data.get("version", 0)),
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
