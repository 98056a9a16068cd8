"""
JSON-file job store.

All records live in one JSON document (`{"jobs": {id: record}}`). A lock
serialises every read-modify-write in this process, and the document is
rewritten through a temp file plus `os.replace` so readers never see a
partially written file.
"""

import os
import json
import logging
import tempfile
import threading
from typing import Any, Dict, List, Optional

from .base import JobStore
from ..errors import JobConflictError
from ..models import LocalizationJob, utc_now

logger = logging.getLogger("video_localizer")

# One lock per file path, shared by every store instance in the process
_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: str) -> threading.RLock:
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(os.path.abspath(path), threading.RLock())


class JsonFileJobStore(JobStore):
    """Job store backed by a single JSON file"""

    def __init__(self, path: str):
        self.path = path
        self._lock = _lock_for(path)

    def connect(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        logger.info(f"JSON job store at {self.path}")

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data.get('jobs', {})

    def _write(self, records: Dict[str, Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.jobs-', suffix='.json', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump({'jobs': records}, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, job_id: str) -> Optional[LocalizationJob]:
        with self._lock:
            record = self._read().get(job_id)
        return LocalizationJob.from_dict(record) if record else None

    def list_jobs(self) -> List[LocalizationJob]:
        with self._lock:
            records = self._read()
        return [LocalizationJob.from_dict(r) for r in records.values()]

    def save(self, job: LocalizationJob) -> LocalizationJob:
        with self._lock:
            records = self._read()
            stored = records.get(job.id)

            if job.version == 0:
                if stored is not None:
                    raise JobConflictError(f"Job {job.id} already exists")
            elif stored is None or int(stored.get('version', 0)) != job.version:
                found = stored.get('version') if stored else None
                raise JobConflictError(
                    f"Job {job.id} version mismatch (expected {job.version}, found {found})"
                )

            job.version += 1
            job.updated_at = utc_now()
            records[job.id] = job.to_dict()
            self._write(records)
        return job

    def delete(self, job_id: str) -> bool:
        with self._lock:
            records = self._read()
            if records.pop(job_id, None) is None:
                return False
            self._write(records)
        logger.info(f"Deleted job {job_id} from {self.path}")
        return True
