"""
Postgres job store.

Each job is one row holding the full record as JSONB plus a version column
used for compare-and-swap updates.
"""

import logging
from typing import List, Optional

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import JobStore
from ..errors import JobConflictError
from ..models import LocalizationJob, utc_now
from ..logging_setup import log_exception

logger = logging.getLogger("video_localizer")


class PostgresJobStore(JobStore):
    """Postgres implementation of the job store"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": "video_localizer"
                }
            )
            logger.info("Postgres job store connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres job store: {e}")
            raise

    def _bootstrap_schema(self):
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS localizer_jobs (
                        id TEXT PRIMARY KEY,
                        version INTEGER NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        record JSONB NOT NULL
                    )
                """)
                conn.commit()
                logger.info("Postgres job store schema ready")

    def get(self, job_id: str) -> Optional[LocalizationJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT version, record FROM localizer_jobs WHERE id = %s", (job_id,))
                row = cur.fetchone()
        if not row:
            return None
        return self._to_job(row)

    def list_jobs(self) -> List[LocalizationJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT version, record FROM localizer_jobs ORDER BY created_at DESC")
                rows = cur.fetchall()
        return [self._to_job(row) for row in rows]

    @staticmethod
    def _to_job(row) -> LocalizationJob:
        job = LocalizationJob.from_dict(row['record'])
        job.version = row['version']
        return job

    def save(self, job: LocalizationJob) -> LocalizationJob:
        new_version = job.version + 1
        updated_at = utc_now()
        record = job.to_dict()
        record['version'] = new_version
        record['updated_at'] = updated_at

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                if job.version == 0:
                    cur.execute("""
                        INSERT INTO localizer_jobs (id, version, created_at, record)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (id) DO NOTHING
                    """, (job.id, new_version, job.created_at, Jsonb(record)))
                else:
                    cur.execute("""
                        UPDATE localizer_jobs
                        SET version = %s, record = %s
                        WHERE id = %s AND version = %s
                    """, (new_version, Jsonb(record), job.id, job.version))
                changed = cur.rowcount
                conn.commit()

        if changed != 1:
            raise JobConflictError(f"Job {job.id} was modified concurrently (version {job.version})")

        job.version = new_version
        job.updated_at = updated_at
        return job

    def delete(self, job_id: str) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM localizer_jobs WHERE id = %s", (job_id,))
                removed = cur.rowcount
                conn.commit()
        if removed:
            logger.info(f"Deleted job {job_id} from Postgres")
        return bool(removed)

    def ping(self) -> bool:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            return True
        except Exception as e:
            logger.warning(f"Postgres health check failed: {e}")
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres job store connection pool closed")
