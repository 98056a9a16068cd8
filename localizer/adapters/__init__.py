"""
Job store implementations.

This module provides the abstract job store interface and its concrete
backends (a JSON file for single-host use, Postgres for shared storage).
"""

from .base import JobStore
from .json_store import JsonFileJobStore
from .postgres_store import PostgresJobStore

__all__ = [
    'JobStore',
    'JsonFileJobStore',
    'PostgresJobStore'
]
