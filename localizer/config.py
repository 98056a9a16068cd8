"""
Configuration management for the video localizer.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Dict, Any
from dataclasses import dataclass


@dataclass
class LocalizerConfig:
    """Configuration for the localization service"""

    # Data directory
    DATA_DIR: str = "/app/data"

    # Job store settings
    STORE_TYPE: str = "json"  # json, postgres
    STORE_CONFIG: Dict[str, Any] = None

    # Model settings
    OPENAI_MODEL: str = "gpt-4o"
    VISION_MAX_CONCURRENT: int = 5
    VISION_MAX_TOKENS: int = 500
    TRANSLATION_MAX_TOKENS: int = 2000
    QC_SAMPLE_SIZE: int = 3
    ENABLE_QUALITY_CHECK: bool = True

    # Analysis settings
    FRAME_RATE: float = 2.0
    MAX_ANALYSIS_SECONDS: float = 30.0
    REUSE_IDENTICAL_FRAMES: bool = True

    # Scene splitting
    SCENE_BACKEND: str = "ffmpeg"  # ffmpeg, pyscenedetect
    SCENE_THRESHOLD: float = 0.15
    SCENE_CUT_EPSILON: float = 0.3
    SCENE_MIN_DURATION: float = 1.0

    # Rendering
    CANVAS_WIDTH: int = 1080
    CANVAS_HEIGHT: int = 1920
    FONT_NAME: str = "Noto Sans"
    FONT_PATH: str = "/usr/share/fonts/google-noto-vf/NotoSans[wght].ttf"
    FONTS_DIR: str = "/usr/share/fonts"
    DEFAULT_FONT_SIZE: int = 72

    # Brand kept untranslated and filtered when detected alone
    BRAND_NAME: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP server
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8000

    @property
    def frame_interval(self) -> float:
        """Seconds between two sampled frames"""
        return 1.0 / self.FRAME_RATE

    @classmethod
    def from_env(cls) -> 'LocalizerConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")

        # Job store configuration
        config.STORE_TYPE = os.getenv("STORE_TYPE", "json")
        config.STORE_CONFIG = cls._parse_store_config(config.DATA_DIR)

        # Model settings
        config.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
        config.VISION_MAX_CONCURRENT = int(os.getenv("VISION_MAX_CONCURRENT", "5"))
        config.VISION_MAX_TOKENS = int(os.getenv("VISION_MAX_TOKENS", "500"))
        config.TRANSLATION_MAX_TOKENS = int(os.getenv("TRANSLATION_MAX_TOKENS", "2000"))
        config.QC_SAMPLE_SIZE = int(os.getenv("QC_SAMPLE_SIZE", "3"))
        config.ENABLE_QUALITY_CHECK = os.getenv("ENABLE_QUALITY_CHECK", "true").lower() == "true"

        # Analysis settings
        config.FRAME_RATE = float(os.getenv("FRAME_RATE", "2"))
        config.MAX_ANALYSIS_SECONDS = float(os.getenv("MAX_ANALYSIS_SECONDS", "30"))
        config.REUSE_IDENTICAL_FRAMES = os.getenv("REUSE_IDENTICAL_FRAMES", "true").lower() == "true"

        # Scene splitting
        config.SCENE_BACKEND = os.getenv("SCENE_BACKEND", "ffmpeg")
        config.SCENE_THRESHOLD = float(os.getenv("SCENE_THRESHOLD", "0.15"))
        config.SCENE_CUT_EPSILON = float(os.getenv("SCENE_CUT_EPSILON", "0.3"))
        config.SCENE_MIN_DURATION = float(os.getenv("SCENE_MIN_DURATION", "1.0"))

        # Rendering
        config.CANVAS_WIDTH = int(os.getenv("CANVAS_WIDTH", "1080"))
        config.CANVAS_HEIGHT = int(os.getenv("CANVAS_HEIGHT", "1920"))
        config.FONT_NAME = os.getenv("FONT_NAME", "Noto Sans")
        config.FONT_PATH = os.getenv("FONT_PATH", cls.FONT_PATH)
        config.FONTS_DIR = os.getenv("FONTS_DIR", "/usr/share/fonts")
        config.DEFAULT_FONT_SIZE = int(os.getenv("DEFAULT_FONT_SIZE", "72"))

        config.BRAND_NAME = os.getenv("BRAND_NAME", "")

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # HTTP server
        config.HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
        config.HTTP_PORT = int(os.getenv("HTTP_PORT", "8000"))

        return config

    @classmethod
    def _parse_store_config(cls, data_dir: str) -> Dict[str, Any]:
        """Parse job store specific configuration"""
        store_type = os.getenv("STORE_TYPE", "json")

        if store_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
            }
        elif store_type == "json":
            return {
                "path": os.getenv("JOBS_FILE", os.path.join(data_dir, "jobs", "localizer-jobs.json"))
            }
        else:
            return {}

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        required_vars = []

        if self.STORE_TYPE == "postgres" and not (self.STORE_CONFIG or {}).get("database_url"):
            required_vars.append("DATABASE_URL")

        # Every pipeline stage past frame extraction talks to the model API
        if not os.getenv("OPENAI_API_KEY"):
            required_vars.append("OPENAI_API_KEY")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        if self.STORE_TYPE not in ("json", "postgres"):
            raise ValueError(f"Unsupported store type: {self.STORE_TYPE}")

        if self.SCENE_BACKEND not in ("ffmpeg", "pyscenedetect"):
            raise ValueError(f"Unsupported scene backend: {self.SCENE_BACKEND}")

        if self.FRAME_RATE <= 0:
            raise ValueError("FRAME_RATE must be positive")
