"""
Main localizer service.

Wires configuration, logging, the job store, the coordinator and the HTTP
server together and runs them until the process is told to stop.
"""

import os
import sys
import signal
import logging
from typing import Optional

from .config import LocalizerConfig
from .adapters.base import JobStore
from .adapters.json_store import JsonFileJobStore
from .adapters.postgres_store import PostgresJobStore
from .orchestrator import JobCoordinator
from .logging_setup import setup_logging, log_exception
from .http_server import LocalizerHttpServer

logger = logging.getLogger("video_localizer")


class LocalizerService:
    """Localization service with a pluggable job store"""

    def __init__(self, config: Optional[LocalizerConfig] = None):
        self.config = config or LocalizerConfig.from_env()
        self.store: Optional[JobStore] = None
        self.coordinator: Optional[JobCoordinator] = None
        self.http_server: Optional[LocalizerHttpServer] = None

    def initialize(self):
        """Initialize store, coordinator and HTTP server based on configuration"""
        try:
            # Setup logging
            setup_logging(self.config.LOG_LEVEL, os.path.join(self.config.DATA_DIR, "logs"))

            # Validate configuration
            self.config.validate()

            self.store = self._create_store()
            self.store.connect()

            self.coordinator = JobCoordinator(self.config, self.store)
            self.coordinator.recover()

            self.http_server = LocalizerHttpServer(
                self.coordinator, host=self.config.HTTP_HOST, port=self.config.HTTP_PORT
            )

            logger.info(f"Localizer service initialized with {self.config.STORE_TYPE} job store")

        except Exception as e:
            log_exception(logger, f"Failed to initialize localizer service: {e}")
            raise

    def _create_store(self) -> JobStore:
        """Create job store based on configuration"""
        config = self.config.STORE_CONFIG or {}

        if self.config.STORE_TYPE == "postgres":
            return PostgresJobStore(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )

        elif self.config.STORE_TYPE == "json":
            return JsonFileJobStore(config["path"])

        else:
            raise ValueError(f"Unsupported store type: {self.config.STORE_TYPE}")

    def start(self):
        """Serve HTTP requests until interrupted"""
        logger.info(f"Serving on {self.config.HTTP_HOST}:{self.config.HTTP_PORT}")
        self.http_server.serve()

    def stop(self):
        """Stop the service and release the store"""
        if self.http_server:
            self.http_server.stop()
        if self.store:
            self.store.close()
        logger.info("Localizer service stopped")


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    """Main entry point"""
    signal.signal(signal.SIGTERM, signal_handler)

    service = LocalizerService()

    try:
        service.initialize()
        service.start()
    except Exception as e:
        log_exception(logger, f"Localizer failed to start: {str(e)}")
        sys.exit(1)
    finally:
        service.stop()


if __name__ == "__main__":
    main()
