"""
Main entry point for Lyra.

Initializes all components and starts the server.
"""

import argparse
import logging
from typing import Optional

import uvicorn

from .clipboard import ClipboardManager
from .config_manager import ConfigManager
from .database import Database
from .fixtures import PreviewContainer
from .library import LibraryManager
from .network import NetworkMonitor
from .sync import CloudSyncManager
from .web.server import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


class LyraServer:
    """Main server class that orchestrates all components."""

    def __init__(self, db_path: Optional[str] = None, preview: bool = False):
        """
        Initialize all components.

        Args:
            db_path: SQLite database path (None for the default location)
            preview: Serve the in-memory sample library instead of db_path
        """
        logger.info("Initializing Lyra server...")

        if preview:
            self.database = PreviewContainer.shared().database
            logger.info("Serving preview library")
        else:
            self.database = Database(db_path)

        self.config_manager = ConfigManager(self.database)
        self.network_monitor = NetworkMonitor(self.config_manager)
        self.library = LibraryManager(self.database)
        self.clipboard_manager = ClipboardManager(self.database)
        self.sync_manager = CloudSyncManager(self.config_manager, self.network_monitor)

        self.web_app = create_app(
            self.library,
            self.clipboard_manager,
            self.sync_manager,
            self.config_manager,
        )

        self.uvicorn_server = None

        logger.info("Lyra server initialized")

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the server."""
        host = host or self.config_manager.get("web_host")
        port = port or self.config_manager.get_int("web_port", default=8000)

        logger.info("=" * 60)
        logger.info("Lyra is running!")
        logger.info("API: http://%s:%s/api", host, port)
        logger.info("=" * 60)

        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping Lyra server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.sync_manager:
            self.sync_manager.shutdown()

        if self.database:
            self.database.close()

        logger.info("Lyra server stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Lyra - chord chart library server")
    parser.add_argument("--db", dest="db_path", help="SQLite database path (default ~/.lyra/lyra.db)")
    parser.add_argument("--host", help="Interface to bind (default from config)")
    parser.add_argument("--port", type=int, help="Port to listen on (default from config)")
    parser.add_argument(
        "--preview", action="store_true", help="Serve an in-memory library with sample data"
    )
    args = parser.parse_args()

    server = LyraServer(db_path=args.db_path, preview=args.preview)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
