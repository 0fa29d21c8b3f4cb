#!/usr/bin/env python3
"""
Image Server - Main Entry Point

Serves stored images at /images/{path}, resized on demand and cached on
disk, plus an admin API for cache maintenance and metrics.
"""

import sys
import logging
import signal
import threading
from pathlib import Path

import uvicorn
import setproctitle

from imgserve.config.server_config import ServerConfig
from imgserve.orchestrator.api import VERSION, create_app, create_admin_app
from imgserve.orchestrator.prometheus_metrics import metrics_collector
from imgserve.orchestrator.resize_service import ResizeService


def setup_logging(config: ServerConfig):
    """Configure logging."""
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / "imgserve.log"),
            logging.StreamHandler()
        ]
    )


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    logger = logging.getLogger(__name__)
    logger.info(f"Received signal {signum}, shutting down")
    sys.exit(0)


def run_server(app, host: str, port: int, server_name: str):
    """Run a FastAPI server."""
    logger = logging.getLogger(__name__)
    logger.info(f"Starting {server_name} on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )


def main():
    """Main entry point."""
    setproctitle.setproctitle("imgserve")

    config = ServerConfig.from_env()

    setup_logging(config)
    logger = logging.getLogger(__name__)

    logger.info("=" * 70)
    logger.info(f"Image Server {VERSION}")
    logger.info("=" * 70)
    for line in str(config).splitlines():
        logger.info(line)

    service = ResizeService.from_config(config)
    metrics_collector.set_server_info(VERSION, config.cache_dir)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    main_app = create_app(config, service)
    admin_app = create_admin_app(config, service)

    # Admin server in background thread
    admin_thread = threading.Thread(
        target=run_server,
        args=(admin_app, config.host, config.admin_port, "Admin API"),
        daemon=True
    )
    admin_thread.start()

    logger.info(f"Image API ready at http://{config.host}:{config.main_port}/images/")
    logger.info(f"Admin API ready at http://{config.host}:{config.admin_port}/admin/status")

    try:
        run_server(main_app, config.host, config.main_port, "Image API")
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        signal_handler(signal.SIGINT, None)


if __name__ == "__main__":
    main()
