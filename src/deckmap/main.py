#!/usr/bin/env python3
"""
deckmap - daemon entry point
"""

import argparse
import logging
import signal
import sys
from typing import Any, Dict, Optional

from .config.loader import SettingsLoader
from .controller import DeckmapController
from .utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def load_settings(settings_path: Optional[str], config_dir: Optional[str] = None) -> Dict[str, Any]:
    """
    Load service settings, letting ``config_dir`` override the storage path.

    Raises:
        FileNotFoundError: If an explicit settings file doesn't exist
        ConfigurationError: If the settings file is invalid
    """
    settings = SettingsLoader().load(settings_path)
    if config_dir:
        settings["storage"]["config_dir"] = config_dir
    return settings


def run_daemon(settings: Dict[str, Any]) -> int:
    """
    Run the controller until a shutdown signal arrives.

    Returns:
        Process exit code
    """
    controller = DeckmapController(settings)

    # Set up signal handlers for graceful shutdown
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        controller.running = False
        # Raise KeyboardInterrupt to trigger the normal shutdown flow
        raise KeyboardInterrupt()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        controller.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1
    return 0


def main() -> None:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="deckmap - control deck shortcut service")
    parser.add_argument("settings", nargs="?", help="Path to YAML settings file")
    parser.add_argument("--config-dir", help="Directory holding shortcuts.json and icons/")
    parser.add_argument("--log-level", default="INFO", choices=LOG_LEVELS, help="Logging level")

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        settings = load_settings(args.settings, args.config_dir)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error(str(e))
        sys.exit(1)

    sys.exit(run_daemon(settings))


if __name__ == "__main__":
    main()
