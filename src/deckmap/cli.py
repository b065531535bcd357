#!/usr/bin/env python3
"""
deckmap CLI - command-line interface for the deckmap service.

This module provides the daemon entry point and one-shot commands that work
on the keymap without a device attached.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .config.schema import validate_config_strict
from .controller import DeckmapController
from .main import LOG_LEVELS, load_settings, run_daemon, setup_logging
from .utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class DeckmapCLI:
    """Main CLI handler for deckmap commands."""

    def __init__(self, settings: Dict[str, Any]) -> None:
        self.settings = settings
        self._controller = None

    @property
    def controller(self) -> DeckmapController:
        # Built on first use; `validate` never needs one
        if self._controller is None:
            self._controller = DeckmapController(self.settings)
            self._controller.ensure_config()
        return self._controller

    def run(self) -> int:
        """Run the service in the foreground."""
        return run_daemon(self.settings)

    def validate(self, path: str) -> int:
        """
        Strictly validate a keymap JSON file.

        Args:
            path: File to check
        """
        file_path = Path(path).expanduser()
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            print(f"File not found: {file_path}")
            return 1
        except ValueError as e:
            print(f"Invalid JSON in {file_path}: {e}")
            return 1

        result = validate_config_strict(payload)
        if not result.ok:
            print(f"Validation FAILED for {file_path}:")
            for error in result.errors:
                print(f"  ERROR: {error}")
            return 1

        print(f"{file_path} is a valid keymap")
        return 0

    def show(self) -> int:
        """Print the repaired keymap and any repairs that were made."""
        config, issues = self.controller.read_config()
        print(json.dumps(config, indent=2))
        for issue in issues:
            print(f"WARNING: {issue}", file=sys.stderr)
        return 0

    def trigger(self, key: int) -> int:
        """Run the shortcut on a key of the active profile."""
        result = self.controller.execute_shortcut(key)
        print(result.text)
        return 0 if result.ok else 1

    def action(self, action_type: str, value: str) -> int:
        """Run a single action directly."""
        result = self.controller.execute_action(action_type, value)
        print(result.text)
        return 0 if result.ok else 1

    def profile(self, profile_id: str) -> int:
        """Make a profile active."""
        result = self.controller.switch_profile(profile_id)
        if not result["ok"]:
            print(result["reason"])
            return 1

        if result["changed"]:
            print(f"Active profile: {result['profile']}")
        else:
            print(f"Profile {result['profile']} is already active")
        return 0

    def apps(self) -> int:
        """List installed applications."""
        apps = self.controller.list_installed_apps()
        if not apps:
            print("No applications found.")
            return 0

        for app in apps:
            print(f"{app['name']}\t{app['command']}")
        return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="deckmap",
        description="deckmap - control deck shortcut service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  deckmap run                                 # Run the service
  deckmap --settings ~/.deckmap/settings.yaml run
  deckmap validate shortcuts.json             # Check a keymap file
  deckmap show                                # Print the current keymap
  deckmap trigger 3                           # Run key 3 of the active profile
  deckmap action url https://example.com      # Run one action
  deckmap profile 2                           # Switch to profile 2
  deckmap apps                                # List installed applications
""",
    )
    parser.add_argument("--settings", help="Path to YAML settings file")
    parser.add_argument("--config-dir", help="Directory holding shortcuts.json and icons/")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="WARNING", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the service in the foreground")

    validate_parser = subparsers.add_parser("validate", help="Validate a keymap JSON file")
    validate_parser.add_argument("file", help="Keymap file to check")

    subparsers.add_parser("show", help="Print the current keymap")

    trigger_parser = subparsers.add_parser("trigger", help="Run a key of the active profile")
    trigger_parser.add_argument("key", type=int, help="Key index")

    action_parser = subparsers.add_parser("action", help="Run a single action")
    action_parser.add_argument("type", help="Action type (command, url, key_press, ...)")
    action_parser.add_argument("value", help="Action value")

    profile_parser = subparsers.add_parser("profile", help="Switch the active profile")
    profile_parser.add_argument("id", help="Profile id (home, 1-7)")

    subparsers.add_parser("apps", help="List installed applications")

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # The service logs at INFO unless told otherwise
    level = "INFO" if args.command == "run" and args.log_level == "WARNING" else args.log_level
    setup_logging(level)

    try:
        settings = load_settings(args.settings, args.config_dir)
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Error: {e}")
        return 1

    cli = DeckmapCLI(settings)

    if args.command == "run":
        return cli.run()
    elif args.command == "validate":
        return cli.validate(args.file)
    elif args.command == "show":
        return cli.show()
    elif args.command == "trigger":
        return cli.trigger(args.key)
    elif args.command == "action":
        return cli.action(args.type, args.value)
    elif args.command == "profile":
        return cli.profile(args.id)
    elif args.command == "apps":
        return cli.apps()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
