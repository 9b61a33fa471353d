from __future__ import annotations

import argparse
import json
import logging
import sys

import uvicorn

from vsight.config import AppConfig
from vsight.errors import DashboardError
from vsight.preferences import PreferenceStore


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _parse_assignments(raw_pairs: list[str]) -> dict[str, str]:
    changes: dict[str, str] = {}
    for pair in raw_pairs:
        if "=" not in pair:
            raise ValueError(f"Expected key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        changes[key.strip()] = value.strip()
    return changes


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="VSight analytics dashboard")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on source changes.")

    prefs = commands.add_parser("prefs", help="Inspect or change the local dashboard preferences.")
    prefs.add_argument("--path", default="", help="Preferences file (default: PREFERENCES_PATH).")
    prefs_commands = prefs.add_subparsers(dest="prefs_command", required=True)
    prefs_commands.add_parser("show", help="Print the stored preferences as JSON.")
    prefs_set = prefs_commands.add_parser("set", help="Update fields, e.g. date_preset=last90d.")
    prefs_set.add_argument("assignments", nargs="+", metavar="key=value")

    return parser.parse_args(argv)


def _run_prefs(args: argparse.Namespace, config: AppConfig) -> int:
    store = PreferenceStore(args.path or config.preferences_path)
    preferences = store.load()
    if args.prefs_command == "set":
        try:
            preferences = preferences.updated(**_parse_assignments(args.assignments))
        except (ValueError, DashboardError) as exc:
            print(f"Preferences not saved: {exc}")
            return 2
        store.save(preferences)
        print(f"Preferences saved to {store.path}")
    print(json.dumps(preferences.to_dict(), indent=2, sort_keys=True))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = AppConfig.from_env()
    configure_logging(config.log_level)

    if args.command == "prefs":
        return _run_prefs(args, config)

    if not config.oauth_enabled:
        print("Google OAuth not configured: sign-in endpoints will answer 400.")
    uvicorn.run(
        "vsight.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
