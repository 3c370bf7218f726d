"""Command line entry point for the functions runtime."""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from core.config import RuntimeConfig
from core.discovery import FileSystemDiscovery
from core.validators import ConfigurationError, load_config
from server.app import run_server


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for key in ("host", "port", "url"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    if args.dir is not None:
        overrides["base_dir"] = args.dir
    logging_overrides: Dict[str, Any] = {}
    if getattr(args, "log_level", None):
        logging_overrides["level"] = args.log_level
    if getattr(args, "pretty_logs", False):
        logging_overrides["pretty"] = True
    if logging_overrides:
        overrides["logging"] = logging_overrides
    return overrides


def resolve_config(args: argparse.Namespace) -> RuntimeConfig:
    project_dir = Path(args.dir or ".")
    config_path = Path(args.config) if args.config else project_dir / "config.yaml"
    env_file = Path(args.env) if args.env else project_dir / ".env"
    return load_config(config_path, env_file=env_file, overrides=_overrides(args))


def cmd_start(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    run_server(config)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    discovery = FileSystemDiscovery.from_config(config)

    rows = [
        ("function", fn.route, fn.visibility.value)
        for fn in discovery.get_functions().values()
    ]
    rows += [
        ("asset", asset.route, asset.visibility.value)
        for asset in discovery.get_assets().values()
    ]
    if not rows:
        print(f"No functions or assets found in {config.base_dir}")
        return 0

    headers = ("KIND", "ROUTE", "VISIBILITY")
    widths = [max(len(headers[i]), max(len(row[i]) for row in rows)) for i in range(len(headers))]

    def fmt_row(row) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip()

    print(fmt_row(headers))
    for row in rows:
        print(fmt_row(row))
    return 0


def _add_project_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--dir", default=None, help="Project directory (default: current)")
    p.add_argument("--config", default=None, help="Path to config.yaml")
    p.add_argument("--env", default=None, help="Path to .env file")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="functions-runtime", description="Run serverless functions locally"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("start", help="Serve functions and assets over HTTP")
    _add_project_args(s)
    s.add_argument("--host", default=None)
    s.add_argument("--port", type=int, default=None)
    s.add_argument("--url", default=None, help="Public base URL seen by functions")
    s.add_argument("--log-level", default=None)
    s.add_argument("--pretty-logs", action="store_true", help="Indented JSON logs")
    s.set_defaults(func=cmd_start)

    l = sub.add_parser("list", help="List discovered functions and assets")
    _add_project_args(l)
    l.set_defaults(func=cmd_list)

    return p


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
