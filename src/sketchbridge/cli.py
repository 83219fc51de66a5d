"""Command line interface for sketchbridge."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .config import load_config
from .controller import looks_like_sketch
from .linemap import ErrorLineMapper
from .scaffold import build_plain_script, build_sketch_script
from .symbols import load_symbols
from .transpiler import Transpiler
from .utils import new_sketch_id

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _write(text: str, out: str | None) -> None:
    if out:
        Path(out).parent.mkdir(parents=True, exist_ok=True)
        Path(out).write_text(text, encoding="utf-8")
        logger.info("Wrote %s", out)
    else:
        print(text)


def _transpiler(cfg: dict[str, Any]) -> Transpiler:
    transpile_cfg = cfg.get("transpile", {})
    return Transpiler(
        load_symbols(transpile_cfg.get("symbols_path")),
        namespace=transpile_cfg.get("namespace", "_p"),
        prefix=transpile_cfg.get("rename_prefix", "_"),
    )


def cmd_transpile(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    outcome = _transpiler(cfg).transpile(_read(args.source))
    if args.json:
        payload = {
            "success": outcome.success,
            "code": outcome.code,
            "error": str(outcome.error) if outcome.error else None,
            "renamed": outcome.rename_map,
        }
        _write(json.dumps(payload, indent=2), args.out)
    elif outcome.success:
        _write(outcome.code or "", args.out)
    if not outcome.success:
        raise SystemExit(f"Error: {outcome.error}")


def cmd_map_error(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    message = args.message if args.message is not None else _read(args.message_file)
    mapper = ErrorLineMapper(_read(args.source), "", args.injected)
    if args.context is not None:
        print(mapper.format_with_context(message, args.context))
    elif args.with_context:
        print(mapper.format_with_context(message, cfg["scaffold"].get("context_lines", 2)))
    else:
        print(mapper.map_error_message(message))


def cmd_scaffold(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    source = _read(args.source)
    sketch_id = args.sketch_id or new_sketch_id()
    if looks_like_sketch(source):
        transpiler = _transpiler(cfg)
        outcome = transpiler.transpile(source)
        if not outcome.success:
            raise SystemExit(f"Error: {outcome.error}")
        script = build_sketch_script(
            outcome.code or "",
            sketch_id,
            transpiler.namespace,
            cfg["scaffold"].get("container_id", "sketch-container"),
        )
    else:
        script = build_plain_script(source, sketch_id)
    logger.info("Scaffold for %s adds %d lines before user code", sketch_id, script.injected_lines)
    _write(script.text, args.out)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sketchbridge", description="Sketch execution bridge tools")
    parser.add_argument("--config", help="YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    p_transpile = sub.add_parser("transpile", help="Rewrite a global-mode sketch to instance mode")
    p_transpile.add_argument("source", help="Sketch file, or - for stdin")
    p_transpile.add_argument("--out")
    p_transpile.add_argument("--json", action="store_true", help="Emit the full outcome as JSON")
    p_transpile.set_defaults(func=cmd_transpile)

    p_map = sub.add_parser("map-error", help="Map error line numbers back to a sketch")
    p_map.add_argument("--source", required=True)
    p_map.add_argument("--injected", type=int, default=0, help="Lines injected before user code")
    group = p_map.add_mutually_exclusive_group(required=True)
    group.add_argument("--message")
    group.add_argument("--message-file")
    p_map.add_argument("--context", type=int, help="Show this many source lines around the error")
    p_map.add_argument("--with-context", action="store_true", help="Show the configured source excerpt")
    p_map.set_defaults(func=cmd_map_error)

    p_scaffold = sub.add_parser("scaffold", help="Build the injected script for a sketch")
    p_scaffold.add_argument("source")
    p_scaffold.add_argument("--sketch-id")
    p_scaffold.add_argument("--out")
    p_scaffold.set_defaults(func=cmd_scaffold)

    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
