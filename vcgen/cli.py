"""vcgen CLI — Command-line interface for the VC generator.

Commands:
  vcgen gen <goal.py>       — Generate (and optionally discharge) obligations
  vcgen sites <goal.py>     — List loop sites with their live bindings

A goal module is an ordinary Python file defining ``GOAL`` (a Goal) and,
when the goal has loops, ``INVARIANTS`` (a mapping from site id to
invariant).

Exit status: 0 on success, 1 on generation errors or a counterexample,
2 on usage errors.
"""

from __future__ import annotations

import argparse
import importlib.util
import json
import logging
import os
import sys
from types import ModuleType
from typing import List, Optional

from vcgen import __version__
from vcgen.config import VCGenConfig, load_config
from vcgen.dispatch import Z3Discharger, dispatch
from vcgen.engine import generate
from vcgen.errors import GenerationError
from vcgen.scope import analyze
from vcgen.specs import Goal

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


class UsageError(Exception):
    pass


def load_goal_module(path: str) -> ModuleType:
    """Import a goal module from a file path."""
    if not os.path.exists(path):
        raise UsageError(f"File not found: {path}")
    name = os.path.splitext(os.path.basename(path))[0]
    spec = importlib.util.spec_from_file_location(f"vcgen_goal_{name}", path)
    if spec is None or spec.loader is None:
        raise UsageError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    goal = getattr(module, "GOAL", None)
    if not isinstance(goal, Goal):
        raise UsageError(f"{path} does not define GOAL as a vcgen Goal")
    return module


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_config(args: argparse.Namespace) -> VCGenConfig:
    config = load_config(args.config) if args.config else load_config(start_dir=os.path.dirname(os.path.abspath(args.file)))
    if getattr(args, "format", None):
        config.format = args.format
    if getattr(args, "no_simplify", False):
        config.simplify = False
    if getattr(args, "fail_fast", False):
        config.collect_all_errors = False
    if getattr(args, "timeout", None) is not None:
        config.solver_timeout_ms = args.timeout
    return config


def cmd_gen(args: argparse.Namespace) -> int:
    """Generate obligations for the module's GOAL."""
    config = _load_config(args)
    _setup_logging(config.log_level, args.verbose)
    module = load_goal_module(args.file)
    goal = module.GOAL
    invariants = getattr(module, "INVARIANTS", {})

    try:
        obligations = generate(goal, invariants, config)
    except GenerationError as e:
        if config.format == "json":
            payload = {"errors": [err.to_dict() for err in e.errors]}
            if e.partial is not None:
                payload["partial"] = e.partial.to_dict()
            print(json.dumps(payload, indent=2))
        else:
            print(f"Generation failed for goal '{goal.name}':")
            for err in e.errors:
                print(f"  {err}")
            if e.partial is not None and len(e.partial):
                print("\nObligations from unaffected sites:")
                print(e.partial.to_ascii_table(), end="")
        return EXIT_FAILED

    report = None
    if args.discharge:
        report = dispatch(obligations, Z3Discharger(config.solver_timeout_ms), targets=args.only)

    if config.format == "json":
        payload = obligations.to_dict()
        if report is not None:
            payload["dispatch"] = report.to_dict()
        print(json.dumps(payload, indent=2))
    else:
        print(f"Goal '{goal.name}':")
        print(obligations.to_ascii_table(), end="")
        if report is not None:
            for outcome in report:
                line = f"  {'/'.join(outcome.stable_id)}: {outcome.result.value}"
                if outcome.counterexample:
                    model = ", ".join(f"{k}={v}" for k, v in outcome.counterexample.items())
                    line += f" [{model}]"
                elif outcome.detail:
                    line += f" ({outcome.detail})"
                print(line)

    if report is not None and report.failed():
        return EXIT_FAILED
    return EXIT_OK


def cmd_sites(args: argparse.Namespace) -> int:
    """List the loop sites of the module's GOAL."""
    config = _load_config(args)
    _setup_logging(config.log_level, args.verbose)
    module = load_goal_module(args.file)
    table = analyze(module.GOAL)
    invariants = getattr(module, "INVARIANTS", {})

    rows = []
    for info in table.sites.values():
        rows.append({
            "site": info.site_id,
            "position": info.position,
            "binder": info.binder,
            "element_sort": str(info.elem_sort) if info.elem_sort else None,
            "live": info.live_summary(),
            "modified": sorted(info.modified),
            "has_invariant": info.site_id in invariants,
        })

    if config.format == "json":
        print(json.dumps({"sites": rows, "errors": [e.to_dict() for e in table.errors]}, indent=2))
    else:
        if not rows:
            print("  (no loop sites)")
        for row in rows:
            live = ", ".join(f"{k}: {v}" for k, v in row["live"].items())
            mark = "" if row["has_invariant"] else "  [no invariant]"
            print(f"  {row['site']} @ {row['position']}  for {row['binder']}: {row['element_sort']}{mark}")
            print(f"      live: {live or '-'}")
            print(f"      modifies: {', '.join(row['modified']) or '-'}")
        for e in table.errors:
            print(f"  {e}")
    return EXIT_FAILED if table.errors else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vcgen",
        description="vcgen — verification-condition generator for effectful loop programs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    # gen
    p_gen = subparsers.add_parser("gen", help="Generate proof obligations for a goal module")
    p_gen.add_argument("file", help="Python module defining GOAL and INVARIANTS")
    p_gen.add_argument("--format", choices=["table", "json"], help="Output format")
    p_gen.add_argument("--no-simplify", action="store_true", dest="no_simplify", help="Skip the leave step")
    p_gen.add_argument("--fail-fast", action="store_true", dest="fail_fast", help="Stop at the first error")
    p_gen.add_argument("--discharge", action="store_true", help="Send open obligations to Z3")
    p_gen.add_argument("--only", nargs="+", help="Stable-id prefixes to discharge (default: all open)")
    p_gen.add_argument("--timeout", type=int, help="Z3 timeout per obligation in ms")
    p_gen.add_argument("--config", help="Config file (default: nearest .vcgenrc.yml)")
    p_gen.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p_gen.set_defaults(func=cmd_gen)

    # sites
    p_sites = subparsers.add_parser("sites", help="List loop sites and their live bindings")
    p_sites.add_argument("file", help="Python module defining GOAL")
    p_sites.add_argument("--format", choices=["table", "json"], help="Output format")
    p_sites.add_argument("--config", help="Config file (default: nearest .vcgenrc.yml)")
    p_sites.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p_sites.set_defaults(func=cmd_sites)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_USAGE)

    try:
        status = args.func(args)
    except UsageError as e:
        print(json.dumps({"error": str(e)}))
        status = EXIT_USAGE
    sys.exit(status)


if __name__ == "__main__":
    main()
