#!/usr/bin/env python3
"""
cli.py — Command line for Data Reuse

Commands:
  measure   Canonicalize a JSON / NDJSON file and report how much is shared
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List

from . import __version__
from .engine import Reuser, ReuseConfig
from .errors import ReuseError
from .identity import ScalarPolicy


def _cli_error(what: str, why: str, fix: str) -> None:
    """Print a teaching-style CLI error and exit.

    Args:
        what: What failed.
        why: Why it failed.
        fix: Recommended remediation.

    Returns:
        None: This function terminates the process.
    """
    print(f"ERROR: {what}. {why}. Fix: {fix}.")
    sys.exit(1)


def _load_records(path: Path, ndjson: bool) -> List[Any]:
    text = path.read_text(encoding="utf-8")
    if not ndjson:
        return [json.loads(text)]
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _count_nodes(values: List[Any]) -> int:
    """Number of values (containers and leaves) in freshly parsed JSON."""
    total = 0
    pending = list(values)
    while pending:
        value = pending.pop()
        total += 1
        if isinstance(value, dict):
            pending.extend(value.keys())
            pending.extend(value.values())
        elif isinstance(value, list):
            pending.extend(value)
    return total


def measure(records: List[Any], policy: ScalarPolicy = ScalarPolicy.TYPED) -> Dict[str, Any]:
    """Canonicalize ``records`` with a fresh store and summarize the sharing.

    Returns:
        Dict[str, Any]: ``records``, ``input_nodes``, ``canonical_entries``
        and ``sharing_ratio`` (input nodes per canonical entry).
    """
    reuser = Reuser(config=ReuseConfig(scalar_policy=policy))
    reuser.prime(*records)
    nodes = _count_nodes(records)
    # Null sentinel is preloaded, not produced by the input.
    entries = len(reuser.store) - 1
    return {
        "records": len(records),
        "input_nodes": nodes,
        "canonical_entries": entries,
        "sharing_ratio": round(nodes / entries, 2) if entries else 0.0,
    }


def cmd_measure(args: argparse.Namespace) -> None:
    """Handle ``datareuse measure``."""
    path = Path(args.path)
    try:
        records = _load_records(path, args.ndjson)
    except OSError as exc:
        _cli_error(f"Cannot read {path}", str(exc), "check the path and file permissions")
    except UnicodeDecodeError as exc:
        _cli_error(f"Cannot decode {path}", str(exc), "save the file as UTF-8")
    except json.JSONDecodeError as exc:
        _cli_error(
            f"Invalid JSON in {path}",
            str(exc),
            "pass --ndjson for one-record-per-line files, or repair the input",
        )
    try:
        report = measure(records, ScalarPolicy(args.policy))
    except ReuseError as err:
        _cli_error("Canonicalization failed", str(err), "inspect the offending value")

    if args.json:
        print(json.dumps(report, indent=2))
        return
    print(f"Records:           {report['records']}")
    print(f"Input nodes:       {report['input_nodes']}")
    print(f"Canonical entries: {report['canonical_entries']}")
    print(f"Sharing ratio:     {report['sharing_ratio']}")


def main() -> None:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(prog="datareuse", description="Data Reuse CLI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine activity to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    # measure
    p_measure = sub.add_parser("measure", help="Report sharing achieved on a JSON file")
    p_measure.add_argument("path", help="Path to a JSON or NDJSON file")
    p_measure.add_argument("--ndjson", action="store_true", help="One JSON record per line")
    p_measure.add_argument(
        "--policy",
        choices=[p.value for p in ScalarPolicy],
        default=ScalarPolicy.TYPED.value,
        help="Scalar comparison policy",
    )
    p_measure.add_argument("--json", action="store_true", help="Print the report as JSON")

    args = parser.parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "measure": cmd_measure(args)

if __name__ == "__main__":
    main()
