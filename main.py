#!/usr/bin/env python3
"""
SecureAuth Scanner -- black-box verification of the SecureAuth gateway.

Probes a running gateway for authentication and authorization defects and
writes evidence to an output directory:
  raw-events.jsonl   one JSON line per probe
  auth-tests.txt     narrative log
  scan-summary.json  full run record with findings

Usage:
  python main.py
  python main.py --target http://localhost:3000
  python main.py --target http://localhost:3000 --out-dir evidence/run-01
  python main.py --timeout 5

Environment variables:
  TARGET    Base URL of the gateway (default http://localhost:3000)
  OUT_DIR   Evidence directory (default evidence/scanner-results)

Exit status is 0 when the scan ran to completion (findings do not affect it)
and 1 when a fatal error aborted it.
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from core.config import ScannerSettings, get_scanner_settings
from scanner.checks import run_scan
from scanner.evidence import append_fatal

logger = logging.getLogger("secureauth.scanner")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secureauth-scan",
        description="Probe a SecureAuth gateway for auth/session defects and record evidence.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --target http://localhost:3000
  TARGET=http://127.0.0.1:3000 OUT_DIR=evidence/lab python main.py
        """,
    )
    parser.add_argument("--target", metavar="URL", help="Gateway base URL (overrides TARGET)")
    parser.add_argument("--out-dir", metavar="PATH", help="Evidence directory (overrides OUT_DIR)")
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Per-probe transport timeout; the hard timeout is kept at least 2s above it",
    )
    return parser


def _resolve_settings(args: argparse.Namespace, base: ScannerSettings) -> ScannerSettings:
    updates: dict = {}
    if args.target:
        updates["target"] = args.target
    if args.out_dir:
        updates["out_dir"] = args.out_dir
    if args.timeout:
        updates["request_timeout_seconds"] = args.timeout
        updates["hard_timeout_seconds"] = max(base.hard_timeout_seconds, args.timeout + 2)
    return base.model_copy(update=updates)


def main(argv: Optional[list[str]] = None, settings: Optional[ScannerSettings] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = _build_parser().parse_args(argv)
    settings = _resolve_settings(args, settings or get_scanner_settings())

    print("\nSecureAuth Scanner")
    print("─" * 40)
    print(f"Target:   {settings.target}")
    print(f"Evidence: {settings.out_dir}\n")

    try:
        run = run_scan(settings)
    except Exception as e:
        logger.exception("Scan aborted")
        append_fatal(settings.out_dir, e)
        print(f"  [!] Scan aborted: {e}")
        return 1

    for finding in run.findings:
        print(f"  {finding.id:<20} {finding.title}")
    print(f"\n  {len(run.tests)} probe(s) recorded. Summary: {settings.out_dir}/scan-summary.json\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
