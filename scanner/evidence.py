"""
scanner/evidence.py -- Scan run record, findings, and the three evidence sinks.

Files written to the output directory:

  raw-events.jsonl   one JSON object per probe, appended as each completes
  auth-tests.txt     human-readable narrative: the same events plus headers
  scan-summary.json  the whole ScanRun, written once by finalize()

raw-events.jsonl and auth-tests.txt are truncated at start() and then only
appended to. Every record() call also appends to ScanRun.tests, so
len(tests) always equals the number of probes issued.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from core.telemetry import utc_timestamp

logger = logging.getLogger("secureauth.scanner")

RAW_LOG_NAME = "raw-events.jsonl"
NARRATIVE_LOG_NAME = "auth-tests.txt"
SUMMARY_NAME = "scan-summary.json"


@dataclass
class Finding:
    """A conclusion about one security property. observed is a structured snapshot."""

    id: str
    title: str
    evidence: str
    observed: dict[str, Any]


@dataclass
class ScanRun:
    target: str
    user_agent: str
    started: str
    finished: str | None = None
    tests: list[dict[str, Any]] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "user_agent": self.user_agent,
            "started": self.started,
            "finished": self.finished,
            "tests": self.tests,
            "findings": [asdict(f) for f in self.findings],
        }


class EvidenceRecorder:
    def __init__(self, out_dir: str | Path, run: ScanRun) -> None:
        self.out_dir = Path(out_dir)
        self.run = run
        self.raw_path = self.out_dir / RAW_LOG_NAME
        self.narrative_path = self.out_dir / NARRATIVE_LOG_NAME
        self.summary_path = self.out_dir / SUMMARY_NAME

    def start(self) -> None:
        """Create the output directory and empty both append-only logs."""
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.raw_path.write_text("", encoding="utf-8")
        self.narrative_path.write_text("", encoding="utf-8")

    def record(self, phase: str, outcome: dict[str, Any], **extra: Any) -> dict[str, Any]:
        """Append one probe outcome to the raw log and the run record; return the event."""
        event = {"phase": phase, **extra, **outcome}
        with self.raw_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event) + "\n")
        self.run.tests.append(event)
        return event

    def note(self, line: str = "") -> None:
        with self.narrative_path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def section(self, title: str) -> None:
        self.note()
        self.note(f"=== {title} ===")

    def add_finding(self, finding: Finding) -> None:
        self.run.findings.append(finding)
        logger.info("%s: %s", finding.id, finding.title)

    def finalize(self) -> Path:
        """Stamp the end time and write the summary. Runs once; later calls are no-ops."""
        if self.run.finished is not None:
            return self.summary_path
        self.run.finished = utc_timestamp()
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.summary_path.write_text(json.dumps(self.run.to_dict(), indent=2), encoding="utf-8")
        return self.summary_path


def append_fatal(out_dir: str | Path, error: BaseException) -> None:
    """Record an error that aborted the scan at the end of the narrative log."""
    path = Path(out_dir) / NARRATIVE_LOG_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(f"\n[{utc_timestamp()}] FATAL {error}\n")
