"""
tests/test_scanner_run.py -- The harness battery, evidence files, and CLI.

The end-to-end tests run scanner.checks.run_scan() against a real gateway
instance through TestClientSession, so every probe goes through the same
FastAPI stack a deployed server would.

Covers:
  - Findings against a correctly gated gateway, a faulted one, a rate-limited one
  - Probe count and the three evidence files
  - throttled is true iff some rate probe saw 429
  - A failing check still leaves a finalized summary; the CLI exits 1 with FATAL
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

import main as cli
from conftest import TestClientSession, make_gateway
from core.config import ScannerSettings
from scanner.checks import ScanState, check_rate_limit, run_scan
from scanner.client import ProbeClient
from scanner.evidence import EvidenceRecorder, ScanRun

# 4 route probes + unauth + signup/login/auth + enum + 8 rate probes
EXPECTED_PROBES = 17


def _settings(tmp_path, **overrides) -> ScannerSettings:
    return ScannerSettings(**{"target": "http://testserver", "out_dir": str(tmp_path), **overrides})


def _scan(client: TestClient, tmp_path) -> ScanRun:
    settings = _settings(tmp_path)
    probe = ProbeClient(settings.target, settings.user_agent, session=TestClientSession(client))
    return run_scan(settings, client=probe)


def _findings(run: ScanRun) -> dict:
    return {f.id: f for f in run.findings}


class TestAgainstGateway:
    def test_healthy_gateway_findings(self, gateway, tmp_path) -> None:
        client, _ = gateway
        run = _scan(client, tmp_path)

        assert [f.id for f in run.findings] == ["F-UNAUTH-401", "F-AUTH-OK", "F-ENUM-SIGNAL", "F-RATE-LIMIT"]
        findings = _findings(run)
        assert findings["F-UNAUTH-401"].observed["status"] == 401
        assert findings["F-RATE-LIMIT"].observed == {"throttled": False, "attempts": 8}
        assert findings["F-ENUM-SIGNAL"].observed["status"] == 401
        assert "invalid credentials" in findings["F-ENUM-SIGNAL"].observed["snippet"]

    def test_probe_count_and_phases(self, gateway, tmp_path) -> None:
        client, _ = gateway
        run = _scan(client, tmp_path)
        assert len(run.tests) == EXPECTED_PROBES
        phases = [t["phase"] for t in run.tests]
        assert phases[:4] == ["route_probe"] * 4
        assert phases[4:8] == ["unauth_internal", "signup", "login", "auth_internal"]
        assert phases[8] == "enum_probe"
        assert phases[9:] == ["rate_probe"] * 8
        assert [t["attempt"] for t in run.tests[9:]] == list(range(1, 9))

    def test_route_probe_statuses(self, gateway, tmp_path) -> None:
        client, _ = gateway
        run = _scan(client, tmp_path)
        assert [(t["path"], t["status"]) for t in run.tests[:4]] == [
            ("/health", 200),
            ("/internal/dashboard", 401),
            ("/internal/settings", 401),
            ("/internal/reports", 401),
        ]

    def test_gateway_telemetry_sees_the_scan(self, gateway, tmp_path) -> None:
        client, events = gateway
        _scan(client, tmp_path)
        assert len(events) == EXPECTED_PROBES
        assert any(e.reason == "authorized" for e in events)

    def test_evidence_files_written(self, gateway, tmp_path) -> None:
        client, _ = gateway
        run = _scan(client, tmp_path)

        raw_lines = (tmp_path / "raw-events.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(raw_lines) == EXPECTED_PROBES
        assert json.loads(raw_lines[0])["phase"] == "route_probe"

        narrative = (tmp_path / "auth-tests.txt").read_text(encoding="utf-8")
        assert "=== UNAUTH INTERNAL ACCESS TEST ===" in narrative
        assert "PASS: authenticated internal access succeeded (200)." in narrative
        assert "session_cookie captured: sid=..." in narrative

        summary = json.loads((tmp_path / "scan-summary.json").read_text(encoding="utf-8"))
        assert summary["target"] == "http://testserver"
        assert summary["started"] == run.started
        assert summary["finished"] is not None
        assert len(summary["tests"]) == EXPECTED_PROBES
        assert len(summary["findings"]) == 4

    def test_rerun_truncates_logs(self, gateway, tmp_path) -> None:
        client, _ = gateway
        _scan(client, tmp_path)
        _scan(client, tmp_path)
        raw_lines = (tmp_path / "raw-events.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(raw_lines) == EXPECTED_PROBES

    def test_bypassed_dashboard_is_flagged(self, tmp_path) -> None:
        app, _ = make_gateway(vuln_mode=True, vuln_route="/internal/dashboard")
        with TestClient(app) as client:
            run = _scan(client, tmp_path)
        findings = _findings(run)
        assert "F-UNAUTH-WEAK" in findings
        assert findings["F-UNAUTH-WEAK"].observed["status"] == 200

    def test_rate_limited_gateway_is_throttled(self, limited_gateway, tmp_path) -> None:
        client, _ = limited_gateway
        run = _scan(client, tmp_path)
        findings = _findings(run)
        assert findings["F-AUTH-OK"]
        assert findings["F-RATE-LIMIT"].observed["throttled"] is True

    def test_unreachable_target(self, tmp_path) -> None:
        settings = _settings(tmp_path, target="http://127.0.0.1:9", request_timeout_seconds=1.0)
        run = run_scan(settings)
        findings = _findings(run)
        assert "F-UNAUTH-WEAK" in findings
        assert "F-SESSION-NOCOOKIE" in findings
        assert "F-AUTH-FAIL" in findings
        assert findings["F-RATE-LIMIT"].observed["throttled"] is False
        assert all(t["ok"] is False for t in run.tests)


class TestRateLimitSignal:
    @pytest.mark.parametrize(
        "statuses,throttled",
        [
            ([401] * 8, False),
            ([401] * 7 + [429], True),
            ([429] + [401] * 7, True),
            ([500] * 8, False),
        ],
    )
    def test_throttled_iff_any_429(self, tmp_path, statuses, throttled) -> None:
        client = MagicMock()
        client.request.side_effect = [{"ok": True, "status": s} for s in statuses]
        rec = EvidenceRecorder(tmp_path, ScanRun(target="t", user_agent="ua", started="s"))
        rec.start()

        finding = check_rate_limit(client, rec, ScanState(username="scanuser_1"), attempts=8)

        assert finding.observed == {"throttled": throttled, "attempts": 8}
        assert client.request.call_count == 8

    def test_timeouts_do_not_count_as_throttled(self, tmp_path) -> None:
        client = MagicMock()
        client.request.return_value = {"ok": False, "error": "hard-timeout"}
        rec = EvidenceRecorder(tmp_path, ScanRun(target="t", user_agent="ua", started="s"))
        rec.start()
        assert check_rate_limit(client, rec, ScanState(), attempts=3).observed["throttled"] is False


class TestFatal:
    def test_summary_written_when_check_raises(self, gateway, tmp_path) -> None:
        client, _ = gateway
        with patch("scanner.checks.check_enumeration_signal", side_effect=RuntimeError("disk gone")):
            with pytest.raises(RuntimeError, match="disk gone"):
                _scan(client, tmp_path)

        summary = json.loads((tmp_path / "scan-summary.json").read_text(encoding="utf-8"))
        assert summary["finished"] is not None
        assert [f["id"] for f in summary["findings"]] == ["F-UNAUTH-401", "F-AUTH-OK"]

    def test_cli_exits_1_and_writes_fatal_line(self, tmp_path, capsys) -> None:
        with patch("main.run_scan", side_effect=RuntimeError("boom")):
            code = cli.main([], settings=_settings(tmp_path))
        assert code == 1
        narrative = (tmp_path / "auth-tests.txt").read_text(encoding="utf-8")
        assert "FATAL boom" in narrative
        assert "Scan aborted" in capsys.readouterr().out


class TestCli:
    def test_success_exits_0(self, tmp_path) -> None:
        run = ScanRun(target="http://testserver", user_agent="ua", started="s", finished="f")
        with patch("main.run_scan", return_value=run) as mock_scan:
            code = cli.main(["--target", "http://example.test:3000"], settings=_settings(tmp_path))
        assert code == 0
        assert mock_scan.call_args.args[0].target == "http://example.test:3000"

    def test_timeout_flag_keeps_hard_timeout_above(self, tmp_path) -> None:
        args = cli._build_parser().parse_args(["--timeout", "12", "--out-dir", "elsewhere"])
        resolved = cli._resolve_settings(args, _settings(tmp_path))
        assert resolved.request_timeout_seconds == 12
        assert resolved.hard_timeout_seconds == 14
        assert resolved.out_dir == "elsewhere"

    def test_no_flags_keeps_base(self, tmp_path) -> None:
        base = _settings(tmp_path)
        resolved = cli._resolve_settings(cli._build_parser().parse_args([]), base)
        assert resolved == base
