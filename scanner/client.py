"""
scanner/client.py -- HTTP probe transport for the verification harness.

Every probe returns a plain dict, never raises:

    {"ok": True,  "ts", "path", "method", "status", "content_type",
     "set_cookie", "body_snippet", "ms"}
    {"ok": False, "ts", "path", "method", "error", "ms"}

Two independent timeouts bound each probe:
  1. requests' own timeout (request_timeout) on connect and read.
  2. A hard-timeout race: the call runs on a daemon thread while the caller
     waits on a queue with its own timer. Whichever settles first wins; if
     the timer wins the probe becomes {"ok": False, "error": "hard-timeout"}
     and the stuck thread is abandoned together with its session; later
     probes get a fresh one. The harness can never hang on one probe even
     if the transport timeout fails to fire.

Cookies: the session's cookie jar blocks every cookie, so nothing set by the
target leaks into later probes. Callers pass the session cookie explicitly,
which is what lets the harness probe a protected route with and without it.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from collections.abc import Callable
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Optional
from urllib.parse import urljoin

import requests

from core.telemetry import utc_timestamp

logger = logging.getLogger("secureauth.scanner")

HARD_TIMEOUT = "hard-timeout"
SNIPPET_LIMIT = 500

ProbeResult = dict[str, Any]


def clip(value: object, limit: int = SNIPPET_LIMIT) -> str:
    """Truncate to limit characters, marking the cut with '...'. Non-strings become ""."""
    if not isinstance(value, str):
        return ""
    return value[:limit] + "..." if len(value) > limit else value


def extract_cookie(set_cookie: Optional[str]) -> str:
    """Return the bare name=value pair of the first cookie in a Set-Cookie header.

    Multiple Set-Cookie headers arrive comma-joined; take the first
    comma-separated element, then everything before its first ';'.
    """
    if not set_cookie:
        return ""
    first = set_cookie.split(",")[0]
    return first.split(";")[0].strip()


def race(call: Callable[[], ProbeResult], timeout: float) -> ProbeResult:
    """Run call on a daemon thread; return its value or a hard-timeout value.

    Both sides resolve to values: an exception inside call is converted to
    {"ok": False, "error": ...} on the worker thread.
    """
    box: queue.Queue[ProbeResult] = queue.Queue(maxsize=1)

    def worker() -> None:
        try:
            box.put(call())
        except Exception as exc:
            box.put({"ok": False, "error": f"{type(exc).__name__}: {exc}"})

    threading.Thread(target=worker, name="probe", daemon=True).start()
    try:
        return box.get(timeout=timeout)
    except queue.Empty:
        return {"ok": False, "error": HARD_TIMEOUT}


def make_session() -> requests.Session:
    """A requests.Session that never stores cookies and follows at most 3 redirects."""
    session = requests.Session()
    session.max_redirects = 3
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


class ProbeClient:
    """Issues probes against one target base URL.

    Usage:
        client = ProbeClient("http://localhost:3000", "SecureAuthScanner/1.0")
        evt = client.request("/health")
        evt = client.request("/login", "POST", json_body={"username": "u", "password": "p"})
    """

    def __init__(
        self,
        target: str,
        user_agent: str,
        request_timeout: float = 8.0,
        hard_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.target = target.rstrip("/") + "/"
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.hard_timeout = hard_timeout
        # A caller-supplied session is used as is; one built here is replaced
        # after a hard timeout, since the abandoned worker may still be using it.
        self._owns_session = session is None
        self._session = session or make_session()

    def request(
        self,
        path: str,
        method: str = "GET",
        json_body: Optional[dict[str, Any]] = None,
        cookie: str = "",
    ) -> ProbeResult:
        """Issue one probe under the hard-timeout race."""
        started = time.perf_counter()
        result = race(lambda: self._send(path, method, json_body, cookie), self.hard_timeout)
        # A hard-timeout or worker failure carries only ok/error; fill in the context.
        result.setdefault("ts", utc_timestamp())
        result.setdefault("path", path)
        result.setdefault("method", method)
        result.setdefault("ms", int((time.perf_counter() - started) * 1000))
        if result.get("error") == HARD_TIMEOUT:
            logger.warning("Probe %s %s exceeded hard timeout (%.1fs)", method, path, self.hard_timeout)
            if self._owns_session:
                self._session = make_session()
        return result

    def _send(
        self,
        path: str,
        method: str,
        json_body: Optional[dict[str, Any]],
        cookie: str,
    ) -> ProbeResult:
        headers = {"User-Agent": self.user_agent}
        data = None
        if json_body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(json_body)
        if cookie:
            headers["Cookie"] = cookie

        started = time.perf_counter()
        try:
            resp = self._session.request(
                method,
                urljoin(self.target, path.lstrip("/")),
                headers=headers,
                data=data,
                timeout=self.request_timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            logger.warning("Probe %s %s failed: %s", method, path, e)
            return {
                "ok": False,
                "ts": utc_timestamp(),
                "path": path,
                "method": method,
                "error": str(e),
                "ms": int((time.perf_counter() - started) * 1000),
            }

        return {
            "ok": True,
            "ts": utc_timestamp(),
            "path": path,
            "method": method,
            "status": resp.status_code,
            "content_type": resp.headers.get("Content-Type", ""),
            "set_cookie": clip(resp.headers.get("Set-Cookie", "")),
            "body_snippet": clip(resp.text),
            "ms": int((time.perf_counter() - started) * 1000),
        }
