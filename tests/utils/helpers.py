"""
Test helper functions for common testing operations

These helpers build Starlette requests carrying cookies and read the
cookies a store writes back onto a response.
"""

import time
from datetime import datetime, timedelta
from http.cookies import SimpleCookie
from typing import Callable, Dict, Optional

from starlette.requests import Request
from starlette.responses import Response


class FakeClock:
    """Adjustable naive-UTC clock for session record timestamps"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_request(cookies: Optional[Dict[str, str]] = None) -> Request:
    """Create a bare HTTP request carrying the given cookies"""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    })


def get_set_cookie(response: Response, name: str):
    """Return the morsel of the named cookie set on the response, or None"""
    for header in response.headers.getlist("set-cookie"):
        parsed = SimpleCookie()
        parsed.load(header)
        if name in parsed:
            return parsed[name]
    return None


def resume_request(response: Response, name: str) -> Request:
    """Build the follow-up request a browser would send after response"""
    morsel = get_set_cookie(response, name)
    assert morsel is not None, f"Cookie '{name}' was not set"
    return make_request({name: morsel.value})


def wait_for_condition(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Wait for a condition to become true with timeout"""
    start_time = time.time()
    while time.time() - start_time < timeout:
        if condition():
            return True
        time.sleep(interval)
    return False


def assert_no_sensitive_data_in_logs(caplog, sensitive_patterns: list[str]):
    """Assert that sensitive data patterns don't appear in logs"""
    all_logs = " ".join([record.getMessage() for record in caplog.records])

    for pattern in sensitive_patterns:
        assert pattern not in all_logs, f"Sensitive pattern '{pattern}' found in logs"
