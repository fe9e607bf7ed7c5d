from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock

from fastapi import Request


@dataclass
class Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._lock = Lock()
        self._windows: dict[str, Window] = {}

    def allow(self, key: str) -> bool:
        now = time.time()
        k = key or "unknown"
        with self._lock:
            expired = [name for name, window in self._windows.items() if now > window.reset_at]
            for name in expired:
                del self._windows[name]

            w = self._windows.get(k)
            if not w or now > w.reset_at:
                self._windows[k] = Window(count=1, reset_at=now + self.window_seconds)
                return True

            if w.count >= self.max_requests:
                return False

            w.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def client_ip(request: Request) -> str:
    forwarded = str(request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = str(request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
