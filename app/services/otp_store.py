"""Pending one-time codes for email verification and password reset.

Entries are keyed by username and expire after ``ttl_seconds``. The store lives on
``app.state.otp_store`` and reaches handlers through the ``get_otp_store`` dependency.
"""
from __future__ import annotations
import hmac
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

from fastapi import Request

from app.utils.ids import generate_otp

PURPOSE_VERIFICATION = "verification"
PURPOSE_RESET = "reset"
DEFAULT_TTL_SECONDS = 10 * 60


class OtpError(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason  # "missing" | "expired" | "mismatch"


@dataclass(frozen=True)
class PendingOtp:
    code: str
    purpose: str
    expires_at: float
    payload: Dict[str, Any] = field(default_factory=dict)


class OtpStore:
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, PendingOtp] = {}
        self._lock = threading.Lock()

    def issue(self, key: str, purpose: str, payload: Optional[Dict[str, Any]] = None) -> PendingOtp:
        entry = PendingOtp(
            code=generate_otp(),
            purpose=purpose,
            expires_at=self._clock() + self.ttl_seconds,
            payload=dict(payload or {}),
        )
        with self._lock:
            self._drop_expired(self._clock())
            self._entries[key] = entry
        return entry

    def refresh(self, key: str, purpose: str) -> PendingOtp:
        """New code and expiry for a pending entry, keeping its payload."""
        with self._lock:
            current = self._entries.get(key)
            if current is None or current.purpose != purpose:
                raise OtpError("missing")
            entry = replace(current, code=generate_otp(), expires_at=self._clock() + self.ttl_seconds)
            self._entries[key] = entry
        return entry

    def peek(self, key: str) -> Optional[PendingOtp]:
        with self._lock:
            return self._entries.get(key)

    def verify(self, key: str, purpose: str, code: str) -> PendingOtp:
        """Check ``code`` without consuming it; call ``discard`` once the action succeeded."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.purpose != purpose:
                raise OtpError("missing")
            if self._clock() > entry.expires_at:
                del self._entries[key]
                raise OtpError("expired")
            if not hmac.compare_digest(entry.code, str(code or "")):
                raise OtpError("mismatch")
            return entry

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._drop_expired(self._clock())

    def _drop_expired(self, now: float) -> int:
        # caller holds self._lock
        stale = [k for k, e in self._entries.items() if now > e.expires_at]
        for k in stale:
            del self._entries[k]
        return len(stale)


def get_otp_store(request: Request) -> OtpStore:
    return request.app.state.otp_store
