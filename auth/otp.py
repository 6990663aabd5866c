"""
auth/otp.py -- Time-based one-time codes for account activation.

Derivation (RFC 6238 / RFC 4226):
    counter = floor(unix_time / step)
    digest  = HMAC-SHA1(key_for(email), counter as 8-byte big-endian)
    code    = dynamic_truncate(digest) mod 10**digits, zero-padded

Nothing is stored. Verification recomputes the code for the current step and
for `window` adjacent steps on either side, and compares in constant time.
With the default 1800 s step and window=1 a code stays valid for between 30
and 60 minutes after it was issued.

Keying goes through the OtpKeyring protocol. SharedSecretKeyring derives the
key from the process-wide OTP secret concatenated with the email, so anyone
holding that secret can compute any user's code offline. The secret must
therefore never leave the server. A per-user stored secret can be introduced
by writing another OtpKeyring; TotpCodeService callers do not change.
"""

from __future__ import annotations

import hashlib
import hmac
import struct
import time
from typing import Callable, Optional, Protocol

from core.config import Settings


class OtpKeyring(Protocol):
    """Keyed-PRF key source: maps a subject (email) to HMAC key bytes."""

    def key_for(self, subject: str) -> bytes: ...


class SharedSecretKeyring:
    """Key = shared secret || subject, UTF-8 encoded."""

    def __init__(self, shared_secret: str) -> None:
        if not shared_secret:
            raise ValueError("shared_secret must not be empty")
        self._secret = shared_secret

    def key_for(self, subject: str) -> bytes:
        return f"{self._secret}{subject}".encode("utf-8")


class TotpCodeService:
    """Generate and verify numeric codes bound to (keyring, subject, time step)."""

    def __init__(
        self,
        keyring: OtpKeyring,
        *,
        step: int = 1800,
        digits: int = 6,
        window: int = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if step <= 0:
            raise ValueError("step must be positive")
        if not 1 <= digits <= 10:
            raise ValueError("digits must be between 1 and 10")
        if window < 0:
            raise ValueError("window must not be negative")
        self.keyring = keyring
        self.step = step
        self.digits = digits
        self.window = window
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TotpCodeService":
        return cls(
            SharedSecretKeyring(settings.otp_secret),
            step=settings.otp_step_seconds,
            digits=settings.otp_digits,
            window=settings.otp_window,
        )

    def _counter(self, timestamp: Optional[float]) -> int:
        if timestamp is None:
            timestamp = self._clock()
        return int(timestamp // self.step)

    def _hotp(self, key: bytes, counter: int) -> str:
        digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
        offset = digest[-1] & 0x0F
        code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
        return str(code % (10**self.digits)).zfill(self.digits)

    def generate(self, subject: str, timestamp: Optional[float] = None) -> str:
        """Return the code for `subject` in the time step containing `timestamp`."""
        return self._hotp(self.keyring.key_for(subject), self._counter(timestamp))

    def verify(self, subject: str, code: str, timestamp: Optional[float] = None) -> bool:
        """Return True if `code` matches the current step or one inside the window."""
        code = (code or "").strip()
        if len(code) != self.digits or not (code.isascii() and code.isdigit()):
            return False
        key = self.keyring.key_for(subject)
        counter = self._counter(timestamp)
        matched = False
        for offset in range(-self.window, self.window + 1):
            # No early exit: every candidate is compared.
            if hmac.compare_digest(self._hotp(key, counter + offset), code):
                matched = True
        return matched
