"""
tests/test_otp.py -- Unit tests for auth/otp.py (time-based activation codes).

Coverage:
  - RFC 4226 HOTP and RFC 6238 TOTP (SHA-1) reference values
  - Tolerance window: adjacent steps accepted, steps beyond it rejected
  - Malformed codes rejected without raising
  - SharedSecretKeyring binds the key to the subject
  - Constructor argument validation
"""

from __future__ import annotations

import pytest

from auth.otp import SharedSecretKeyring, TotpCodeService

_RFC_SECRET = b"12345678901234567890"


class _FixedKeyring:
    """Keyring that ignores the subject, for reference-vector tests."""

    def __init__(self, key: bytes) -> None:
        self.key = key

    def key_for(self, subject: str) -> bytes:
        return self.key


class TestReferenceVectors:
    @pytest.mark.parametrize(
        "counter, expected",
        [(0, "755224"), (1, "287082"), (2, "359152"), (9, "520489")],
    )
    def test_rfc4226_hotp(self, counter: int, expected: str) -> None:
        """With step=1 the counter equals the timestamp, so generate() is plain HOTP."""
        codes = TotpCodeService(_FixedKeyring(_RFC_SECRET), step=1, digits=6, window=0)
        assert codes.generate("ignored", timestamp=counter) == expected

    @pytest.mark.parametrize(
        "timestamp, expected",
        [
            (59, "94287082"),
            (1111111109, "07081804"),
            (1111111111, "14050471"),
            (1234567890, "89005924"),
            (2000000000, "69279037"),
        ],
    )
    def test_rfc6238_totp_sha1(self, timestamp: int, expected: str) -> None:
        codes = TotpCodeService(_FixedKeyring(_RFC_SECRET), step=30, digits=8, window=0)
        assert codes.generate("ignored", timestamp=timestamp) == expected


class TestVerify:
    def _codes(self, window: int = 1) -> TotpCodeService:
        return TotpCodeService(SharedSecretKeyring("s" * 40), step=1800, digits=6, window=window)

    def test_current_step_code_verifies(self) -> None:
        codes = self._codes()
        now = 1_700_000_000
        code = codes.generate("a@x.com", timestamp=now)
        assert codes.verify("a@x.com", code, timestamp=now)

    def test_code_is_zero_padded_to_digit_count(self) -> None:
        codes = self._codes()
        for ts in range(0, 1800 * 50, 1800):
            code = codes.generate("a@x.com", timestamp=ts)
            assert len(code) == 6 and code.isdigit(), f"Bad code {code!r} at {ts}"

    def test_adjacent_step_is_tolerated(self) -> None:
        codes = self._codes(window=1)
        issued_at = 1_700_000_000
        code = codes.generate("a@x.com", timestamp=issued_at)
        assert codes.verify("a@x.com", code, timestamp=issued_at + 1800)
        assert codes.verify("a@x.com", code, timestamp=issued_at - 1800)

    def test_step_outside_window_is_rejected(self) -> None:
        codes = self._codes(window=1)
        issued_at = 1_700_000_000
        code = codes.generate("a@x.com", timestamp=issued_at)
        later = issued_at + 2 * 1800
        # Guard against the (unlikely) case where both steps share a code.
        if codes.generate("a@x.com", timestamp=later) != code:
            assert not codes.verify("a@x.com", code, timestamp=later)

    def test_window_zero_accepts_only_current_step(self) -> None:
        codes = self._codes(window=0)
        issued_at = 1_700_000_000
        code = codes.generate("a@x.com", timestamp=issued_at)
        next_step = issued_at + 1800
        if codes.generate("a@x.com", timestamp=next_step) != code:
            assert not codes.verify("a@x.com", code, timestamp=next_step)

    @pytest.mark.parametrize("bad", ["", "12345", "1234567", "abcdef", "12 456", None])
    def test_malformed_codes_are_rejected(self, bad) -> None:
        codes = self._codes()
        assert codes.verify("a@x.com", bad, timestamp=1_700_000_000) is False

    def test_code_is_bound_to_email(self) -> None:
        codes = self._codes()
        now = 1_700_000_000
        code = codes.generate("a@x.com", timestamp=now)
        if codes.generate("b@x.com", timestamp=now) != code:
            assert not codes.verify("b@x.com", code, timestamp=now)

    def test_uses_injected_clock_when_no_timestamp(self) -> None:
        codes = TotpCodeService(SharedSecretKeyring("s" * 40), step=1800, clock=lambda: 1_700_000_000.0)
        assert codes.generate("a@x.com") == codes.generate("a@x.com", timestamp=1_700_000_000)


class TestKeyring:
    def test_key_is_secret_followed_by_subject(self) -> None:
        assert SharedSecretKeyring("secret").key_for("a@x.com") == b"secreta@x.com"

    def test_empty_secret_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            SharedSecretKeyring("")


class TestConstructor:
    @pytest.mark.parametrize("kwargs", [{"step": 0}, {"digits": 0}, {"digits": 11}, {"window": -1}])
    def test_invalid_arguments_raise(self, kwargs) -> None:
        with pytest.raises(ValueError):
            TotpCodeService(SharedSecretKeyring("s"), **kwargs)
