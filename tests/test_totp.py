"""Tests for the TOTP engine."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from otp_authenticator import totp
from otp_authenticator.exceptions import InsufficientEntropyError

#: RFC 6238 Appendix B secret, ASCII "1234567890" twice
RFC_SECRET = b"12345678901234567890"


class TestReferenceVectors:
    """RFC 4226 / RFC 6238 vectors, HMAC-SHA1."""

    @pytest.mark.parametrize(
        ("unix_time", "expected"),
        [
            (59, "94287082"),
            (1111111109, "07081804"),
            (1111111111, "14050471"),
            (1234567890, "89005924"),
            (2000000000, "69279037"),
            (20000000000, "65353130"),
        ],
    )
    def test_rfc6238_eight_digits(self, unix_time: int, expected: str) -> None:
        assert totp.compute_code(RFC_SECRET, unix_time, digits=8) == expected

    def test_rfc6238_six_digits_at_59(self) -> None:
        assert totp.compute_code(RFC_SECRET, 59) == "287082"

    def test_rfc4226_hotp_counters(self) -> None:
        expected = [
            "755224",
            "287082",
            "359152",
            "969429",
            "338314",
            "254676",
            "287922",
            "162583",
            "399871",
            "520489",
        ]
        assert [totp.code_at_counter(RFC_SECRET, c) for c in range(10)] == expected

    def test_datetime_and_unix_seconds_agree(self) -> None:
        at = datetime(2005, 3, 18, 1, 58, 29, tzinfo=timezone.utc)  # 1111111109
        assert totp.compute_code(RFC_SECRET, at, digits=8) == "07081804"

    def test_naive_datetime_is_utc(self) -> None:
        at = datetime(2005, 3, 18, 1, 58, 29)
        assert totp.compute_code(RFC_SECRET, at, digits=8) == "07081804"


class TestComputeCode:
    def test_deterministic(self) -> None:
        secret = totp.generate_secret()
        assert totp.compute_code(secret, 1_700_000_000) == totp.compute_code(
            secret, 1_700_000_000
        )

    def test_same_step_same_code(self) -> None:
        assert totp.compute_code(RFC_SECRET, 60) == totp.compute_code(RFC_SECRET, 89)

    def test_zero_padded(self) -> None:
        # RFC 6238 vector 07081804
        assert totp.compute_code(RFC_SECRET, 1111111109, digits=8).startswith("0")

    def test_custom_step(self) -> None:
        assert totp.compute_code(RFC_SECRET, 119, step=60) == totp.code_at_counter(
            RFC_SECRET, 1
        )

    def test_rejects_negative_time(self) -> None:
        with pytest.raises(ValueError, match="epoch"):
            totp.compute_code(RFC_SECRET, -1)

    def test_rejects_non_positive_step(self) -> None:
        with pytest.raises(ValueError, match="step"):
            totp.compute_code(RFC_SECRET, 59, step=0)

    def test_rejects_empty_secret(self) -> None:
        with pytest.raises(ValueError, match="secret"):
            totp.compute_code(b"", 59)


class TestVerifyCode:
    def test_round_trip(self) -> None:
        for _ in range(20):
            secret = totp.generate_secret()
            at = 1_700_000_000
            assert totp.verify_code(secret, totp.compute_code(secret, at), at)

    def test_clock_drift_within_window(self) -> None:
        assert totp.verify_code(RFC_SECRET, "287082", 89, window_steps=1)

    def test_previous_step_outside_window(self) -> None:
        assert not totp.verify_code(RFC_SECRET, "287082", 150, window_steps=1)

    def test_window_zero_is_exact(self) -> None:
        assert totp.verify_code(RFC_SECRET, "287082", 59, window_steps=0)
        assert not totp.verify_code(RFC_SECRET, "287082", 89, window_steps=0)

    def test_future_step_within_window(self) -> None:
        assert totp.verify_code(RFC_SECRET, "359152", 59, window_steps=1)

    def test_match_counter_returns_step(self) -> None:
        assert totp.match_counter(RFC_SECRET, "287082", 89) == 1
        assert totp.match_counter(RFC_SECRET, "359152", 89) == 2

    def test_match_counter_near_epoch(self) -> None:
        assert totp.match_counter(RFC_SECRET, "755224", 10) == 0

    @pytest.mark.parametrize("candidate", ["", "28708", "2870820", "abcdef", "２８７０８２"])
    def test_malformed_candidates(self, candidate: str) -> None:
        assert not totp.verify_code(RFC_SECRET, candidate, 59)

    def test_surrounding_whitespace_ignored(self) -> None:
        assert totp.verify_code(RFC_SECRET, " 287082 ", 59)

    def test_negative_window_rejected(self) -> None:
        with pytest.raises(ValueError, match="window_steps"):
            totp.verify_code(RFC_SECRET, "287082", 59, window_steps=-1)


class TestSecrets:
    def test_length(self) -> None:
        assert len(totp.generate_secret()) == totp.SECRET_LENGTH == 20

    def test_unique(self) -> None:
        assert len({totp.generate_secret() for _ in range(50)}) == 50

    def test_seed_is_not_the_only_entropy(self) -> None:
        seed = b"same seed"
        first = totp.generate_secret(seed)
        second = totp.generate_secret(seed)
        assert len(first) == 20
        assert first != second

    def test_os_random_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(_n: int) -> bytes:
            raise OSError("no entropy")

        monkeypatch.setattr(totp.secrets, "token_bytes", broken)
        with pytest.raises(InsufficientEntropyError):
            totp.generate_secret()

    def test_encode_is_unpadded_upper_base32(self) -> None:
        encoded = totp.encode_secret(RFC_SECRET)
        assert encoded == "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
        assert "=" not in totp.encode_secret(b"\x00\x01\x02")
        assert totp.encode_secret(b"\x00\x01\x02") == base64.b32encode(
            b"\x00\x01\x02"
        ).decode().rstrip("=")

    def test_decode_inverts_encode(self) -> None:
        secret = totp.generate_secret()
        assert totp.decode_secret(totp.encode_secret(secret)) == secret
        assert totp.decode_secret(totp.encode_secret(b"\x00\x01\x02")) == b"\x00\x01\x02"

    def test_decode_accepts_manual_key(self) -> None:
        secret = totp.generate_secret()
        manual = totp.format_manual_key(secret).lower()
        assert totp.decode_secret(manual) == secret

    def test_manual_key_groups_of_four(self) -> None:
        assert totp.format_manual_key(RFC_SECRET) == (
            "GEZD GNBV GY3T QOJQ GEZD GNBV GY3T QOJQ"
        )


class TestEnrollment:
    def test_provisioning_uri(self) -> None:
        uri = totp.provisioning_uri(RFC_SECRET, "alice@example.com", "Acme")
        parsed = urlparse(uri)
        params = parse_qs(parsed.query)

        assert parsed.scheme == "otpauth"
        assert parsed.netloc == "totp"
        assert params["secret"] == ["GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"]
        assert params["issuer"] == ["Acme"]

    def test_build_enrollment(self) -> None:
        setup = totp.build_enrollment(RFC_SECRET, "alice@example.com", "Acme")
        assert setup.secret == "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
        assert setup.manual_key.startswith("GEZD GNBV")
        assert setup.qr_uri.startswith("otpauth://totp/")
