from __future__ import annotations

import hashlib
import hmac
import time

import pytest

from core.gateways.signatures import (
    parse_stripe_signature_header,
    verify_flutterwave_signature,
    verify_generic_signature,
    verify_paystack_signature,
    verify_stripe_signature,
)

SECRET = "whsec_test_secret"
BODY = b'{"event":"charge.success","data":{"reference":"PAY_1"}}'


def _hex(digestmod, message: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), message, digestmod).hexdigest()


def _stripe_header(timestamp: int, body: bytes = BODY, secret: str = SECRET) -> str:
    signature = _hex(hashlib.sha256, f"{timestamp}.".encode() + body, secret)
    return f"t={timestamp},v1={signature}"


def _tamper(value: bytes) -> bytes:
    return value[:-2] + bytes([value[-2] ^ 0x01]) + value[-1:]


def test_stripe_signature_accepts_fresh_timestamp():
    now = int(time.time())
    assert verify_stripe_signature(BODY, _stripe_header(now), SECRET, now=now) is True


def test_stripe_signature_rejects_stale_timestamp_even_when_digest_matches():
    now = int(time.time())
    header = _stripe_header(now - 301)

    assert verify_stripe_signature(BODY, header, SECRET, now=now) is False
    assert verify_stripe_signature(BODY, _stripe_header(now - 300), SECRET, now=now) is True


def test_stripe_signature_rejects_future_timestamp_outside_window():
    now = int(time.time())
    assert verify_stripe_signature(BODY, _stripe_header(now + 301), SECRET, now=now) is False


def test_stripe_signature_rejects_tampered_body():
    now = int(time.time())
    assert verify_stripe_signature(_tamper(BODY), _stripe_header(now), SECRET, now=now) is False


def test_stripe_signature_accepts_any_matching_v1_entry():
    now = int(time.time())
    valid = _stripe_header(now).split("v1=")[1]
    header = f"t={now},v1={'0' * 64},v1={valid}"

    assert verify_stripe_signature(BODY, header, SECRET, now=now) is True


@pytest.mark.parametrize(
    "header",
    [None, "", "garbage", "t=abc,v1=deadbeef", "t=123", "v1=deadbeef", "t=123,v1=", "t=123,v1=zz-not-hex"],
)
def test_stripe_signature_fails_closed_on_malformed_header(header):
    assert verify_stripe_signature(BODY, header, SECRET, now=123) is False


def test_parse_stripe_signature_header_collects_all_v1_values():
    assert parse_stripe_signature_header("t=10,v1=aa,v0=bb,v1=cc") == (10, ["aa", "cc"])
    assert parse_stripe_signature_header("t=10,v1") is None


def test_paystack_signature_uses_sha512():
    signature = _hex(hashlib.sha512, BODY)

    assert verify_paystack_signature(BODY, signature, SECRET) is True
    assert verify_paystack_signature(_tamper(BODY), signature, SECRET) is False
    assert verify_paystack_signature(BODY, _hex(hashlib.sha256, BODY), SECRET) is False


def test_flutterwave_signature_uses_sha256():
    signature = _hex(hashlib.sha256, BODY)

    assert verify_flutterwave_signature(BODY, signature, SECRET) is True
    assert verify_flutterwave_signature(_tamper(BODY), signature, SECRET) is False


def test_tampered_signature_is_rejected_for_every_scheme():
    paystack = _hex(hashlib.sha512, BODY)
    flutterwave = _hex(hashlib.sha256, BODY)
    flipped = lambda value: ("1" if value[0] == "0" else "0") + value[1:]  # noqa: E731

    assert verify_paystack_signature(BODY, flipped(paystack), SECRET) is False
    assert verify_flutterwave_signature(BODY, flipped(flutterwave), SECRET) is False
    assert verify_generic_signature(BODY, flipped(flutterwave), SECRET) is False


@pytest.mark.parametrize("signature", [None, "", "not-hex-at-all", "sha256="])
def test_digest_schemes_fail_closed_on_bad_signature(signature):
    assert verify_paystack_signature(BODY, signature, SECRET) is False
    assert verify_flutterwave_signature(BODY, signature, SECRET) is False
    assert verify_generic_signature(BODY, signature, SECRET) is False


def test_missing_secret_never_verifies():
    signature = _hex(hashlib.sha256, BODY)

    assert verify_flutterwave_signature(BODY, signature, None) is False
    assert verify_generic_signature(BODY, signature, "") is False
    assert verify_stripe_signature(BODY, _stripe_header(100), None, now=100) is False


def test_generic_signature_accepts_prefix_and_bare_digest():
    digest = _hex(hashlib.sha256, BODY)

    assert verify_generic_signature(BODY, digest, SECRET) is True
    assert verify_generic_signature(BODY, f"sha256={digest}", SECRET) is True


def test_generic_signature_applies_window_only_when_timestamp_given():
    digest = _hex(hashlib.sha256, BODY)
    now = 1_700_000_000

    assert verify_generic_signature(BODY, digest, SECRET, timestamp=str(now - 10), now=now) is True
    assert verify_generic_signature(BODY, digest, SECRET, timestamp=str(now - 301), now=now) is False
    assert verify_generic_signature(BODY, digest, SECRET, timestamp="yesterday", now=now) is False
    assert verify_generic_signature(BODY, digest, SECRET, timestamp=str(now - 60), tolerance=30, now=now) is False
