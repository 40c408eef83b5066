import pytest

from infrastructure.external.payments.signing import (
    SignatureVerificationError,
    build_signing_payload,
    extract_jws_header,
    sign_request,
    verify_signature,
)


BODY = b'{"type":"payment_settled","payment_id":"pay_1"}'
HEADERS = {"X-Tl-Webhook-Timestamp": "2024-01-01T00:00:00Z"}


def _sign(key, **overrides):
    kwargs = dict(
        kid=key.kid,
        private_key_pem=key.pem,
        method="POST",
        path="/api/v1/payments/webhook",
        headers=HEADERS,
        body=BODY,
        jku="https://webhooks.truelayer-sandbox.com/.well-known/jwks",
    )
    kwargs.update(overrides)
    return sign_request(**kwargs)


def test_signing_payload_layout():
    payload = build_signing_payload("post", "/v3/payments", [("Idempotency-Key", "k1")], b"{}")
    assert payload == b"POST /v3/payments\nIdempotency-Key: k1\n{}"


def test_signature_is_detached_jws(signing_key):
    sig = _sign(signing_key)
    head, middle, tail = sig.split(".")
    assert head and tail and middle == ""
    header = extract_jws_header(sig)
    assert header.alg == "ES512"
    assert header.kid == signing_key.kid
    assert header.tl_version == "2"
    assert header.tl_headers == ["X-Tl-Webhook-Timestamp"]
    assert header.jku.endswith("/.well-known/jwks")


def test_round_trip_verifies(signing_key):
    sig = _sign(signing_key)
    # header names are matched case-insensitively
    verify_signature(
        jwks=signing_key.jwks,
        signature=sig,
        method="POST",
        path="/api/v1/payments/webhook",
        headers={"x-tl-webhook-timestamp": HEADERS["X-Tl-Webhook-Timestamp"]},
        body=BODY,
    )


def test_trailing_slash_variant_accepted(signing_key):
    sig = _sign(signing_key)
    verify_signature(
        jwks=signing_key.jwks,
        signature=sig,
        method="POST",
        path="/api/v1/payments/webhook/",
        headers=HEADERS,
        body=BODY,
    )


def test_tampered_body_rejected(signing_key):
    sig = _sign(signing_key)
    with pytest.raises(SignatureVerificationError):
        verify_signature(
            jwks=signing_key.jwks,
            signature=sig,
            method="POST",
            path="/api/v1/payments/webhook",
            headers=HEADERS,
            body=BODY.replace(b"settled", b"failed"),
        )


def test_missing_signed_header_rejected(signing_key):
    sig = _sign(signing_key)
    with pytest.raises(SignatureVerificationError, match="Missing signed header"):
        verify_signature(
            jwks=signing_key.jwks,
            signature=sig,
            method="POST",
            path="/api/v1/payments/webhook",
            headers={},
            body=BODY,
        )


def test_unknown_kid_rejected(signing_key):
    sig = _sign(signing_key, kid="other-kid")
    with pytest.raises(SignatureVerificationError, match="No JWK"):
        verify_signature(
            jwks=signing_key.jwks,
            signature=sig,
            method="POST",
            path="/api/v1/payments/webhook",
            headers=HEADERS,
            body=BODY,
        )


@pytest.mark.parametrize("bad", ["", "abc", "a.b.c", "a..", "..c"])
def test_malformed_signatures_rejected(bad):
    with pytest.raises(SignatureVerificationError):
        extract_jws_header(bad)
