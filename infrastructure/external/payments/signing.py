"""
Request signing for the Payments API (signature scheme v2).

A signature is a JWS with a detached payload, sent in the `Tl-Signature`
header:

    base64url(header) + ".." + base64url(ES512 signature)

The signed payload is built from the HTTP request itself:

    "{METHOD} {path}\\n" + "{Header-Name}: {value}\\n" per signed header + body

and the JWS header lists the signed header names in `tl_headers`. Webhooks
sent by the provider carry a `jku` header pointing at the JWKS to verify
against.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from jwt.algorithms import ECAlgorithm
from jwt.api_jwk import PyJWKSet
from jwt.exceptions import PyJWTError
from jwt.utils import base64url_decode, base64url_encode


ALGORITHM = "ES512"
TL_VERSION = "2"

_ES512 = ECAlgorithm(ECAlgorithm.SHA512)


class SignatureVerificationError(Exception):
    pass


@dataclass(frozen=True)
class JwsHeader:
    alg: str
    kid: str
    tl_version: str = ""
    tl_headers: list[str] = field(default_factory=list)
    jku: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JwsHeader":
        names = [h.strip() for h in str(data.get("tl_headers") or "").split(",") if h.strip()]
        return cls(
            alg=str(data.get("alg", "")),
            kid=str(data.get("kid", "")),
            tl_version=str(data.get("tl_version", "")),
            tl_headers=names,
            jku=data.get("jku"),
        )


def _as_bytes(body: bytes | str | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def build_signing_payload(
    method: str,
    path: str,
    headers: Sequence[tuple[str, str]],
    body: bytes | str | None,
) -> bytes:
    parts = [f"{method.upper()} {path}\n".encode("utf-8")]
    for name, value in headers:
        parts.append(f"{name}: {value}\n".encode("utf-8"))
    parts.append(_as_bytes(body))
    return b"".join(parts)


def sign_request(
    *,
    kid: str,
    private_key_pem: str | bytes,
    method: str,
    path: str,
    headers: Optional[Mapping[str, str]] = None,
    body: bytes | str | None = None,
    jku: Optional[str] = None,
) -> str:
    """Compute a `Tl-Signature` value. All given headers are signed."""
    signed = list((headers or {}).items())
    jws_header: dict[str, Any] = {
        "alg": ALGORITHM,
        "kid": kid,
        "tl_version": TL_VERSION,
        "tl_headers": ",".join(name for name, _ in signed),
    }
    if jku:
        jws_header["jku"] = jku
    header_b64 = base64url_encode(json.dumps(jws_header, separators=(",", ":")).encode("utf-8"))
    payload = build_signing_payload(method, path, signed, body)
    key = _ES512.prepare_key(private_key_pem)
    signature = _ES512.sign(header_b64 + b"." + base64url_encode(payload), key)
    return (header_b64 + b".." + base64url_encode(signature)).decode("ascii")


def _split(signature: str) -> tuple[bytes, bytes]:
    parts = (signature or "").strip().split(".")
    if len(parts) != 3 or not parts[0] or not parts[2]:
        raise SignatureVerificationError("Malformed signature")
    if parts[1]:
        raise SignatureVerificationError("Signature payload must be detached")
    return parts[0].encode("ascii"), parts[2].encode("ascii")


def extract_jws_header(signature: str) -> JwsHeader:
    header_b64, _ = _split(signature)
    try:
        data = json.loads(base64url_decode(header_b64))
    except ValueError as exc:
        raise SignatureVerificationError("Malformed signature header") from exc
    if not isinstance(data, dict):
        raise SignatureVerificationError("Malformed signature header")
    return JwsHeader.from_dict(data)


def _path_candidates(path: str) -> list[str]:
    # Proxies may add or strip a trailing slash
    if path.endswith("/") and len(path) > 1:
        return [path, path.rstrip("/")]
    return [path, path + "/"]


def verify_signature(
    *,
    jwks: Mapping[str, Any],
    signature: str,
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: bytes | str | None,
) -> None:
    """Verify `signature` against the request; raises SignatureVerificationError."""
    header_b64, sig_b64 = _split(signature)
    jws_header = extract_jws_header(signature)
    if jws_header.alg != ALGORITHM:
        raise SignatureVerificationError(f"Unsupported alg: {jws_header.alg}")
    if jws_header.tl_version != TL_VERSION:
        raise SignatureVerificationError(f"Unsupported tl_version: {jws_header.tl_version}")

    try:
        key_set = PyJWKSet.from_dict(dict(jwks))
    except PyJWTError as exc:
        raise SignatureVerificationError(f"Unusable JWKS: {exc}") from exc
    jwk = next((k for k in key_set.keys if k.key_id == jws_header.kid), None)
    if jwk is None:
        raise SignatureVerificationError(f"No JWK found for kid {jws_header.kid}")

    lowered = {k.lower(): v for k, v in headers.items()}
    signed: list[tuple[str, str]] = []
    for name in jws_header.tl_headers:
        value = lowered.get(name.lower())
        if value is None:
            raise SignatureVerificationError(f"Missing signed header: {name}")
        signed.append((name, value))

    try:
        raw_signature = base64url_decode(sig_b64)
    except ValueError as exc:
        raise SignatureVerificationError("Malformed signature bytes") from exc

    for candidate in _path_candidates(path):
        payload = build_signing_payload(method, candidate, signed, body)
        if _ES512.verify(header_b64 + b"." + base64url_encode(payload), jwk.key, raw_signature):
            return
    raise SignatureVerificationError("Invalid signature")
