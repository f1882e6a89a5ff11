"""Validação de assinatura HMAC SHA-256 dos eventos inbound."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass

SIGNATURE_HEADER = "x-hub-signature-256"


@dataclass(slots=True)
class SignatureResult:
    """Resultado da validação de assinatura."""

    valid: bool
    skipped: bool = False
    error: str | None = None


def sign_body(raw_body: bytes, secret: str) -> str:
    """Valor do header no formato "sha256=<hexdigest>"."""

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(
    raw_body: bytes,
    headers: Mapping[str, str],
    secret: str | None,
) -> SignatureResult:
    """Valida a assinatura do corpo recebido.

    Se o secret estiver ausente, a validação é ignorada (skipped).
    """

    if not secret:
        return SignatureResult(valid=True, skipped=True)

    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        return SignatureResult(valid=False, error="missing_signature")

    if not signature.startswith("sha256="):
        return SignatureResult(valid=False, error="invalid_signature_format")

    if not hmac.compare_digest(sign_body(raw_body, secret), signature):
        return SignatureResult(valid=False, error="signature_mismatch")

    return SignatureResult(valid=True)
