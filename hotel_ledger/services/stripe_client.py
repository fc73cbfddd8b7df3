import hashlib
import hmac
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import requests

from hotel_ledger.core.config import settings
from hotel_ledger.core.errors import GatewayError, GatewayTimeoutError

@dataclass
class StripeConfig:
    secret_key: str
    api_base: str = "https://api.stripe.com"
    currency: str = "usd"
    timeout: int = 30


class PaymentGateway(Protocol):
    def create_payment_intent(self, amount: Decimal, metadata: dict) -> dict: ...
    def confirm(self, intent_id: str, payment_method_id: str) -> dict: ...
    def create_refund(self, transaction_id: str, amount: Decimal) -> dict: ...


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def _flatten(prefix: str, value, out: dict) -> None:
    # Stripe's form encoding: metadata[bookingId]=12
    if isinstance(value, dict):
        for k, v in value.items():
            _flatten(f"{prefix}[{k}]" if prefix else k, v, out)
    elif value is not None:
        out[prefix] = str(value).lower() if isinstance(value, bool) else str(value)


class StripeClient:
    def __init__(self, cfg: StripeConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None, idempotency_key: str | None = None) -> dict:
        form: dict = {}
        _flatten("", payload or {}, form)
        headers = {"Authorization": f"Bearer {self.cfg.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        url = f"{self.cfg.api_base}{path}"
        try:
            r = requests.request(method=method.upper(), url=url, data=form, headers=headers, timeout=self.cfg.timeout)
        except requests.Timeout as e:
            raise GatewayTimeoutError(f"Stripe did not answer within {self.cfg.timeout}s") from e
        except requests.RequestException as e:
            raise GatewayError(f"Stripe unreachable: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code == 402:
            # Card declined: not a gateway failure, the caller marks the payment FAILED.
            err = data.get("error") or {}
            pi = err.get("payment_intent") or {}
            return {"id": pi.get("id", ""), "status": "declined", "error": err.get("message", "Card declined")}
        if r.status_code >= 400:
            err = data.get("error") or data
            raise GatewayError(f"Stripe {r.status_code}: {err}")
        return data

    def create_payment_intent(self, amount: Decimal, metadata: dict) -> dict:
        payload = {
            "amount": to_minor_units(amount),
            "currency": self.cfg.currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        data = self.request("POST", "/v1/payment_intents", payload, idempotency_key=str(uuid.uuid4()))
        return {"id": data.get("id", ""), "client_secret": data.get("client_secret"), "status": data.get("status", "")}

    def confirm(self, intent_id: str, payment_method_id: str) -> dict:
        data = self.request("POST", f"/v1/payment_intents/{intent_id}/confirm", {"payment_method": payment_method_id})
        return {
            "id": data.get("id") or intent_id,
            "status": data.get("status", ""),
            "client_secret": data.get("client_secret"),
            "error": data.get("error"),
        }

    def create_refund(self, transaction_id: str, amount: Decimal) -> dict:
        payload = {"payment_intent": transaction_id, "amount": to_minor_units(amount)}
        data = self.request("POST", "/v1/refunds", payload, idempotency_key=str(uuid.uuid4()))
        return {"id": data.get("id", ""), "status": data.get("status", "")}


class SandboxGateway:
    """Deterministic stand-in used when STRIPE_SANDBOX is on: every charge and refund succeeds."""

    def create_payment_intent(self, amount: Decimal, metadata: dict) -> dict:
        intent_id = f"pi_sandbox_{uuid.uuid4().hex[:16]}"
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "status": "requires_payment_method"}

    def confirm(self, intent_id: str, payment_method_id: str) -> dict:
        return {"id": intent_id, "status": "succeeded", "client_secret": None, "error": None}

    def create_refund(self, transaction_id: str, amount: Decimal) -> dict:
        return {"id": f"re_sandbox_{uuid.uuid4().hex[:16]}", "status": "succeeded"}


def build_gateway() -> PaymentGateway:
    if settings.STRIPE_SANDBOX:
        return SandboxGateway()
    if not settings.STRIPE_SECRET_KEY:
        raise GatewayError("Stripe is not configured (missing STRIPE_SECRET_KEY)")
    return StripeClient(StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_base=settings.STRIPE_API_BASE,
        currency=settings.CURRENCY,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    ))


def verify_webhook_signature(payload: bytes, signature_header: str, secret: str, tolerance: int = 300, now: float | None = None) -> bool:
    """Verify a ``Stripe-Signature`` header (``t=<ts>,v1=<hex hmac>``).

    The signed string is ``"{t}.{raw body}"`` under HMAC-SHA256 with the endpoint secret.
    Returns False when the header is malformed, the timestamp is outside the tolerance,
    or no v1 signature matches.
    """
    if not signature_header or not secret:
        return False
    timestamp = None
    signatures = []
    for chunk in signature_header.split(","):
        if "=" not in chunk:
            continue
        k, v = chunk.strip().split("=", 1)
        if k == "t":
            timestamp = v
        elif k == "v1":
            signatures.append(v)
    if not timestamp or not timestamp.isdigit() or not signatures:
        return False
    current = time.time() if now is None else now
    if abs(current - int(timestamp)) > tolerance:
        return False
    signed = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, s) for s in signatures)
