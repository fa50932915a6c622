import hashlib
import hmac
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from fastapi import Request

from errors import BadRequest, UpstreamError

logger = logging.getLogger(__name__)


def generate_reference() -> str:
    return f"zlma_{uuid.uuid4().hex[:16]}"


class PaystackClient:
    """Paystack transaction initialize/verify endpoints."""

    def __init__(
        self,
        secret_key: str,
        public_key: str = "",
        base_url: str = "https://api.paystack.co",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key
        self.public_key = public_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {secret_key}"})

    def close(self) -> None:
        self.session.close()

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            r = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Paystack %s %s failed: %s", method, path, e)
            raise UpstreamError("Payment gateway unavailable")
        try:
            body = r.json()
        except ValueError:
            logger.error("Paystack %s %s returned non-JSON (%s)", method, path, r.status_code)
            raise UpstreamError("Payment gateway error")
        if not body.get("status"):
            # gateway rejections come back as status=false with a message
            raise BadRequest(body.get("message") or "Payment gateway rejected the request")
        return body.get("data") or {}

    def initialize(
        self,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Returns ``authorization_url``, ``access_code`` and ``reference``."""
        payload = {
            "email": email,
            "amount": str(amount),
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url
        return self._call("POST", "/transaction/initialize", json=payload)

    def verify(self, reference: str) -> Dict[str, Any]:
        """Returns the transaction data; ``data["status"] == "success"`` when paid."""
        return self._call("GET", f"/transaction/verify/{requests.utils.quote(reference, safe='')}")

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature or not self.secret_key:
            return False
        expected = hmac.new(self.secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(signature.strip(), expected)


def get_payments(request: Request) -> PaystackClient:
    return request.app.state.payments
