"""
Stripe Payment Gateway
Creates and re-reads card payment intents over Stripe's REST API
"""
import logging
from typing import Dict, Optional

import httpx

from domain.errors import UpstreamError, PaymentVerificationError
from domain.gateways import PaymentGateway
from domain.value_objects import PaymentIntent

logger = logging.getLogger(__name__)


class StripePaymentGateway(PaymentGateway):
    """PaymentGateway backed by the Stripe PaymentIntents API"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.stripe.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def create_intent(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        description: Optional[str] = None
    ) -> PaymentIntent:
        form = {
            "amount": str(amount),
            "currency": currency,
            "metadata[booking_id]": booking_id,
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = value
        if description:
            form["description"] = description

        # Retried creates for the same booking and amount return the same intent
        headers = {"Idempotency-Key": f"booking-{booking_id}-{amount}"}
        data = await self._request("POST", "/payment_intents", data=form, headers=headers)
        return self._to_intent(data)

    async def retrieve_intent(self, intent_id: str) -> Optional[PaymentIntent]:
        try:
            data = await self._request("GET", f"/payment_intents/{intent_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return self._to_intent(data)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                if response.status_code == 404:
                    response.raise_for_status()
                if 400 <= response.status_code < 500:
                    message = self._error_message(response)
                    logger.warning(f"Payment gateway rejected {method} {path}: {message}")
                    raise PaymentVerificationError(f"Payment processing error: {message}")
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            logger.error(f"Payment gateway timeout on {method} {path}")
            raise UpstreamError("Payment gateway timed out, please retry")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise
            logger.error(f"Payment gateway error {e.response.status_code} on {method} {path}")
            raise UpstreamError("Payment gateway unavailable, please retry")
        except httpx.RequestError as e:
            logger.error(f"Payment gateway unreachable on {method} {path}: {e}")
            raise UpstreamError("Payment gateway unavailable, please retry")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", response.text)
        except ValueError:
            return response.text

    @staticmethod
    def _to_intent(data: dict) -> PaymentIntent:
        metadata = data.get("metadata") or {}
        return PaymentIntent(
            intent_id=data["id"],
            client_secret=data.get("client_secret"),
            amount=int(data.get("amount", 0)),
            currency=data.get("currency", "usd"),
            status=data.get("status", "unknown"),
            booking_id=metadata.get("booking_id"),
        )
