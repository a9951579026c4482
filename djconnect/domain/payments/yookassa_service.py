"""
YooKassa payment gateway adapter
Creates payment links and payouts and looks payments up for callback handling.
Every failure surfaces as GatewayError.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import httpx

from ...cache import Cache, get_cache, remember_payment_id
from ...config import (
    API_BASE_URL,
    HTTP_TIMEOUT_SECONDS,
    PAYMENT_CURRENCY,
    YOOKASSA_API_URL,
    YOOKASSA_SECRET_KEY,
    YOOKASSA_SHOP_ID,
)
from ...errors import GatewayError

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "succeeded"
PAYOUT_SUCCEEDED = "succeeded"
PAYOUT_CANCELED = "canceled"


@dataclass
class PaymentLink:
    url: str
    payment_id: str


def payment_return_url(order_id: int) -> str:
    return f"{API_BASE_URL}/payment/return?orderId={order_id}"


def format_amount(amount) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01")))


class YooKassaGateway:
    """Async client for the three gateway operations the order flow depends on"""

    def __init__(
        self,
        shop_id: Optional[str] = YOOKASSA_SHOP_ID,
        secret_key: Optional[str] = YOOKASSA_SECRET_KEY,
        store: Optional[Cache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.shop_id = shop_id
        self.secret_key = secret_key
        self.store = store
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.shop_id and self.secret_key)

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        idempotent: bool = False,
    ) -> dict[str, Any]:
        if not self.configured:
            raise GatewayError("Payment gateway is not configured")

        headers = {"Content-Type": "application/json"}
        if idempotent:
            headers["Idempotence-Key"] = str(uuid.uuid4())
        auth = (self.shop_id, self.secret_key)
        url = f"{YOOKASSA_API_URL}{path}"

        try:
            if self.client is not None:
                response = await self.client.request(
                    method, url, json=payload, headers=headers, auth=auth
                )
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as http_client:
                    response = await http_client.request(
                        method, url, json=payload, headers=headers, auth=auth
                    )
        except httpx.HTTPError as e:
            logger.error(f"❌ YooKassa {method} {path} transport error: {e}")
            raise GatewayError("Payment gateway is unavailable") from e

        if response.status_code >= 400:
            logger.error(
                f"❌ YooKassa {method} {path} failed ({response.status_code}): {response.text}"
            )
            raise GatewayError(f"Payment gateway error ({response.status_code})")

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"❌ YooKassa {method} {path} returned invalid JSON: {response.text}")
            raise GatewayError("Payment gateway returned an invalid response") from e

    async def create_payment_link(self, amount, order_id: int, description: str) -> PaymentLink:
        """Create a redirect payment and return its confirmation URL and gateway id"""
        payload = {
            "amount": {"value": format_amount(amount), "currency": PAYMENT_CURRENCY},
            "confirmation": {"type": "redirect", "return_url": payment_return_url(order_id)},
            "capture": True,
            "description": description,
            "metadata": {"order_id": order_id},
        }
        data = await self._request("POST", "/payments", payload, idempotent=True)

        payment_id = data.get("id")
        url = (data.get("confirmation") or {}).get("confirmation_url")
        if not payment_id or not url:
            logger.error(f"❌ Payment for order {order_id} has no confirmation url: {data}")
            raise GatewayError("Payment gateway did not return a payment link")

        remember_payment_id(self.store or get_cache(), order_id, payment_id)
        logger.info(f"✅ Payment link created for order {order_id} ({format_amount(amount)})")
        return PaymentLink(url=url, payment_id=payment_id)

    async def retrieve_payment(self, payment_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/payments/{payment_id}")
        return {
            "id": data.get("id"),
            "status": data.get("status"),
            "amount": (data.get("amount") or {}).get("value"),
            "metadata": data.get("metadata") or {},
        }

    async def create_payout(self, amount, destination: dict[str, Any], description: str) -> dict[str, Any]:
        payload = {
            "amount": {"value": format_amount(amount), "currency": PAYMENT_CURRENCY},
            "payout_destination_data": destination,
            "description": description,
            "metadata": {"description": description},
        }
        data = await self._request("POST", "/payouts", payload, idempotent=True)
        logger.info(f"✅ Payout {data.get('id')} created ({format_amount(amount)}): {data.get('status')}")
        return {"id": data.get("id"), "status": data.get("status")}


gateway = YooKassaGateway()


def get_gateway() -> YooKassaGateway:
    return gateway
