"""PayPal service - Orders v2 and webhook verification over the PayPal REST API"""

import logging
from typing import Optional

import httpx

from ...config import PAYMENT_PROVIDER_TIMEOUT_SECONDS, PAYPAL_API_BASE
from .errors import ProviderAPIError

logger = logging.getLogger(__name__)

# Headers PayPal sends with every webhook delivery, in verify-webhook-signature order
PAYPAL_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalClient:
    """Minimal async PayPal REST client; credentials belong to the business"""

    def __init__(self, api_base: str = PAYPAL_API_BASE, timeout: float = PAYMENT_PROVIDER_TIMEOUT_SECONDS):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    async def _request(
        self, method: str, path: str, access_token: str, json: Optional[dict] = None, headers: Optional[dict] = None
    ) -> httpx.Response:
        request_headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http_client:
                return await http_client.request(
                    method, f"{self.api_base}{path}", headers=request_headers, json=json
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ PayPal request {method} {path} failed: {e}")
            raise ProviderAPIError("paypal", f"request failed: {e}") from e

    async def get_access_token(self, client_id: str, secret: str) -> str:
        """OAuth2 client-credentials exchange"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http_client:
                response = await http_client.post(
                    f"{self.api_base}/v1/oauth2/token",
                    auth=(client_id, secret),
                    data={"grant_type": "client_credentials"},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ PayPal auth request failed: {e}")
            raise ProviderAPIError("paypal", f"auth request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"❌ PayPal auth error {response.status_code}: {response.text}")
            raise ProviderAPIError("paypal", "authentication failed", response.status_code)
        return response.json()["access_token"]

    async def create_order(self, access_token: str, order: dict, request_id: str) -> dict:
        """Create an order; PayPal-Request-Id makes retries idempotent"""
        response = await self._request(
            "POST",
            "/v2/checkout/orders",
            access_token,
            json=order,
            headers={"PayPal-Request-Id": request_id},
        )
        if response.status_code not in (200, 201):
            logger.error(f"❌ PayPal order creation error {response.status_code}: {response.text}")
            raise ProviderAPIError("paypal", "order creation failed", response.status_code)
        return response.json()

    async def get_order(self, access_token: str, order_id: str) -> dict:
        response = await self._request("GET", f"/v2/checkout/orders/{order_id}", access_token)
        if response.status_code != 200:
            raise ProviderAPIError("paypal", f"order {order_id} lookup failed", response.status_code)
        return response.json()

    async def capture_order(self, access_token: str, order_id: str) -> dict:
        """
        Capture an approved order.

        An order that was already captured (e.g. the customer reloaded the return
        page) is fetched instead, so the caller can reconcile it again.
        """
        response = await self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            access_token,
            headers={"PayPal-Request-Id": f"capture-{order_id}"},
        )
        if response.status_code in (200, 201):
            return response.json()

        if response.status_code == 422 and "ORDER_ALREADY_CAPTURED" in response.text:
            logger.info(f"🔄 PayPal order {order_id} already captured, fetching it")
            return await self.get_order(access_token, order_id)

        logger.error(f"❌ PayPal capture error {response.status_code}: {response.text}")
        raise ProviderAPIError("paypal", f"capture of order {order_id} failed", response.status_code)

    async def verify_webhook_signature(
        self, access_token: str, headers: dict, webhook_id: str, event: dict
    ) -> bool:
        """Ask PayPal whether a webhook delivery is authentic"""
        body = {key: headers.get(header) for key, header in PAYPAL_SIGNATURE_HEADERS.items()}
        body["webhook_id"] = webhook_id
        body["webhook_event"] = event

        response = await self._request(
            "POST", "/v1/notifications/verify-webhook-signature", access_token, json=body
        )
        if response.status_code != 200:
            logger.error(f"❌ PayPal signature verification error {response.status_code}: {response.text}")
            raise ProviderAPIError("paypal", "signature verification failed", response.status_code)
        return response.json().get("verification_status") == "SUCCESS"


# Singleton instance
paypal_client = PayPalClient()
