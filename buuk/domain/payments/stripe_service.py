"""Stripe service - Checkout Sessions and Connect accounts over the Stripe REST API"""

import logging
from typing import Any, Optional

import httpx

from ...config import PAYMENT_PROVIDER_TIMEOUT_SECONDS, STRIPE_API_BASE
from .errors import ProviderAPIError

logger = logging.getLogger(__name__)


def encode_form(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """
    Flatten nested params into Stripe's bracket form encoding.

    {"metadata": {"type": "booking"}, "line_items": [{"quantity": 1}]} becomes
    [("metadata[type]", "booking"), ("line_items[0][quantity]", "1")].
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_name))
                else:
                    pairs.append((item_name, _form_value(item)))
        else:
            pairs.append((name, _form_value(value)))
    return pairs


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeClient:
    """Minimal async Stripe REST client (per-call secret key, tenant or platform)"""

    def __init__(self, api_base: str = STRIPE_API_BASE, timeout: float = PAYMENT_PROVIDER_TIMEOUT_SECONDS):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    async def _request(self, method: str, path: str, secret_key: str, params: Optional[dict] = None) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as http_client:
                response = await http_client.request(
                    method,
                    f"{self.api_base}{path}",
                    headers={"Authorization": f"Bearer {secret_key}"},
                    data=encode_form(params) if params is not None else None,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Stripe request failed: {e}")
            raise ProviderAPIError("stripe", f"request failed: {e}") from e

        if response.status_code != 200:
            message = _stripe_error_message(response)
            logger.error(f"❌ Stripe API error {response.status_code}: {message}")
            raise ProviderAPIError("stripe", message, response.status_code)

        return response.json()

    async def create_checkout_session(self, secret_key: str, params: dict) -> dict:
        """Create a Checkout Session; returns the session object (id, url, ...)"""
        session = await self._request("POST", "/v1/checkout/sessions", secret_key, params)
        logger.info(f"✅ Stripe checkout session created: {session.get('id')}")
        return session

    async def retrieve_checkout_session(self, secret_key: str, session_id: str) -> dict:
        """Fetch a Checkout Session (payment_status, metadata, ...)"""
        return await self._request("GET", f"/v1/checkout/sessions/{session_id}", secret_key)

    async def create_account(self, secret_key: str, params: dict) -> dict:
        """Create a Connect account"""
        account = await self._request("POST", "/v1/accounts", secret_key, params)
        logger.info(f"✅ Stripe Connect account created: {account.get('id')}")
        return account

    async def retrieve_account(self, secret_key: str, account_id: str) -> dict:
        """Fetch a Connect account with its capability flags"""
        return await self._request("GET", f"/v1/accounts/{account_id}", secret_key)

    async def create_account_link(self, secret_key: str, params: dict) -> dict:
        """Create a hosted onboarding link for a Connect account"""
        return await self._request("POST", "/v1/account_links", secret_key, params)


def _stripe_error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.text
    except ValueError:
        return response.text


# Singleton instance
stripe_client = StripeClient()
