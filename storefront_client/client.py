"""
HTTP transport to the storefront API.

Every call maps HTTP failures onto the ``storefront_client.errors``
hierarchy. A client built without an API URL stays usable as an object,
but each call fails with ``TransportError``.
"""

import logging
import os
from decimal import Decimal
from typing import Any, Optional

import httpx

from .errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    RemoteRejection,
    StorefrontError,
    TransportError,
    ValidationFailed,
)
from .session import IdentityProvider

logger = logging.getLogger("storefront-client")

API_PREFIX = "/api/v1"


def _field_errors(detail: Any) -> dict[str, str]:
    errors: dict[str, str] = {}
    if isinstance(detail, list):
        for entry in detail:
            loc = [str(part) for part in entry.get("loc", []) if part != "body"]
            errors[".".join(loc) or "body"] = entry.get("msg", "Invalid value")
    return errors


class StorefrontClient:
    """Async client for the /api/v1 storefront endpoints."""

    def __init__(
        self,
        base_url: Optional[str],
        identity: Optional[IdentityProvider] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.identity = identity
        self.api_key = api_key
        self._transport = transport
        self._timeout = timeout

    @classmethod
    def from_env(
        cls,
        identity: Optional[IdentityProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "StorefrontClient":
        """Build a client from STOREFRONT_API_URL and STOREFRONT_API_KEY."""
        base_url = os.environ.get("STOREFRONT_API_URL")
        if not base_url:
            logger.warning("STOREFRONT_API_URL is not set; storefront calls will fail")
        return cls(
            base_url,
            identity=identity,
            api_key=os.environ.get("STOREFRONT_API_KEY"),
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if self.identity is not None:
            token = await self.identity.get_access_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        if self.base_url is None:
            raise TransportError("Storefront API URL is not configured")
        url = f"{API_PREFIX}{path}"
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, transport=self._transport, timeout=self._timeout,
            ) as http:
                resp = await http.request(
                    method, url, json=json, params=params, headers=await self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise TransportError(f"Could not reach the storefront: {e}") from e
        return self._handle(resp)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code == 204:
            return None
        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        if resp.is_success:
            return body

        detail = body.get("detail") if isinstance(body, dict) else body
        message = detail if isinstance(detail, str) else f"Request failed ({resp.status_code})"
        status = resp.status_code
        if status == 401:
            raise AuthenticationError(message, status, body)
        if status == 403:
            raise ForbiddenError(message, status, body)
        if status == 404:
            raise NotFoundError(message, status, body)
        if status == 422:
            raise ValidationFailed(_field_errors(detail))
        if status in (400, 409):
            raise RemoteRejection(message, status, body)
        if status >= 500:
            raise TransportError(message, status, body)
        raise StorefrontError(message, status, body)

    # -- discounts and checkout ------------------------------------------

    async def validate_discount_code(
        self, code: str, order_total: Decimal, user_id: str,
    ) -> dict[str, Any]:
        return await self._request("POST", "/rpc/validate-discount-code", json={
            "code": code,
            "order_total": str(order_total),
            "user_id": user_id,
        })

    async def create_checkout_session(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/checkout/sessions", json=payload)

    async def save_abandoned_cart(self, items: list[dict[str, Any]], cart_total: Decimal) -> Any:
        return await self._request("PUT", "/abandoned-cart", json={
            "items": items, "cart_total": str(cart_total),
        })

    # -- orders ------------------------------------------------------------

    async def list_orders(self, status: Optional[str] = None) -> list[dict[str, Any]]:
        params = {"status": status} if status else None
        return await self._request("GET", "/orders", params=params)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    async def get_order_tracking(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}/tracking")

    # -- catalogue and account -----------------------------------------------

    async def list_products(
        self, category: Optional[str] = None, search: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params = {k: v for k, v in (("category", category), ("q", search)) if v}
        return await self._request("GET", "/products", params=params or None)

    async def list_addresses(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/addresses")
