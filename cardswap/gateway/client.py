"""
Shipping rate/label gateway client.

Talks to a Shippo-compatible REST API:
- POST /shipments/    -> priced rate quotes for an address pair + parcel
- POST /transactions/ -> purchase a label for a quote
- GET  /tracks/{carrier}/{tracking_number}/ -> tracking status

Every transport error, timeout, or non-2xx response surfaces as a
GatewayError. The client never retries on its own: a label purchase that
fails is reported to the caller, who decides whether to try again.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from cardswap.config import settings
from cardswap.models.failure import GatewayError
from cardswap.models.shipping import (
    ParcelSpec,
    PostalAddress,
    PurchasedLabel,
    RateQuote,
    TrackingStatus,
)

logger = logging.getLogger(__name__)


class ShippingGateway(Protocol):
    """What the shipping coordinator needs from a rate/label provider."""

    async def get_rates(
        self, from_address: PostalAddress, to_address: PostalAddress, parcel: ParcelSpec
    ) -> list[RateQuote]: ...

    async def purchase_label(self, quote_id: str, carrier: str | None = None) -> PurchasedLabel: ...

    async def track(self, carrier: str, tracking_number: str) -> TrackingStatus: ...


class ShippingGatewayClient:
    """
    HTTP client for the shipping rate/label API.

    Args:
        base_url: API base URL. Defaults to settings.shipping_api_url.
        api_key: API token. Defaults to settings.shipping_api_key.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.shipping_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.shipping_api_key
        self.timeout = timeout if timeout is not None else settings.shipping_timeout_seconds

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"ShippoToken {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, json=payload, headers=self._headers())
                response.raise_for_status()
                data: dict[str, Any] = response.json()
                return data
        except httpx.TimeoutException as e:
            logger.error("Shipping gateway %s timed out: %s", operation, e)
            raise GatewayError(operation, "request timed out") from e
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error(
                "Shipping gateway %s failed with HTTP %d: %s",
                operation,
                e.response.status_code,
                detail,
            )
            raise GatewayError(operation, f"HTTP {e.response.status_code}: {detail}") from e
        except httpx.HTTPError as e:
            logger.error("Shipping gateway %s failed: %s", operation, e)
            raise GatewayError(operation, str(e) or type(e).__name__) from e
        except ValueError as e:
            logger.error("Shipping gateway %s returned invalid JSON", operation)
            raise GatewayError(operation, "invalid response body") from e

    async def get_rates(
        self, from_address: PostalAddress, to_address: PostalAddress, parcel: ParcelSpec
    ) -> list[RateQuote]:
        """
        Get priced shipping options for one parcel between two addresses.

        Returns every quote the provider offers, unfiltered and unsorted.

        Raises:
            GatewayError: If the request fails
        """
        data = await self._request(
            "rate lookup",
            "POST",
            "/shipments/",
            {
                "address_from": from_address.to_dict(),
                "address_to": to_address.to_dict(),
                "parcels": [parcel.to_dict()],
                "async": False,
            },
        )
        quotes = []
        for raw in data.get("rates") or []:
            quote = _parse_rate(raw)
            if quote is not None:
                quotes.append(quote)
        return quotes

    async def purchase_label(self, quote_id: str, carrier: str | None = None) -> PurchasedLabel:
        """
        Purchase a label for a previously quoted rate.

        Args:
            quote_id: Gateway-assigned quote id
            carrier: Carrier of the quote, used when the response omits it

        Raises:
            GatewayError: If the request fails or the provider reports an error
        """
        data = await self._request(
            "label purchase",
            "POST",
            "/transactions/",
            {"rate": quote_id, "label_file_type": "PDF", "async": False},
        )

        status = str(data.get("status", "")).upper()
        tracking_number = data.get("tracking_number") or ""
        label_url = data.get("label_url") or ""
        if status != "SUCCESS" or not tracking_number or not label_url:
            messages = data.get("messages") or []
            texts = [str(m.get("text", m)) if isinstance(m, dict) else str(m) for m in messages]
            detail = "; ".join(t for t in texts if t) or f"status={status}"
            logger.error("Label purchase for quote %s rejected: %s", quote_id, detail)
            raise GatewayError("label purchase", detail)

        rate = data.get("rate")
        provider = rate.get("provider") if isinstance(rate, dict) else None
        return PurchasedLabel(
            tracking_number=tracking_number,
            carrier=provider or carrier or "unknown",
            label_url=label_url,
        )

    async def track(self, carrier: str, tracking_number: str) -> TrackingStatus:
        """
        Get the latest tracking status for a parcel.

        Raises:
            GatewayError: If the request fails
        """
        data = await self._request(
            "tracking lookup",
            "GET",
            f"/tracks/{carrier.lower()}/{tracking_number}/",
        )
        tracking = data.get("tracking_status") or {}
        return TrackingStatus(
            status=tracking.get("status") or "unknown",
            details=tracking.get("status_details") or "No details available",
            last_update=tracking.get("status_date"),
            eta=data.get("eta"),
        )


def _parse_rate(raw: dict[str, Any]) -> RateQuote | None:
    """Parse one provider rate; malformed entries are skipped."""
    servicelevel = raw.get("servicelevel") or {}
    try:
        amount = Decimal(str(raw["amount"]))
        quote_id = str(raw["object_id"])
    except (KeyError, InvalidOperation):
        logger.warning("Skipping malformed rate: %s", raw.get("object_id"))
        return None

    days = raw.get("estimated_days")
    return RateQuote(
        id=quote_id,
        amount=amount,
        currency=raw.get("currency") or "USD",
        provider=raw.get("provider") or "",
        service_token=servicelevel.get("token") or "",
        service_name=servicelevel.get("name") or "",
        estimated_days=int(days) if isinstance(days, int | float) else None,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


# Default client instance
_client: ShippingGatewayClient | None = None


def get_shipping_gateway() -> ShippingGatewayClient:
    """
    Get the default shipping gateway client.

    Returns:
        Singleton ShippingGatewayClient instance
    """
    global _client
    if _client is None:
        _client = ShippingGatewayClient()
    return _client


def reset_shipping_gateway() -> None:
    """Drop the singleton so the next call re-reads settings."""
    global _client
    _client = None
