"""
Shipping value types.

Postal addresses, the standard parcel, and the transient quote / label /
tracking records exchanged with the shipping gateway.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any


class ServiceTier(str, Enum):
    """Generic service level, independent of any carrier's product names."""

    ECONOMY = "economy"
    PRIORITY = "priority"
    EXPRESS = "express"


@dataclass(frozen=True)
class PostalAddress:
    """A structured postal address as sent to the shipping gateway."""

    name: str
    street1: str
    city: str
    state: str
    zip: str
    country: str = "US"
    street2: str = ""
    phone: str = ""
    email: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "street1": self.street1,
            "street2": self.street2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
        }


@dataclass(frozen=True)
class ParcelSpec:
    """Parcel dimensions and weight."""

    length: str
    width: str
    height: str
    distance_unit: str
    weight: str
    mass_unit: str

    def to_dict(self) -> dict[str, str]:
        return {
            "length": self.length,
            "width": self.width,
            "height": self.height,
            "distance_unit": self.distance_unit,
            "weight": self.weight,
            "mass_unit": self.mass_unit,
        }


# Rigid top-loader mailer holding a small stack of cards
STANDARD_CARD_MAILER = ParcelSpec(
    length="6",
    width="4",
    height="0.5",
    distance_unit="in",
    weight="0.1",
    mass_unit="lb",
)


@dataclass(frozen=True)
class RateQuote:
    """
    A priced shipping option. Transient: never persisted.

    Attributes:
        id: Gateway-assigned id used to purchase a label
        amount: Price in `currency`
        currency: ISO currency code
        provider: Carrier name
        service_token: Carrier service-level token
        service_name: Human readable service name
        tier: Generic tier, None if the token is not on the allow-list
        estimated_days: Carrier estimate, if any
    """

    id: str
    amount: Decimal
    currency: str
    provider: str
    service_token: str
    service_name: str
    tier: ServiceTier | None = None
    estimated_days: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": str(self.amount),
            "currency": self.currency,
            "provider": self.provider,
            "service_token": self.service_token,
            "service_name": self.service_name,
            "tier": self.tier.value if self.tier else None,
            "estimated_days": self.estimated_days,
        }


@dataclass(frozen=True)
class PurchasedLabel:
    """Result of a successful label purchase."""

    tracking_number: str
    carrier: str
    label_url: str


@dataclass(frozen=True)
class TrackingStatus:
    """Latest carrier tracking information for a parcel."""

    status: str
    details: str
    last_update: str | None = None
    eta: str | None = None


@dataclass(frozen=True)
class SavedAddress:
    """A user's saved address book entry."""

    id: str
    user_id: str
    address_name: str
    street1: str
    city: str
    state: str
    zip: str
    country: str = "US"
    street2: str = ""
    phone: str = ""
    full_name: str = ""
    is_default: bool = False

    def to_postal(self, fallback_name: str, email: str = "") -> PostalAddress:
        """Render as a gateway address, named `fallback_name` if no name was saved."""
        return PostalAddress(
            name=self.full_name or fallback_name,
            street1=self.street1,
            street2=self.street2,
            city=self.city,
            state=self.state,
            zip=self.zip,
            country=self.country or "US",
            phone=self.phone,
            email=email,
        )
