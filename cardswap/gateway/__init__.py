from cardswap.gateway.client import (
    ShippingGateway,
    ShippingGatewayClient,
    get_shipping_gateway,
    reset_shipping_gateway,
)

__all__ = [
    "ShippingGateway",
    "ShippingGatewayClient",
    "get_shipping_gateway",
    "reset_shipping_gateway",
]
