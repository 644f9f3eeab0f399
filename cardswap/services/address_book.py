"""
Saved shipping addresses.

INVARIANTS:
- At most one address per user is the default
- The first address a user saves becomes the default
- Deleting the default promotes the next most recent address
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.operations import (
    address_to_model,
    clear_default_address,
    create_address,
    delete_address,
    get_address,
    list_addresses,
    update_address_fields,
)
from cardswap.models.failure import AddressNotFoundError, AuthorizationError
from cardswap.models.shipping import SavedAddress

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {"address_name", "full_name", "street1", "street2", "city", "state", "zip", "country", "phone"}
)


async def get_addresses(session: AsyncSession, user_id: str) -> list[SavedAddress]:
    """A user's saved addresses, default first."""
    return [address_to_model(a) for a in await list_addresses(session, user_id)]


async def get_default_address(session: AsyncSession, user_id: str) -> SavedAddress | None:
    """
    The user's default address.

    Falls back to the most recent address if none is flagged.
    """
    addresses = await get_addresses(session, user_id)
    if not addresses:
        return None
    return next((a for a in addresses if a.is_default), addresses[0])


async def get_owned_address(session: AsyncSession, user_id: str, address_id: str) -> SavedAddress:
    """
    Fetch one of `user_id`'s addresses.

    Raises:
        AddressNotFoundError: If no such address exists
        AuthorizationError: If it belongs to someone else
    """
    db_address = await get_address(session, address_id)
    if db_address is None:
        raise AddressNotFoundError(address_id)
    if db_address.user_id != user_id:
        raise AuthorizationError(f"address {address_id} belongs to another user")
    return address_to_model(db_address)


async def add_address(
    session: AsyncSession,
    user_id: str,
    fields: dict[str, Any],
    is_default: bool = False,
) -> SavedAddress:
    """Save a new address. The first one is always the default."""
    existing = await list_addresses(session, user_id)
    make_default = is_default or not existing

    if make_default:
        await clear_default_address(session, user_id)

    values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
    db_address = await create_address(session, user_id, is_default=make_default, **values)
    logger.info("User %s saved address %s (default=%s)", user_id, db_address.id, make_default)
    return address_to_model(db_address)


async def update_address(
    session: AsyncSession,
    user_id: str,
    address_id: str,
    fields: dict[str, Any],
    is_default: bool | None = None,
) -> SavedAddress:
    """Edit a saved address, optionally making it the default."""
    await get_owned_address(session, user_id, address_id)

    values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
    if is_default:
        await clear_default_address(session, user_id)
        values["is_default"] = True
    if values:
        await update_address_fields(session, address_id, values)

    return await get_owned_address(session, user_id, address_id)


async def remove_address(session: AsyncSession, user_id: str, address_id: str) -> None:
    """Delete a saved address, promoting another one if it was the default."""
    address = await get_owned_address(session, user_id, address_id)
    await delete_address(session, address_id)

    if address.is_default:
        remaining = await list_addresses(session, user_id)
        if remaining:
            await update_address_fields(session, remaining[0].id, {"is_default": True})
            logger.info("Promoted address %s to default for user %s", remaining[0].id, user_id)
