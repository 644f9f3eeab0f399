"""
Address book API endpoints.

Provides CRUD operations for a user's saved shipping addresses.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.database import get_session
from cardswap.models.shipping import SavedAddress
from cardswap.services.address_book import (
    add_address,
    get_addresses,
    remove_address,
    update_address,
)

router = APIRouter(prefix="/users/{user_id}/addresses", tags=["addresses"])


class AddressRequest(BaseModel):
    """Request model for saving an address."""

    address_name: str = Field(..., min_length=1, examples=["Home"])
    full_name: str = Field(default="", description="Name printed on shipping labels")
    street1: str = Field(..., min_length=1)
    street2: str = ""
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2)
    zip: str = Field(..., min_length=3)
    country: str = Field(default="US", min_length=2, max_length=2)
    phone: str = ""
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    """Request model for editing an address. Omitted fields are left alone."""

    address_name: str | None = None
    full_name: str | None = None
    street1: str | None = None
    street2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = Field(default=None, min_length=2, max_length=2)
    phone: str | None = None
    is_default: bool | None = None


class AddressResponse(BaseModel):
    """Response model for a saved address."""

    id: str
    user_id: str
    address_name: str
    full_name: str = ""
    street1: str
    street2: str = ""
    city: str
    state: str
    zip: str
    country: str = "US"
    phone: str = ""
    is_default: bool = False


class AddressListResponse(BaseModel):
    """Response model for a user's address book."""

    user_id: str
    addresses: list[AddressResponse] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    """Response model for delete operations."""

    address_id: str
    deleted: bool


def _to_response(address: SavedAddress) -> AddressResponse:
    return AddressResponse(
        id=address.id,
        user_id=address.user_id,
        address_name=address.address_name,
        full_name=address.full_name,
        street1=address.street1,
        street2=address.street2,
        city=address.city,
        state=address.state,
        zip=address.zip,
        country=address.country,
        phone=address.phone,
        is_default=address.is_default,
    )


@router.get("", response_model=AddressListResponse)
async def list_user_addresses(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AddressListResponse:
    """List saved addresses, default first."""
    addresses = await get_addresses(session, user_id)
    return AddressListResponse(user_id=user_id, addresses=[_to_response(a) for a in addresses])


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_user_address(
    user_id: str,
    request: AddressRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AddressResponse:
    """
    Save a new address.

    The first address a user saves becomes their default.
    """
    fields = request.model_dump(exclude={"is_default"})
    address = await add_address(session, user_id, fields, is_default=request.is_default)
    return _to_response(address)


@router.put("/{address_id}", response_model=AddressResponse)
async def update_user_address(
    user_id: str,
    address_id: str,
    request: AddressUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AddressResponse:
    """Edit a saved address or make it the default."""
    fields = request.model_dump(exclude={"is_default"}, exclude_none=True)
    address = await update_address(
        session, user_id, address_id, fields, is_default=request.is_default
    )
    return _to_response(address)


@router.delete("/{address_id}", response_model=DeleteResponse)
async def delete_user_address(
    user_id: str,
    address_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeleteResponse:
    """
    Delete a saved address.

    Deleting the default promotes the most recent remaining address.
    """
    await remove_address(session, user_id, address_id)
    return DeleteResponse(address_id=address_id, deleted=True)
