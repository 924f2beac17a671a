"""
Saved addresses per customer. Each customer has at most one default
shipping address; the checkout form is prefilled from it.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Address


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------

class AddressCreate(BaseModel):
    """Schema for creating an address."""
    label: Optional[str] = Field(None, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    address_line1: str = Field(..., min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field("US", min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    is_default_shipping: bool = False

    model_config = {"str_strip_whitespace": True}


class AddressUpdate(BaseModel):
    """Schema for updating an address. Only given fields change."""
    label: Optional[str] = Field(None, max_length=50)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    address_line1: Optional[str] = Field(None, min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)
    postal_code: Optional[str] = Field(None, min_length=3, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    is_default_shipping: Optional[bool] = None

    model_config = {"str_strip_whitespace": True}


class AddressResponse(BaseModel):
    id: str
    user_id: str
    label: Optional[str] = None
    first_name: str
    last_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None
    is_default_shipping: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# CRUD Functions
# ---------------------------------------------------------------------------

async def _clear_default(db: AsyncSession, user_id: str, keep_id: Optional[str] = None) -> None:
    stmt = update(Address).where(
        Address.user_id == user_id, Address.is_default_shipping.is_(True),
    )
    if keep_id is not None:
        stmt = stmt.where(Address.id != keep_id)
    await db.execute(stmt.values(is_default_shipping=False))


async def _get_owned(db: AsyncSession, user_id: str, address_id: str) -> Optional[Address]:
    address = await db.get(Address, address_id)
    if address is None or address.user_id != user_id:
        return None
    return address


async def list_addresses(db: AsyncSession, user_id: str) -> list[AddressResponse]:
    """List a user's addresses, default first."""
    stmt = (
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default_shipping.desc(), Address.created_at.desc())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return [AddressResponse.model_validate(a) for a in result.scalars().all()]


async def create_address(db: AsyncSession, user_id: str, body: AddressCreate) -> AddressResponse:
    """Create an address. A user's first address becomes the default."""
    existing = await db.execute(select(Address.id).where(Address.user_id == user_id))
    make_default = body.is_default_shipping or existing.first() is None
    if make_default:
        await _clear_default(db, user_id)

    address = Address(user_id=user_id, **body.model_dump(exclude={"is_default_shipping"}))
    address.is_default_shipping = make_default
    db.add(address)
    await db.flush()
    await db.refresh(address)
    return AddressResponse.model_validate(address)


async def update_address(
    db: AsyncSession, user_id: str, address_id: str, body: AddressUpdate,
) -> Optional[AddressResponse]:
    """Update an address owned by ``user_id``. Returns None if not found."""
    address = await _get_owned(db, user_id, address_id)
    if address is None:
        return None

    changes = body.model_dump(exclude_unset=True)
    if changes.pop("is_default_shipping", None):
        await _clear_default(db, user_id, keep_id=address_id)
        address.is_default_shipping = True
    for field, value in changes.items():
        setattr(address, field, value)

    await db.flush()
    await db.refresh(address)
    return AddressResponse.model_validate(address)


async def delete_address(db: AsyncSession, user_id: str, address_id: str) -> bool:
    """Delete an address. Returns False if not found."""
    address = await _get_owned(db, user_id, address_id)
    if address is None:
        return False
    await db.delete(address)
    await db.flush()
    return True


async def get_default_address(db: AsyncSession, user_id: str) -> Optional[AddressResponse]:
    stmt = select(Address).where(
        Address.user_id == user_id, Address.is_default_shipping.is_(True),
    )
    result = await db.execute(stmt)
    address = result.scalars().first()
    return AddressResponse.model_validate(address) if address else None
