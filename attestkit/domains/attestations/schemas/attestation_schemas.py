"""Attestation request schemas."""

from __future__ import annotations

from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt

# Bool first so JSON true/false is not read as an int.
AttributeValue = Union[StrictBool, StrictInt, StrictFloat, str]


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=50, ge=1, le=200)


class OrderCreate(BaseModel):
    provider: Optional[str] = Field(default=None, max_length=64)
    data: Dict[str, AttributeValue] = Field(min_length=1)
    address: Optional[str] = Field(default=None, max_length=64)
    device_address: Optional[str] = Field(default=None, max_length=128)
    allow_duplicates: Optional[bool] = None


class OrderSelector(BaseModel):
    """Identifies an order by id or by (provider, data)."""

    order_id: Optional[int] = Field(default=None, ge=1)
    provider: Optional[str] = Field(default=None, max_length=64)
    data: Optional[Dict[str, AttributeValue]] = None
    address: Optional[str] = Field(default=None, max_length=64)


class BindRequest(OrderSelector):
    address: str = Field(min_length=1, max_length=64)
    device_address: Optional[str] = Field(default=None, max_length=128)


class OrderListFilter(Pagination):
    provider: Optional[str] = Field(default=None, max_length=64)
    address: Optional[str] = Field(default=None, max_length=64)
    status: Optional[str] = Field(default=None, max_length=16)
    exclude_attested: bool = False


class DeviceRebind(BaseModel):
    device_address: Optional[str] = Field(default=None, max_length=128)


class InboundMessage(BaseModel):
    device_address: str = Field(min_length=1, max_length=128)
    text: str = Field(default="", max_length=16384)
    paired: bool = False
