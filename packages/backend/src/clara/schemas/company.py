"""Pydantic schemas for companies (tenants) and company-scoped users."""

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field


class CompanyRead(BaseModel):
    id: uuid.UUID
    name: str
    default_timezone: str
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    country: Optional[str] = None

    model_config = {"from_attributes": True}


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    default_timezone: Optional[str] = Field(None, min_length=1, max_length=64)
    address_line1: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=255)
    state: Optional[str] = Field(None, max_length=255)
    zipcode: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=255)


class MembershipUpdate(BaseModel):
    role: Optional[Literal["admin", "user"]] = None
    active: Optional[bool] = None


class InviteRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field("", max_length=255)
    role: Literal["admin", "user"] = "user"
