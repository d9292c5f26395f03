"""Pydantic schemas for the ServiceTrade integration routes."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class CredentialsSave(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ConnectionStatus(BaseModel):
    connected: bool
    has_credentials: Optional[bool] = None
    user: Optional[dict] = None
    message: Optional[str] = None


class ProxyRequest(BaseModel):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    path: str = Field(..., min_length=1, pattern=r"^/")
    body: Optional[Any] = None


class ProxyResponse(BaseModel):
    ok: bool
    status: int
    data: Optional[Any] = None
    messages: dict = Field(default_factory=dict)
