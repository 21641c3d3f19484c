"""
Request schemas for API v1.

Accept the storefront's camelCase payloads as well as snake_case.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class OrderItem(BaseModel):
    jacket_config: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("jacket_config", "jacketConfig"),
    )
    quantity: int = Field(default=1, ge=1)
    price: float = Field(default=0.0, ge=0)


class CreateOrderRequest(BaseModel):
    order_number: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("order_number", "orderNumber"),
    )
    customer_info: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("customer_info", "customerInfo"),
    )
    items: List[OrderItem] = Field(default_factory=list)
    quantity: int = Field(default=1, ge=1)
    total_price: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("total_price", "totalPrice"),
    )


class UpdateConfigurationRequest(BaseModel):
    jacket_config: Dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("jacket_config", "jacketConfig"),
    )
    updated_by: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("updated_by", "updatedBy"),
    )


class CreateTemporaryLinkRequest(BaseModel):
    created_by: str = Field(
        default="admin",
        validation_alias=AliasChoices("created_by", "createdBy"),
    )
    duration_hours: Optional[int] = Field(
        default=None,
        ge=1,
        le=168,
        validation_alias=AliasChoices("duration_hours", "durationHours"),
    )
