# src/mk_checkout/application/schemas.py
from pydantic import BaseModel, Field, field_validator


class CheckoutRequest(BaseModel):
    shipping_address_id: str
    billing_address_id: str | None = None
    buyer_notes: str | None = Field(None, max_length=1000)

    @field_validator("shipping_address_id", "billing_address_id")
    @classmethod
    def not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("address id must not be blank")
        return v


class CheckoutResponse(BaseModel):
    client_secret: str
    order_ids: list[str]
